# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel

Role = Literal["admin", "manager", "employee"]


class AuthContext(BaseModel):
    """Acting identity and tenant, passed explicitly to every service call.

    For employees ``user_id`` is the employee id in the directory.
    """

    company_id: uuid.UUID
    user_id: uuid.UUID
    role: Role = "employee"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def can_approve(self) -> bool:
        return self.role in ("admin", "manager")
