from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI

    from hris_leave.config import Settings

# Identity headers read by hris_leave.api.deps.
AUTH_HEADERS = ["X-Company-Id", "X-User-Id", "X-Role"]
ALLOWED_METHODS = ["GET", "POST", "PATCH", "DELETE"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Allow the HR front-ends to call the leave API from the browser."""
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=[*AUTH_HEADERS, "Content-Type"],
    )
