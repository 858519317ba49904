from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hris_leave.db import get_session
from hris_leave.main import app
from hris_leave.models import SQLModel
from hris_leave.services.attendance import InMemoryAttendanceRecorder, get_attendance_recorder
from hris_leave.services.employee import InMemoryEmployeeService, get_employee_service
from hris_leave.services.notification import (
    InMemoryNotificationSender,
    NotificationDispatcher,
    get_notification_dispatcher,
)
from hris_leave.services.request import LeaveRequestService
from hris_leave.services.storage import InMemoryFileStorage, get_file_storage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database per test, tables created from the models."""
    _engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Yield a session whose commits and rollbacks are real."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def employee_service() -> InMemoryEmployeeService:
    return InMemoryEmployeeService()


@pytest.fixture
def attendance_recorder() -> InMemoryAttendanceRecorder:
    return InMemoryAttendanceRecorder()


@pytest.fixture
def file_storage() -> InMemoryFileStorage:
    return InMemoryFileStorage()


@pytest.fixture
def notification_sender() -> InMemoryNotificationSender:
    return InMemoryNotificationSender()


@pytest.fixture
async def dispatcher(notification_sender: InMemoryNotificationSender) -> AsyncIterator[NotificationDispatcher]:
    """A running dispatcher that delivers into ``notification_sender``."""
    _dispatcher = NotificationDispatcher(notification_sender, maxsize=100, max_retries=2, retry_delay=0)
    await _dispatcher.start()
    yield _dispatcher
    await _dispatcher.stop()


@pytest.fixture
def leave_service(
    employee_service: InMemoryEmployeeService,
    attendance_recorder: InMemoryAttendanceRecorder,
    file_storage: InMemoryFileStorage,
    dispatcher: NotificationDispatcher,
) -> LeaveRequestService:
    return LeaveRequestService(employee_service, attendance_recorder, file_storage, dispatcher)


@pytest.fixture
async def async_client(
    db_session: AsyncSession,
    employee_service: InMemoryEmployeeService,
    attendance_recorder: InMemoryAttendanceRecorder,
    file_storage: InMemoryFileStorage,
    dispatcher: NotificationDispatcher,
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the session and collaborator dependencies overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_employee_service] = lambda: employee_service
    app.dependency_overrides[get_attendance_recorder] = lambda: attendance_recorder
    app.dependency_overrides[get_file_storage] = lambda: file_storage
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
