"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- An in-memory fake of the external platform
- Session manager instances bound to the fake
- HTTP client for API testing
- Common clinic test data
"""

import itertools
import os
import time
from collections import defaultdict
from typing import Any

# Configure the platform before portal.config is imported
os.environ.setdefault("SUPABASE_URL", "https://portal-test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from portal.errors import EmailAlreadyRegistered, InvalidCredentials
from portal.main import app
from portal.services.platform import (
    AuthChangeEvent,
    AuthStateListener,
    PlatformSession,
    PlatformUser,
)
from portal.services.session_manager import SessionManager

CREATED_AT = "2024-01-01T00:00:00+00:00"
SERVER_UPDATED_AT = "2024-06-01T12:00:00+00:00"
TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "secret"


def auth_headers(token: str) -> dict[str, str]:
    """Authentication headers for API requests."""
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Fake Platform
# =============================================================================


class FakePlatform:
    """In-memory stand-in for PlatformClient.

    Records every call in ``calls`` as ``(name, *args)``. Set the ``*_error``
    attributes to make the matching call raise.
    """

    def __init__(self):
        self.accounts: dict[str, tuple[str, str]] = {}
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple] = []

        self.stored_session: PlatformSession | None = None
        self.restore_error: Exception | None = None
        self.sign_in_error: Exception | None = None
        self.sign_out_error: Exception | None = None
        self.insert_error: Exception | None = None
        self.update_error: Exception | None = None
        self.select_error: Exception | None = None
        self.remove_error: Exception | None = None
        # Fields the "server" sets on every profile update
        self.update_overrides: dict[str, Any] = {"updated_at": SERVER_UPDATED_AT}

        self._session: PlatformSession | None = None
        self._listeners: list[AuthStateListener] = []
        self._ids = itertools.count(1)

    # --- helpers for tests ---

    def add_account(
        self,
        email: str,
        password: str,
        full_name: str = "Test Patient",
        user_id: str | None = None,
    ) -> str:
        """Register an account and its profile row. Returns the user id."""
        user_id = user_id or f"user-{next(self._ids)}"
        self.accounts[email] = (password, user_id)
        self.tables["profiles"].append(
            {
                "id": user_id,
                "full_name": full_name,
                "email": email,
                "phone_number": None,
                "date_of_birth": None,
                "created_at": CREATED_AT,
                "updated_at": CREATED_AT,
            }
        )
        return user_id

    def make_session(self, user_id: str, email: str) -> PlatformSession:
        return PlatformSession(
            access_token=f"access-{next(self._ids)}",
            refresh_token=f"refresh-{next(self._ids)}",
            expires_at=int(time.time()) + 3600,
            user=PlatformUser(id=user_id, email=email),
        )

    def emit(self, event: AuthChangeEvent, session: PlatformSession | None) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    def count(self, name: str, table: str | None = None) -> int:
        return sum(
            1
            for call in self.calls
            if call[0] == name and (table is None or (len(call) > 1 and call[1] == table))
        )

    # --- PlatformClient interface ---

    @property
    def current_session(self) -> PlatformSession | None:
        return self._session

    def on_auth_state_change(self, listener: AuthStateListener):
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def get_session(self) -> PlatformSession | None:
        self.calls.append(("get_session",))
        if self.restore_error is not None:
            raise self.restore_error
        self._session = self.stored_session
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        self.calls.append(("sign_in", email))
        if self.sign_in_error is not None:
            raise self.sign_in_error
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise InvalidCredentials()
        self._session = self.make_session(account[1], email)
        self.emit(AuthChangeEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_up(self, email: str, password: str) -> PlatformSession:
        self.calls.append(("sign_up", email))
        if email in self.accounts:
            raise EmailAlreadyRegistered()
        user_id = f"user-{next(self._ids)}"
        self.accounts[email] = (password, user_id)
        self._session = self.make_session(user_id, email)
        self.emit(AuthChangeEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_out(self) -> None:
        self.calls.append(("sign_out",))
        self._session = None
        self.emit(AuthChangeEvent.SIGNED_OUT, None)
        if self.sign_out_error is not None:
            raise self.sign_out_error

    async def close(self) -> None:
        pass

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        self.calls.append(("select", table, dict(filters or {})))
        if self.select_error is not None:
            raise self.select_error
        rows = [dict(row) for row in self._matching(table, filters)]
        if order:
            rows.sort(key=lambda row: str(row.get(order) or ""), reverse=descending)
        if "doctor:doctors" in columns:
            for row in rows:
                row["doctor"] = self._find("doctors", row.get("doctor_id"))
                row["service"] = self._find("services", row.get("service_id"))
        return rows

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("insert", table, dict(record)))
        if self.insert_error is not None:
            raise self.insert_error
        row = {"id": f"{table}-{next(self._ids)}", **record}
        row.setdefault("created_at", CREATED_AT)
        if table == "profiles":
            row.setdefault("updated_at", CREATED_AT)
        if table == "patient_history":
            row.setdefault("upload_date", CREATED_AT)
        self.tables[table].append(row)
        return dict(row)

    async def update(
        self, table: str, values: dict[str, Any], *, filters: dict[str, Any]
    ) -> list[dict[str, Any]]:
        self.calls.append(("update", table, dict(values)))
        if self.update_error is not None:
            raise self.update_error
        updated = []
        for row in self._matching(table, filters):
            row.update(values)
            row.update(self.update_overrides)
            updated.append(dict(row))
        return updated

    async def delete(self, table: str, *, filters: dict[str, Any]) -> None:
        self.calls.append(("delete", table, dict(filters)))
        matching = self._matching(table, filters)
        self.tables[table] = [row for row in self.tables[table] if row not in matching]

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.calls.append(("upload", bucket, path))
        self.objects[f"{bucket}/{path}"] = content

    async def remove(self, bucket: str, paths: list[str]) -> None:
        self.calls.append(("remove", bucket, list(paths)))
        if self.remove_error is not None:
            raise self.remove_error
        for path in paths:
            self.objects.pop(f"{bucket}/{path}", None)

    async def get_public_url(self, bucket: str, path: str) -> str:
        return f"https://portal-test.supabase.co/storage/v1/object/public/{bucket}/{path}"

    def _matching(self, table: str, filters: dict[str, Any] | None) -> list[dict[str, Any]]:
        filters = filters or {}
        return [
            row
            for row in self.tables[table]
            if all(str(row.get(key)) == str(value) for key, value in filters.items())
        ]

    def _find(self, table: str, row_id: Any) -> dict[str, Any] | None:
        if row_id is None:
            return None
        for row in self.tables[table]:
            if row["id"] == row_id:
                return dict(row)
        return None


# =============================================================================
# Platform & Session Fixtures
# =============================================================================


@pytest.fixture
def fake_platform() -> FakePlatform:
    """Fresh in-memory platform with one registered patient."""
    platform = FakePlatform()
    platform.add_account(TEST_EMAIL, TEST_PASSWORD, full_name="Alice Patient", user_id="user-alice")
    return platform


@pytest_asyncio.fixture
async def session_manager(fake_platform):
    """Initialized session manager bound to the fake platform."""
    manager = SessionManager(fake_platform)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def signed_in(session_manager):
    """Session manager with the test patient signed in."""
    await session_manager.sign_in(TEST_EMAIL, TEST_PASSWORD)
    await session_manager.wait_for_notifications()
    return session_manager


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(fake_platform, session_manager):
    """Async test client for the FastAPI app backed by the fake platform.

    The lifespan does not run under ASGITransport, so app state is set here.
    """
    app.state.platform = fake_platform
    app.state.session_manager = session_manager
    app.state.api_token = None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Clinic Data Fixtures
# =============================================================================


@pytest.fixture
def sample_doctor() -> dict:
    return {
        "id": "doc-1",
        "full_name": "Dr. Maya Chen",
        "specialization": "Sports Medicine",
        "qualification": "MD, FAAOS",
        "experience_years": 12,
        "image_url": None,
        "available_days": ["Monday", "Wednesday"],
        "created_at": CREATED_AT,
    }


@pytest.fixture
def sample_service() -> dict:
    return {
        "id": "svc-1",
        "name": "Joint Replacement",
        "description": "Hip and knee replacement surgery",
        "icon": "bone",
        "created_at": CREATED_AT,
    }


@pytest.fixture
def clinic(fake_platform, sample_doctor, sample_service) -> FakePlatform:
    """Fake platform seeded with doctors and services."""
    fake_platform.tables["doctors"].extend(
        [
            sample_doctor,
            {**sample_doctor, "id": "doc-2", "full_name": "Dr. Aaron Brooks"},
        ]
    )
    fake_platform.tables["services"].extend(
        [
            sample_service,
            {**sample_service, "id": "svc-2", "name": "Fracture Care"},
        ]
    )
    return fake_platform
