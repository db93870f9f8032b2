"""Adapter over the Supabase client for the hosted identity, data and storage platform.

The SDK owns the HTTP calls, token persistence and background token refresh.
This module narrows it to what the portal uses and maps every SDK or transport
failure onto ``portal.errors``:

- auth        password sign-in, sign-up, sign-out and token refresh
- tables      select/insert/update/delete with equality filters and ordering
- storage     object upload, removal and public URLs

Session changes reported by the SDK are re-emitted to the adapter's own
listeners as ``AuthChangeEvent`` values with ``PlatformSession`` payloads.
"""

import json
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from supabase import (
    AsyncClient,
    AsyncClientOptions,
    AuthError,
    AuthRetryableError,
    PostgrestAPIError,
    StorageException,
    acreate_client,
)
from supabase_auth import AsyncMemoryStorage, AsyncSupportedStorage
from supabase_auth.constants import STORAGE_KEY
from supabase_auth.types import Session

from portal.config import settings
from portal.errors import (
    EmailAlreadyRegistered,
    InvalidCredentials,
    NetworkError,
    NotAuthenticated,
    PortalError,
    RecordNotFound,
    RestorationFailed,
    ValidationError,
)

logger = logging.getLogger(__name__)

# GoTrue error codes that mean the email already has an account
_EMAIL_TAKEN_CODES = {"user_already_exists", "email_exists"}

# PostgREST codes for a missing or rejected JWT and for row-level security denials
_NOT_AUTHENTICATED_CODES = {"PGRST301", "PGRST302", "42501"}


class AuthChangeEvent(str, Enum):
    """Session change notifications, named as the SDK names them."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True)
class PlatformUser:
    """Opaque platform user handle."""

    id: str
    email: str


@dataclass(frozen=True)
class PlatformSession:
    """Platform credential pair for a signed-in user."""

    access_token: str
    refresh_token: str
    expires_at: int
    user: PlatformUser


AuthStateListener = Callable[[AuthChangeEvent, PlatformSession | None], None]


def _to_platform_session(session: Session) -> PlatformSession:
    expires_at = session.expires_at
    if expires_at is None:
        expires_at = int(time.time()) + session.expires_in
    return PlatformSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=int(expires_at),
        user=PlatformUser(id=session.user.id, email=session.user.email or ""),
    )


def _status_of(error: Exception) -> int | None:
    """HTTP status carried by an SDK error, if any."""
    status = getattr(error, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _auth_error(error: AuthError, fallback: type[PortalError]) -> PortalError:
    status = _status_of(error)
    if isinstance(error, AuthRetryableError) or (status is not None and status >= 500):
        return NetworkError(f"Platform auth service unavailable: {error.message}")
    if error.code in _EMAIL_TAKEN_CODES or "already registered" in error.message.lower():
        return EmailAlreadyRegistered(error.message)
    return fallback(error.message)


def _table_error(error: PostgrestAPIError) -> PortalError:
    message = error.message or str(error)
    code = str(error.code or "")
    # Non-JSON error bodies carry the HTTP status as the code
    status = int(code) if code.isdigit() else None
    if code in _NOT_AUTHENTICATED_CODES or status in (401, 403):
        return NotAuthenticated(message)
    if status is not None and status >= 500:
        return NetworkError(f"Platform data service unavailable: {message}")
    if code == "PGRST116" or status == 404:
        return RecordNotFound(message)
    return ValidationError(message)


def _storage_error(error: StorageException) -> PortalError:
    message = getattr(error, "message", None) or str(error)
    status = _status_of(error)
    if status in (401, 403):
        return NotAuthenticated(message)
    if status == 404:
        return RecordNotFound(message)
    if status is not None and status >= 500:
        return NetworkError(f"Platform storage unavailable: {message}")
    return ValidationError(message)


@contextmanager
def _platform_errors(action: str, fallback: type[PortalError] = ValidationError) -> Iterator[None]:
    """Translate SDK and transport failures raised inside the block."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise NetworkError(f"Platform request timed out: {action}") from e
    except httpx.TransportError as e:
        raise NetworkError(f"Platform request failed: {action}: {e}") from e
    except AuthError as e:
        raise _auth_error(e, fallback) from e
    except PostgrestAPIError as e:
        raise _table_error(e) from e
    except StorageException as e:
        raise _storage_error(e) from e


class FileSessionStorage(AsyncSupportedStorage):
    """SDK session storage kept in a JSON file so the next process can restore it."""

    def __init__(self, path: Path):
        self.path = path

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            raise RestorationFailed(f"Stored session is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise RestorationFailed("Stored session is unreadable: not a JSON object")
        return data

    async def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    async def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data))

    async def remove_item(self, key: str) -> None:
        try:
            data = self._read()
        except RestorationFailed:
            self.path.unlink(missing_ok=True)
            return
        if data.pop(key, None) is None:
            return
        if data:
            self.path.write_text(json.dumps(data))
        else:
            self.path.unlink(missing_ok=True)


class PlatformClient:
    """
    Thin async adapter over a Supabase ``AsyncClient``.

    Example:
        # Production usage
        platform = await PlatformClient.create()
        session = await platform.sign_in_with_password("a@b.com", "secret")

        # Testing with a mocked SDK client
        platform = PlatformClient(client=mock_sdk_client, storage=AsyncMemoryStorage())
    """

    def __init__(
        self,
        client: AsyncClient,
        storage: AsyncSupportedStorage,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize PlatformClient.

        Args:
            client: Supabase async client.
            storage: The session storage the client was created with.
            http_client: httpx client shared by the SDK's sub-clients. Closed
                   by ``close()`` when given.
        """
        self._client = client
        self._storage = storage
        self._http_client = http_client
        self._session: PlatformSession | None = None
        self._listeners: list[AuthStateListener] = []
        self._subscription = client.auth.on_auth_state_change(self._on_sdk_event)

    @classmethod
    async def create(
        cls,
        url: str | None = None,
        anon_key: str | None = None,
        session_store: Path | None = None,
    ) -> "PlatformClient":
        """
        Create the SDK client from settings and wrap it.

        Args:
            url: Platform base URL. Defaults to settings.supabase_url.
            anon_key: Public API key. Defaults to settings.supabase_anon_key.
            session_store: File the session is persisted to. Defaults to
                   settings.session_store_path; kept in memory when unset.
        """
        if session_store is None and settings.session_store_path:
            session_store = Path(settings.session_store_path)
        storage: AsyncSupportedStorage = (
            FileSessionStorage(session_store) if session_store is not None else AsyncMemoryStorage()
        )
        http_client = httpx.AsyncClient(timeout=settings.platform_timeout_seconds)
        client = await acreate_client(
            url or settings.supabase_url,
            anon_key or settings.supabase_anon_key,
            options=AsyncClientOptions(
                storage=storage,
                httpx_client=http_client,
                flow_type="implicit",
            ),
        )
        return cls(client=client, storage=storage, http_client=http_client)

    @property
    def current_session(self) -> PlatformSession | None:
        return self._session

    async def close(self) -> None:
        """Stop listening to the SDK and close the shared HTTP client."""
        self._subscription.unsubscribe()
        if self._http_client is not None:
            await self._http_client.aclose()

    # =========================================================================
    # Session change notifications
    # =========================================================================

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        """
        Register a listener for session changes.

        Listeners are called synchronously, in registration order, each time
        the session changes. ``current_session`` is already updated when they
        run. Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _on_sdk_event(self, event: str, session: Session | None) -> None:
        try:
            change = AuthChangeEvent(event)
        except ValueError:
            logger.debug(f"Ignoring auth event {event}")
            return
        platform_session = _to_platform_session(session) if session is not None else None
        self._session = None if change is AuthChangeEvent.SIGNED_OUT else platform_session
        self._emit(change, platform_session)

    def _emit(self, event: AuthChangeEvent, session: PlatformSession | None) -> None:
        logger.debug(f"Auth state change: {event.value}")
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f"Auth state listener failed for {event.value}")

    async def _drop_session(self) -> None:
        """Forget the session locally; the SDK then signs out without a request."""
        await self._storage.remove_item(STORAGE_KEY)
        await self._client.auth.sign_out()

    # =========================================================================
    # Auth
    # =========================================================================

    async def get_session(self) -> PlatformSession | None:
        """
        Return the stored session, refreshing it when it has expired.

        Raises:
            RestorationFailed: If the stored session cannot be read.
            NotAuthenticated: If the stored refresh token is rejected; the
                stored session is dropped and SIGNED_OUT emitted.
            NetworkError: If the refresh call cannot complete. The stored
                session is kept so the next start can try again.
        """
        try:
            with _platform_errors("session restore", fallback=NotAuthenticated):
                session = await self._client.auth.get_session()
        except NotAuthenticated:
            logger.info("Stored refresh token rejected")
            await self._drop_session()
            raise
        self._session = _to_platform_session(session) if session is not None else None
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        """
        Exchange an email/password pair for a session.

        Raises:
            InvalidCredentials: If the platform rejects the pair.
            NetworkError: If the call cannot complete.
        """
        with _platform_errors("sign-in", fallback=InvalidCredentials):
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        if response.session is None:
            raise InvalidCredentials()
        session = _to_platform_session(response.session)
        logger.info(f"Signed in user {session.user.id}")
        return session

    async def sign_up(self, email: str, password: str) -> PlatformSession:
        """
        Create a new identity and return its session.

        Raises:
            EmailAlreadyRegistered: If the email already has an account.
            ValidationError: If the platform rejects the email or password, or
                does not issue a session (email confirmation required).
            NetworkError: If the call cannot complete.
        """
        with _platform_errors("sign-up"):
            response = await self._client.auth.sign_up({"email": email, "password": password})

        # With enumeration protection on, an existing email yields a user with no identities
        if response.user is not None and response.user.identities == []:
            raise EmailAlreadyRegistered()
        if response.session is None:
            raise ValidationError("Email confirmation is required before signing in")

        session = _to_platform_session(response.session)
        logger.info(f"Signed up user {session.user.id}")
        return session

    async def sign_out(self) -> None:
        """
        Invalidate the remote session and drop it locally.

        The local session is always cleared and SIGNED_OUT always emitted;
        a failure of the remote call is raised afterwards.
        """
        try:
            with _platform_errors("sign-out"):
                await self._client.auth.sign_out()
        except NetworkError:
            await self._drop_session()
            raise

    async def refresh_session(self) -> PlatformSession:
        """
        Exchange the refresh token for a new session.

        Raises:
            NotAuthenticated: If there is no session or the refresh token was
                rejected (expired or revoked); the session is dropped and
                SIGNED_OUT emitted.
            NetworkError: If the call cannot complete.
        """
        if self._session is None:
            raise NotAuthenticated()
        try:
            with _platform_errors("token refresh", fallback=NotAuthenticated):
                response = await self._client.auth.refresh_session(self._session.refresh_token)
        except NotAuthenticated:
            logger.info("Refresh token rejected")
            await self._drop_session()
            raise
        if response.session is None:
            raise NotAuthenticated()
        return _to_platform_session(response.session)

    # =========================================================================
    # Tables
    # =========================================================================

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Select rows from a table.

        Args:
            table: Table name.
            columns: Select expression, including embedded relations
                (e.g. "*, doctor:doctors(*)").
            filters: Column equality filters.
            order: Column to order by.
            descending: Order descending instead of ascending.

        Returns:
            List of row dicts.
        """
        query = self._client.table(table).select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order:
            query = query.order(order, desc=descending)

        with _platform_errors(f"select {table}"):
            response = await query.execute()
        return response.data

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return the stored row."""
        with _platform_errors(f"insert {table}"):
            response = await self._client.table(table).insert(record).execute()
        rows = response.data
        return rows[0] if isinstance(rows, list) else rows

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them as stored."""
        query = self._client.table(table).update(values)
        for column, value in filters.items():
            query = query.eq(column, value)
        with _platform_errors(f"update {table}"):
            response = await query.execute()
        return response.data

    async def delete(self, table: str, *, filters: dict[str, Any]) -> None:
        """Delete matching rows."""
        query = self._client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        with _platform_errors(f"delete {table}"):
            await query.execute()

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Upload an object to a storage bucket."""
        with _platform_errors(f"upload to {bucket}"):
            await self._client.storage.from_(bucket).upload(
                path, content, {"content-type": content_type, "upsert": "false"}
            )

    async def remove(self, bucket: str, paths: list[str]) -> None:
        """Remove objects from a storage bucket."""
        with _platform_errors(f"remove from {bucket}"):
            await self._client.storage.from_(bucket).remove(paths)

    async def get_public_url(self, bucket: str, path: str) -> str:
        return await self._client.storage.from_(bucket).get_public_url(path)
