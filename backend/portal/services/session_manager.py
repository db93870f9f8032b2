"""Process-wide session state: who is signed in and what is their profile.

SessionManager is the single writer of session state. Views read immutable
snapshots and call the action methods; they never mutate state themselves.

State machine:
    uninitialized -> restoring            initialize()
    restoring     -> authenticated        prior session restored
    restoring     -> anonymous            no prior session, or restoration failed
    anonymous     -> authenticated        sign_in() / sign_up()
    authenticated -> anonymous            sign_out(), or platform SIGNED_OUT
    authenticated -> authenticated        update_profile(), TOKEN_REFRESHED

All writes run under one asyncio.Lock. Platform notifications are queued in
arrival order and applied one at a time by a single consumer task. The
platform's echoes of the manager's own sign-in and sign-out are not applied
again, so a stale echo never undoes a later action.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from portal.config import settings
from portal.errors import NotAuthenticated, PortalError, RecordNotFound, ValidationError
from portal.schemas.profile import Profile, ProfileUpdate
from portal.schemas.session import SessionStatus
from portal.services.platform import (
    AuthChangeEvent,
    PlatformClient,
    PlatformSession,
    PlatformUser,
)

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session at one point in time."""

    status: SessionStatus
    identity: PlatformUser | None = None
    profile: Profile | None = None
    profile_loading: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED


SessionObserver = Callable[[SessionSnapshot], Awaitable[None] | None]


class SessionManager:
    """
    Owns authentication state and the signed-in patient's profile.

    Example:
        manager = SessionManager(platform)
        await manager.initialize()
        await manager.sign_in("a@b.com", "secret")
        manager.snapshot().profile
    """

    def __init__(self, platform: PlatformClient, queue_size: int | None = None):
        """
        Initialize SessionManager.

        Args:
            platform: Client for the external platform.
            queue_size: Capacity of the inbound notification queue.
                   Defaults to settings.notification_queue_size.
        """
        self._platform = platform
        self._status = SessionStatus.UNINITIALIZED
        self._identity: PlatformUser | None = None
        self._profile: Profile | None = None
        self._profile_loading = False

        self._write_lock = asyncio.Lock()
        self._notifications: asyncio.Queue[tuple[AuthChangeEvent, PlatformSession | None]] = (
            asyncio.Queue(maxsize=queue_size or settings.notification_queue_size)
        )
        self._consumer: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe_platform: Callable[[], None] | None = None
        self._observers: list[SessionObserver] = []
        # Access tokens issued by our own sign-in/sign-up calls; their
        # SIGNED_IN echoes are already applied when they reach the queue.
        self._own_tokens: set[str] = set()
        # Set while our own platform sign-out runs; its SIGNED_OUT is not queued
        self._signing_out = False
        # Task that is delivering a snapshot to observers
        self._notifying_task: asyncio.Task | None = None
        self._initialized = False
        self._closed = False

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def identity(self) -> PlatformUser | None:
        return self._identity

    @property
    def profile(self) -> Profile | None:
        return self._profile

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self._status,
            identity=self._identity,
            profile=self._profile,
            profile_loading=self._profile_loading,
        )

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        """
        Register an observer called with a snapshot after every transition.

        Observers may be plain callables or coroutine functions. Returns a
        callable that removes the observer.

        Observers run while the session write that produced the snapshot is
        still in progress. An observer must not await a manager action
        (sign_in, sign_out, update_profile, ...); doing so raises
        RuntimeError. To react with an action, schedule it with
        ``asyncio.create_task`` instead.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> SessionSnapshot:
        """
        Restore any prior session and start listening for platform changes.

        Idempotent: later calls return the current snapshot. Restoration
        failure of any kind resolves to anonymous and is never raised.
        """
        if self._initialized:
            return self.snapshot()
        self._initialized = True
        self._loop = asyncio.get_running_loop()
        self._unsubscribe_platform = self._platform.on_auth_state_change(self._on_platform_event)

        async with self._write_lock:
            await self._transition(SessionStatus.RESTORING)
            session = await self._restore()
            if not self._closed:
                if session is None:
                    await self._transition(SessionStatus.ANONYMOUS)
                else:
                    await self._enter_authenticated(session.user)

        self._consumer = asyncio.create_task(self._consume_notifications())
        return self.snapshot()

    async def close(self) -> None:
        """Stop processing notifications and tear the session down."""
        self._closed = True
        if self._unsubscribe_platform is not None:
            self._unsubscribe_platform()
            self._unsubscribe_platform = None
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        self._observers.clear()
        self._status = SessionStatus.UNINITIALIZED
        self._identity = None
        self._profile = None
        self._profile_loading = False

    async def _restore(self) -> PlatformSession | None:
        try:
            session = await self._platform.get_session()
        except Exception as e:
            logger.warning(f"Session restoration failed, continuing signed out: {e}")
            return None
        if session is None:
            logger.info("No prior session to restore")
        return session

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("SessionManager.initialize() must be called first")
        self._reject_observer_reentry()

    def _reject_observer_reentry(self) -> None:
        """Fail fast when an observer calls an action from inside its notification."""
        if self._notifying_task is not None and self._notifying_task is asyncio.current_task():
            raise RuntimeError(
                "Session observers must not await SessionManager actions; "
                "schedule them with asyncio.create_task instead"
            )

    # =========================================================================
    # Actions
    # =========================================================================

    async def sign_in(self, email: str, password: str) -> SessionSnapshot:
        """
        Sign in with email and password.

        Raises:
            InvalidCredentials: If the platform rejects the pair.
            NetworkError: If the call cannot complete.
        """
        self._require_initialized()
        async with self._write_lock:
            session = await self._platform.sign_in_with_password(email, password)
            self._own_tokens.add(session.access_token)
            if self._closed:
                return self.snapshot()
            await self._enter_authenticated(session.user)
            return self.snapshot()

    async def sign_up(self, email: str, password: str, full_name: str) -> SessionSnapshot:
        """
        Create an account and its profile, then sign in.

        The profile record exists before the session becomes authenticated.
        If the profile cannot be created the new platform session is
        discarded and the error raised.

        Raises:
            EmailAlreadyRegistered: If the email already has an account.
            ValidationError: If the platform rejects the submitted fields.
            NetworkError: If a call cannot complete.
        """
        self._require_initialized()
        async with self._write_lock:
            session = await self._platform.sign_up(email, password)
            self._own_tokens.add(session.access_token)
            try:
                row = await self._platform.insert(
                    PROFILES_TABLE,
                    {"id": session.user.id, "full_name": full_name, "email": email},
                )
            except PortalError:
                logger.warning(f"Profile creation failed for new user {session.user.id}")
                await self._discard_platform_session()
                raise

            profile = Profile.model_validate(row)
            if self._closed:
                return self.snapshot()
            await self._transition(SessionStatus.AUTHENTICATED, session.user, profile)
            return self.snapshot()

    async def sign_out(self) -> SessionSnapshot:
        """
        Sign out. Always ends anonymous with the profile cleared.

        A failure of the remote sign-out call is logged and does not block
        the local sign-out.
        """
        self._require_initialized()
        async with self._write_lock:
            try:
                await self._platform_sign_out()
            except PortalError as e:
                logger.warning(f"Remote sign-out failed, signed out locally: {e}")
            finally:
                await self._transition(SessionStatus.ANONYMOUS)
            return self.snapshot()

    async def update_profile(self, fields: ProfileUpdate | dict[str, Any]) -> Profile:
        """
        Write changed profile fields and adopt the server-confirmed record.

        Args:
            fields: Fields to change; unset fields are left alone.

        Returns:
            The profile as returned by the platform after the write.

        Raises:
            NotAuthenticated: If no user is signed in (no network call is made).
            ValidationError: If there is nothing to update or the platform
                rejects the fields.
            NetworkError: If the call cannot complete.
        """
        self._reject_observer_reentry()
        if self._status is not SessionStatus.AUTHENTICATED:
            raise NotAuthenticated()

        if isinstance(fields, ProfileUpdate):
            changes = fields.model_dump(exclude_unset=True, mode="json")
        else:
            changes = dict(fields)
        if not changes:
            raise ValidationError("No profile fields to update")

        async with self._write_lock:
            user = self._identity
            if self._status is not SessionStatus.AUTHENTICATED or user is None:
                raise NotAuthenticated()

            rows = await self._platform.update(PROFILES_TABLE, changes, filters={"id": user.id})
            if not rows:
                raise RecordNotFound(f"No profile for user {user.id}")
            profile = Profile.model_validate(rows[0])

            # Discard a result that arrives after the session moved on
            if self._closed or self._identity != user:
                return profile
            await self._transition(SessionStatus.AUTHENTICATED, user, profile)
            return profile

    async def refresh_profile(self) -> Profile | None:
        """
        Re-read the signed-in user's profile from the platform.

        Raises:
            NotAuthenticated: If no user is signed in.
        """
        self._reject_observer_reentry()
        if self._status is not SessionStatus.AUTHENTICATED:
            raise NotAuthenticated()

        async with self._write_lock:
            user = self._identity
            if self._status is not SessionStatus.AUTHENTICATED or user is None:
                raise NotAuthenticated()
            profile = await self._fetch_profile(user)
            if not self._closed and self._identity == user:
                await self._transition(SessionStatus.AUTHENTICATED, user, profile)
            return profile

    # =========================================================================
    # Internals (call with the write lock held)
    # =========================================================================

    async def _transition(
        self,
        status: SessionStatus,
        identity: PlatformUser | None = None,
        profile: Profile | None = None,
        profile_loading: bool = False,
    ) -> None:
        """Apply a state change and notify observers."""
        if (identity is not None) != (status is SessionStatus.AUTHENTICATED):
            raise ValueError("identity must be set if and only if status is authenticated")

        if status is not self._status:
            logger.info(f"Session {self._status.value} -> {status.value}")
        self._status = status
        self._identity = identity
        self._profile = profile
        self._profile_loading = profile_loading
        await self._notify_observers()

    async def _notify_observers(self) -> None:
        snapshot = self.snapshot()
        self._notifying_task = asyncio.current_task()
        try:
            for observer in list(self._observers):
                try:
                    result = observer(snapshot)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Session observer failed")
        finally:
            self._notifying_task = None

    async def _enter_authenticated(self, user: PlatformUser) -> None:
        """Become authenticated as ``user`` and load their profile once."""
        await self._transition(SessionStatus.AUTHENTICATED, user, profile_loading=True)
        profile = await self._fetch_profile(user)
        if self._closed or self._identity != user:
            return
        await self._transition(SessionStatus.AUTHENTICATED, user, profile)

    async def _fetch_profile(self, user: PlatformUser) -> Profile | None:
        try:
            rows = await self._platform.select(PROFILES_TABLE, filters={"id": user.id})
        except PortalError as e:
            logger.warning(f"Profile fetch failed for user {user.id}: {e}")
            return None
        if not rows:
            logger.warning(f"No profile found for user {user.id}")
            return None
        return Profile.model_validate(rows[0])

    async def _discard_platform_session(self) -> None:
        try:
            await self._platform_sign_out()
        except PortalError as e:
            logger.warning(f"Could not discard platform session: {e}")

    async def _platform_sign_out(self) -> None:
        """Sign out on the platform; the SIGNED_OUT it emits meanwhile is not queued."""
        self._signing_out = True
        try:
            await self._platform.sign_out()
        finally:
            self._signing_out = False

    # =========================================================================
    # Platform notifications
    # =========================================================================

    def _on_platform_event(self, event: AuthChangeEvent, session: PlatformSession | None) -> None:
        """Platform listener: enqueue the notification on the manager's loop."""
        if event is AuthChangeEvent.SIGNED_OUT and self._signing_out:
            logger.debug("Skipping SIGNED_OUT echo of our own sign-out")
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._enqueue(event, session)
        elif self._loop is not None:
            self._loop.call_soon_threadsafe(self._enqueue, event, session)

    def _enqueue(self, event: AuthChangeEvent, session: PlatformSession | None) -> None:
        try:
            self._notifications.put_nowait((event, session))
        except asyncio.QueueFull:
            logger.error(f"Session notification queue full, dropping {event.value}")

    async def _consume_notifications(self) -> None:
        while True:
            event, session = await self._notifications.get()
            try:
                async with self._write_lock:
                    await self._apply_notification(event, session)
            except Exception:
                logger.exception(f"Failed to apply session notification {event.value}")
            finally:
                self._notifications.task_done()

    async def _apply_notification(
        self, event: AuthChangeEvent, session: PlatformSession | None
    ) -> None:
        if self._closed:
            return

        if session is not None and session.access_token in self._own_tokens:
            self._own_tokens.discard(session.access_token)
            return

        if event is AuthChangeEvent.SIGNED_OUT:
            if self._status is SessionStatus.AUTHENTICATED:
                logger.info("Session ended by the platform")
                await self._transition(SessionStatus.ANONYMOUS)
            return

        if session is None:
            return

        current = self._identity
        if event is AuthChangeEvent.SIGNED_IN:
            if current is not None and current.id == session.user.id:
                return
            await self._enter_authenticated(session.user)
        elif event is AuthChangeEvent.TOKEN_REFRESHED:
            if current is None:
                logger.debug("Ignoring token refresh while signed out")
            elif current.id != session.user.id:
                await self._enter_authenticated(session.user)
            else:
                await self._transition(SessionStatus.AUTHENTICATED, session.user, self._profile)

    async def wait_for_notifications(self) -> None:
        """Wait until every queued notification has been applied."""
        await self._notifications.join()
