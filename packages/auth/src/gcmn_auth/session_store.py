"""Session Store — the single source of truth for who is signed in.

Holds the identity, the raw session and the derived profile, and publishes an
AuthState snapshot to subscribers after every change. It is the only writer of
that triple; everything else reads it.

Ordering rules:
  - The auth listener is registered before the persisted session is
    requested, so a transition that lands while the request is in flight is
    never lost. If such a transition arrives, it wins over the older initial
    read.
  - Listener invocations update identity/session synchronously, in the order
    the provider emits them.
  - Profile resolution is never started inside the listener. The provider
    emits while holding its own lock, so the resolution is scheduled with
    loop.call_soon and begins on a later turn of the event loop.
  - Each scheduled resolution carries a generation number. A newer identity
    transition (or sign-out) bumps the generation and cancels the pending
    task; a result whose generation is no longer current is dropped, so a
    stale profile can never reappear after sign-out.

Failure semantics: sign_in/sign_up/sign_out never raise. Provider errors come
back as AuthResult(success=False, error=...); anything unexpected is logged
and reported with a generic message.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable

from gcmn_data_access.rest import RestClient
from gcmn_shared import relations
from gcmn_shared.auth_models import (
    AuthEvent,
    AuthResult,
    AuthState,
    Identity,
    Profile,
    RegistrationData,
    Session,
)

from gcmn_auth.capabilities import is_admin
from gcmn_auth.profile_resolver import ProfileResolver
from gcmn_auth.provider import AuthProviderError, AuthSubscription, SupabaseAuth

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState], None]

LOGIN_FAILED = "Invalid email or password"
LOGIN_ERROR = "An error occurred during login"
REGISTRATION_ERROR = "An error occurred during registration"

# Events after which the profile is re-read even if the identity is unchanged
_RESOLVE_EVENTS = frozenset(
    {AuthEvent.INITIAL_SESSION, AuthEvent.SIGNED_IN, AuthEvent.USER_UPDATED}
)


class SessionStore:
    """Reactive holder of the session/profile/capability triple."""

    def __init__(
        self,
        provider: SupabaseAuth,
        resolver: ProfileResolver,
        rest: RestClient,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._rest = rest

        self._identity: Identity | None = None
        self._session: Session | None = None
        self._profile: Profile | None = None
        self._auth_loading = True

        self._auth_subscription: AuthSubscription | None = None
        self._initialized = False
        self._event_count = 0

        self._generation = 0
        self._resolution: asyncio.Task[None] | None = None

        self._listeners: dict[int, StateListener] = {}
        self._keys = itertools.count()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def is_admin(self) -> bool:
        return is_admin(self._profile)

    @property
    def auth_loading(self) -> bool:
        return self._auth_loading

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    @property
    def state(self) -> AuthState:
        return AuthState(
            identity=self._identity,
            session=self._session,
            profile=self._profile,
            is_admin=self.is_admin,
            auth_loading=self._auth_loading,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call `listener` with a fresh AuthState after every change.

        Returns a function that removes the listener.
        """
        key = next(self._keys)
        self._listeners[key] = listener
        return lambda: self._listeners.pop(key, None)

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners.values()):
            try:
                listener(state)
            except Exception:
                logger.exception("Auth state listener failed")

    def _set_loading(self, loading: bool) -> None:
        if self._auth_loading != loading:
            self._auth_loading = loading
            self._notify()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Subscribe to auth events, then restore any persisted session once."""
        if self._initialized:
            return
        self._initialized = True

        self._auth_subscription = self._provider.on_auth_state_change(
            self._on_auth_state_change
        )

        events_before = self._event_count
        try:
            session = await self._provider.get_session()
        except Exception:
            logger.exception("Failed to restore the persisted session")
            session = None

        if self._event_count == events_before:
            self._apply(AuthEvent.INITIAL_SESSION, session)
        else:
            logger.debug("Auth event arrived during session restore; keeping the newer state")
        self._set_loading(False)

    async def close(self) -> None:
        """Detach from the provider and drop any pending resolution."""
        if self._auth_subscription is not None:
            self._auth_subscription.unsubscribe()
            self._auth_subscription = None
        self._supersede_resolution()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Auth transitions
    # ------------------------------------------------------------------

    def _on_auth_state_change(self, event: AuthEvent, session: Session | None) -> None:
        self._event_count += 1
        logger.info(f"Auth state change: {event}")
        self._apply(event, session)

    def _apply(self, event: AuthEvent, session: Session | None) -> None:
        previous = self._identity
        identity = session.identity if session is not None else None
        identity_changed = (previous.id if previous else None) != (
            identity.id if identity else None
        )

        self._session = session
        self._identity = identity

        if identity is None:
            self._supersede_resolution()
            self._profile = None
        elif identity_changed or event in _RESOLVE_EVENTS:
            if identity_changed:
                self._profile = None
            self._schedule_resolution(identity)

        self._notify()

    def _supersede_resolution(self) -> None:
        self._generation += 1
        task, self._resolution = self._resolution, None
        if task is not None and not task.done():
            task.cancel()

    def _schedule_resolution(self, identity: Identity) -> None:
        self._supersede_resolution()
        generation = self._generation
        asyncio.get_running_loop().call_soon(self._start_resolution, generation, identity)

    def _start_resolution(self, generation: int, identity: Identity) -> None:
        if generation != self._generation:
            return
        self._resolution = asyncio.create_task(self._resolve(generation, identity))

    async def _resolve(self, generation: int, identity: Identity) -> None:
        try:
            profile = await self._resolver.resolve(identity.id, identity.email)
        except Exception:
            logger.exception(f"Profile resolution failed for {identity.id}")
            return

        current = self._identity
        if generation != self._generation or current is None or current.id != identity.id:
            logger.debug(f"Discarding stale profile for {identity.id}")
            return
        self._profile = profile
        self._notify()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Verify credentials with the provider.

        The identity itself is set by the SIGNED_IN event the provider emits,
        not here.
        """
        self._set_loading(True)
        try:
            session = await self._provider.sign_in_with_password(email, password)
            return AuthResult(success=True, message="Signed in", identity=session.identity)
        except AuthProviderError as e:
            logger.info(f"Sign-in rejected for {email}: {e.message}")
            reason = e.message or LOGIN_FAILED
            return AuthResult(success=False, message=reason, error=reason)
        except Exception:
            logger.exception(f"Unexpected error signing in {email}")
            return AuthResult(success=False, message=LOGIN_ERROR, error=LOGIN_ERROR)
        finally:
            self._set_loading(False)

    async def sign_up(self, registration: RegistrationData) -> AuthResult:
        """Create the account, then its profile row and default role row.

        The account already exists upstream once the provider accepts it, so
        a failed profile or role write is logged and the sign-up still
        succeeds.
        """
        self._set_loading(True)
        try:
            try:
                identity, _session = await self._provider.sign_up(
                    registration.email,
                    registration.password,
                    registration.metadata(),
                )
            except AuthProviderError as e:
                logger.info(f"Sign-up rejected for {registration.email}: {e.message}")
                reason = e.message or REGISTRATION_ERROR
                return AuthResult(success=False, message=reason, error=reason)

            await self._create_profile_rows(identity, registration)

            # The SIGNED_IN event may have resolved the profile before the
            # rows above existed.
            if self._identity is not None and self._identity.id == identity.id:
                self._schedule_resolution(identity)

            return AuthResult(success=True, message="Account created", identity=identity)
        except Exception:
            logger.exception(f"Unexpected error registering {registration.email}")
            return AuthResult(
                success=False, message=REGISTRATION_ERROR, error=REGISTRATION_ERROR
            )
        finally:
            self._set_loading(False)

    async def _create_profile_rows(
        self, identity: Identity, registration: RegistrationData
    ) -> None:
        profile_row = {
            "user_id": identity.id,
            "full_name": registration.full_name or identity.email_local_part,
            "phone": registration.phone,
            "department": registration.department,
            "roll_number": registration.roll_number,
            "student_class": registration.student_class,
        }
        try:
            await self._rest.insert(relations.PROFILES, profile_row)
        except Exception:
            logger.exception(f"Failed to create profile row for {identity.id}")

        try:
            await self._rest.insert(
                relations.USER_ROLES, {"user_id": identity.id, "role": "user"}
            )
        except Exception:
            logger.exception(f"Failed to create role row for {identity.id}")

    async def sign_out(self) -> AuthResult:
        """End the session. Local state is cleared whatever the network says."""
        try:
            await self._provider.sign_out()
        except Exception:
            logger.exception("Sign-out failed upstream; clearing local session")
        finally:
            self._supersede_resolution()
            self._session = None
            self._identity = None
            self._profile = None
            self._notify()
        return AuthResult(success=True, message="Signed out")
