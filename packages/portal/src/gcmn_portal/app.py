"""LibraryPortal — the application root.

One instance per running client. It owns the provider client, the data
client, the change feed and the Session Store, and is the only place that
constructs admin mirrors. Components receive the portal (or the store) by
injection; nothing reaches for module-level auth state.

Design choices:
  - The data client's token provider reads the store's current access token,
    so every query runs as the signed-in user and row-level security
    applies. Before sign-in queries run with the anon key.
  - Admin views are gated here, not only in the route guard: a mirror is
    never built for a caller the gate does not allow.
  - Feed start is optional. Without a listening feed mirrors still load on
    mount, they just don't refresh on their own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from gcmn_auth.capabilities import GuardDecision, guard_route
from gcmn_auth.profile_resolver import ProfileResolver
from gcmn_auth.provider import SupabaseAuth, get_auth
from gcmn_auth.session_store import SessionStore
from gcmn_data_access.rest import RestClient, get_rest_client
from gcmn_realtime.feed import ChangeFeed
from gcmn_realtime.mirror import TableMirror
from gcmn_realtime.views import get_view_class
from gcmn_shared.auth_models import AuthResult
from gcmn_shared.models import Notice

from gcmn_portal.forms import RegistrationForm, validate_login

logger = logging.getLogger(__name__)


class AccessDenied(Exception):
    """Raised when an admin view is opened without the admin capability."""

    def __init__(self, view: str, decision: GuardDecision) -> None:
        super().__init__(f"Access to '{view}' denied ({decision})")
        self.view = view
        self.decision = decision


class LibraryPortal:
    def __init__(
        self,
        auth: SupabaseAuth,
        rest: RestClient,
        feed: ChangeFeed,
        notifier: Callable[[Notice], None] | None = None,
    ) -> None:
        self.auth = auth
        self.rest = rest
        self.feed = feed
        self.notifier = notifier
        self.store = SessionStore(auth, ProfileResolver(rest), rest)
        self.rest.token_provider = lambda: self.store.access_token
        self._views: list[TableMirror[Any]] = []

    @classmethod
    def from_env(cls, notifier: Callable[[Notice], None] | None = None) -> LibraryPortal:
        """Build a portal from SUPABASE_URL, SUPABASE_ANON_KEY and SUPABASE_DB_URL."""
        return cls(get_auth(), get_rest_client(), ChangeFeed(), notifier)

    async def start(self, listen: bool = True) -> None:
        await self.store.initialize()
        self.auth.start_auto_refresh()
        if listen:
            await self.feed.start()

    # ------------------------------------------------------------------
    # Auth actions
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResult:
        error = validate_login(email, password)
        if error:
            return AuthResult(success=False, error=error, message=error)
        return await self.store.sign_in(email.strip(), password)

    async def register(self, form: RegistrationForm) -> AuthResult:
        error = form.validate_form()
        if error:
            return AuthResult(success=False, error=error, message=error)
        return await self.store.sign_up(form.to_registration())

    async def logout(self) -> AuthResult:
        for view in self._views:
            view.close()
        self._views.clear()
        return await self.store.sign_out()

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def guard(self, require_admin: bool = False) -> GuardDecision:
        return guard_route(self.store.state, require_admin)

    async def open_admin_view(self, name: str) -> TableMirror[Any]:
        """Build, subscribe and load the mirror behind an admin page."""
        decision = self.guard(require_admin=True)
        if decision != GuardDecision.ALLOW or not self.store.is_admin:
            logger.warning(f"Denied admin view {name}: {decision}")
            raise AccessDenied(name, decision)

        view_class = get_view_class(name)
        view = view_class(self.rest, self.feed, self.notifier)
        self._views.append(view)
        await view.mount()
        return view

    def close_view(self, view: TableMirror[Any]) -> None:
        view.close()
        if view in self._views:
            self._views.remove(view)

    async def close(self) -> None:
        for view in self._views:
            view.close()
        self._views.clear()
        await self.store.close()
        await self.auth.stop_auto_refresh()
        await self.feed.stop()
        await self.rest.close()
        await self.auth.close()
