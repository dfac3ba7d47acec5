"""Capability gate — what the current user may see.

Pure derivations from the session triple. Nothing here holds state; every
answer is recomputed from the AuthState it is given.
"""

from __future__ import annotations

from enum import StrEnum

from gcmn_shared.auth_models import AuthState, Profile


def is_admin(profile: Profile | None) -> bool:
    """True only for a resolved profile with the admin role.

    An unresolved profile is never treated as admin, including while the
    resolution is still in flight.
    """
    return profile is not None and profile.role == "admin"


class GuardDecision(StrEnum):
    """Outcome of a route guard check."""

    PENDING = "pending"  # auth still loading, render a spinner
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_HOME = "redirect_home"


def guard_route(state: AuthState, require_admin: bool = False) -> GuardDecision:
    """Decide whether a protected view may render."""
    if state.auth_loading:
        return GuardDecision.PENDING
    if state.identity is None:
        return GuardDecision.REDIRECT_LOGIN
    if require_admin and state.profile is None:
        # identity known, profile still resolving: deny rendering, but wait
        return GuardDecision.PENDING
    if require_admin and not is_admin(state.profile):
        return GuardDecision.REDIRECT_HOME
    return GuardDecision.ALLOW
