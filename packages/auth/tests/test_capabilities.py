"""Tests for the capability gate and route guard."""

from __future__ import annotations

import pytest
from gcmn_auth.capabilities import GuardDecision, guard_route, is_admin
from gcmn_shared.auth_models import AuthState, Identity, Profile, Session

IDENTITY = Identity(id="u-1", email="ayesha@gcmn.edu.pk")
SESSION = Session(identity=IDENTITY, access_token="token")


def _profile(role: str) -> Profile:
    return Profile(identity_id="u-1", email=IDENTITY.email, full_name="Ayesha", role=role)


def _state(profile: Profile | None = None, loading: bool = False, signed_in: bool = True) -> AuthState:
    return AuthState(
        identity=IDENTITY if signed_in else None,
        session=SESSION if signed_in else None,
        profile=profile,
        is_admin=is_admin(profile),
        auth_loading=loading,
    )


class TestIsAdmin:
    def test_unresolved_profile_is_not_admin(self):
        assert is_admin(None) is False

    def test_user_role(self):
        assert is_admin(_profile("user")) is False

    def test_admin_role(self):
        assert is_admin(_profile("admin")) is True


class TestGuardRoute:
    @pytest.mark.parametrize("require_admin", [False, True])
    def test_loading_is_pending(self, require_admin):
        state = _state(loading=True, signed_in=False)
        assert guard_route(state, require_admin) == GuardDecision.PENDING

    @pytest.mark.parametrize("require_admin", [False, True])
    def test_signed_out_redirects_to_login(self, require_admin):
        assert guard_route(_state(signed_in=False), require_admin) == GuardDecision.REDIRECT_LOGIN

    def test_signed_in_user_may_view_protected_page(self):
        assert guard_route(_state(_profile("user"))) == GuardDecision.ALLOW

    def test_protected_page_does_not_wait_for_profile(self):
        assert guard_route(_state(None)) == GuardDecision.ALLOW

    def test_admin_page_waits_for_profile(self):
        assert guard_route(_state(None), require_admin=True) == GuardDecision.PENDING

    def test_non_admin_redirected_home(self):
        decision = guard_route(_state(_profile("user")), require_admin=True)
        assert decision == GuardDecision.REDIRECT_HOME

    def test_admin_allowed(self):
        assert guard_route(_state(_profile("admin")), require_admin=True) == GuardDecision.ALLOW
