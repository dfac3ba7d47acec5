"""Read claims from a Supabase access token.

The client never validates tokens — that is the provider's job, and the
client does not hold the JWT secret. It only needs the subject and the expiry
for bookkeeping when a token response omits `expires_at`.
"""

from __future__ import annotations

import jwt as pyjwt
from gcmn_shared.auth_models import AccessTokenClaims


def read_claims(token: str) -> AccessTokenClaims:
    """Decode a JWT payload without verifying it.

    Raises:
        pyjwt.DecodeError: Malformed token.
        KeyError: The token has no `sub` claim.
    """
    payload = pyjwt.decode(token, options={"verify_signature": False})

    return AccessTokenClaims(
        user_id=payload["sub"],
        email=payload.get("email", ""),
        role=payload.get("role", "authenticated"),
        exp=payload.get("exp", 0),
    )
