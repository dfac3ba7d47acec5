"""Profile Resolver — turns an Identity into a Profile.

A Profile is composed from two independent lookups:
  - user_roles: any 'admin' row makes the identity an admin; no row (or only
    'user'/'moderator' rows) means 'user'.
  - profiles: display name and student attributes; no row means the name
    falls back to the local part of the email.

Both lookups run concurrently and fail independently. A failed lookup is
logged and replaced by its default, so resolve() always returns a usable
Profile and never raises — except for cancellation, which the Session Store
uses to supersede a resolution that a newer auth transition made stale.
"""

from __future__ import annotations

import asyncio
import logging

from gcmn_data_access.rest import RestClient
from gcmn_shared import relations
from gcmn_shared.auth_models import Profile, Role
from gcmn_shared.record_models import ProfileAttributes

logger = logging.getLogger(__name__)


class ProfileResolver:
    """Builds Profiles from the role and profile-attribute relations."""

    def __init__(self, rest: RestClient) -> None:
        self.rest = rest

    async def resolve(self, identity_id: str, email: str) -> Profile:
        role, attributes = await asyncio.gather(
            self._lookup_role(identity_id),
            self._lookup_attributes(identity_id),
        )

        if attributes is None:
            return Profile(
                identity_id=identity_id,
                email=email,
                full_name=email.split("@", 1)[0],
                role=role,
            )
        return Profile(
            identity_id=identity_id,
            email=email,
            full_name=attributes.full_name or email.split("@", 1)[0],
            role=role,
            department=attributes.department,
            phone=attributes.phone,
            roll_number=attributes.roll_number,
            student_class=attributes.student_class,
        )

    async def _lookup_role(self, identity_id: str) -> Role:
        try:
            rows = await self.rest.select(
                relations.USER_ROLES,
                columns="role",
                filters={"user_id": identity_id},
            )
        except Exception:
            logger.exception(f"Role lookup failed for {identity_id}, defaulting to 'user'")
            return "user"
        if any(row.get("role") == "admin" for row in rows):
            return "admin"
        return "user"

    async def _lookup_attributes(self, identity_id: str) -> ProfileAttributes | None:
        try:
            row = await self.rest.select_one(
                relations.PROFILES,
                filters={"user_id": identity_id},
            )
            if row is None:
                return None
            return ProfileAttributes.model_validate(row)
        except Exception:
            logger.exception(f"Profile lookup failed for {identity_id}, using defaults")
            return None
