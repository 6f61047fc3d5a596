"""
auth/service.py -- User provisioning on login and the actuator service user.

provision_oauth_user() is the only place users are created from an external
login. The first login creates the record; later logins refresh the profile
fields the provider owns (name, email, picture) and stamp last_logon. Roles
are never touched here once the user exists -- only an admin role-patch
changes them.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import IntegrityError

from auth.models import OAuthProfile, Role, User
from auth.store import UserStore

logger = logging.getLogger("bookshelf.auth.service")

ACTUATOR_PROVIDER = "local"
ACTUATOR_AUTH_ID = "actuator"
ACTUATOR_FULL_NAME = "Actuator service user"


def is_actuator_user(user: User) -> bool:
    """True for the local service user behind actuator tokens."""
    return user.auth_provider == ACTUATOR_PROVIDER and user.auth_id == ACTUATOR_AUTH_ID


def provision_oauth_user(store: UserStore, profile: OAuthProfile, admin_emails: Iterable[str] = ()) -> User:
    """Return the stored user for an external login, creating it on first login.

    New users get ROLE_USER; a verified email listed in admin_emails also gets
    ROLE_ADMIN so a fresh install has someone able to hand out roles.
    """
    existing = store.get_by_auth(profile.provider, profile.subject)
    if existing is not None:
        store.update_profile(existing.id, profile.full_name, profile.email, profile.picture)
        return store.get_by_id(existing.id)

    roles = {Role.USER}
    if profile.email and profile.email.lower() in {e.lower() for e in admin_emails}:
        roles.add(Role.ADMIN)

    try:
        user_id = store.create_user(
            User(
                full_name=profile.full_name,
                auth_provider=profile.provider,
                auth_id=profile.subject,
                email=profile.email,
                picture=profile.picture,
                roles=roles,
            )
        )
    except IntegrityError:
        # A concurrent first login for the same subject created the row first.
        winner = store.get_by_auth(profile.provider, profile.subject)
        if winner is None:
            raise
        logger.info("Concurrent first login for %s user %s; reusing stored record", profile.provider, winner.id)
        return winner
    logger.info("Created user %s for %s login (roles=%s)", user_id, profile.provider, sorted(r.value for r in roles))
    return store.get_by_id(user_id)


def ensure_actuator_user(store: UserStore) -> User:
    """Create or refresh the local service user that monitoring tools act as.

    The actuator user only ever holds ROLE_ACTUATOR, whatever was stored before.
    """
    existing = store.get_by_auth(ACTUATOR_PROVIDER, ACTUATOR_AUTH_ID)
    if existing is None:
        user_id = store.create_user(
            User(
                full_name=ACTUATOR_FULL_NAME,
                auth_provider=ACTUATOR_PROVIDER,
                auth_id=ACTUATOR_AUTH_ID,
                roles={Role.ACTUATOR},
            )
        )
        logger.info("Created actuator user %s", user_id)
        return store.get_by_id(user_id)

    store.update_profile(existing.id, ACTUATOR_FULL_NAME, existing.email, existing.picture)
    store.update_roles(existing.id, {Role.ACTUATOR})
    return store.get_by_id(existing.id)
