"""
auth/resolver.py -- Map a verified Google profile onto the user directory.

Called by the OAuth callback route after Authlib has completed the provider
handshake and the profile has been fetched from the userinfo endpoint. The
profile is trusted; this module only decides what to do with it.

Decision tree:
  1. No email in profile           -> Rejected("email_not_provided")
  2. Existing user, disabled       -> Rejected()  (no reason, no message)
  3. Existing user, enabled        -> stamp signup_at, Authenticated(user)
  4. New user, directory empty     -> create admin, Authenticated(user)
  5. New user, allow-listed domain -> create editor, Authenticated(user)
  6. New user, anything else       -> Rejected("not_invited")
  Directory failure anywhere       -> AuthError(exc)

The disabled-account rejection deliberately carries no message while the
others do. The sign-in page relies on that difference.

The directory (UserStore) is synchronous SQLAlchemy. Its calls run through
asyncio.to_thread so the two independent lookups in step 2-6 can be issued
together with asyncio.gather.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from auth.domains import email_domain, is_allowed
from auth.models import (
    ROLE_ADMIN,
    ROLE_EDITOR,
    Authenticated,
    AuthError,
    AuthOutcome,
    Rejected,
    User,
    UserDirectory,
)

logger = logging.getLogger("signon.auth.resolver")

REASON_EMAIL_NOT_PROVIDED = "email_not_provided"
REASON_NOT_INVITED = "not_invited"

MESSAGE_EMAIL_NOT_PROVIDED = "email not provided from Google"
MESSAGE_NOT_INVITED = "not invited"


@dataclass(frozen=True)
class IdentityContext:
    """Request-scoped collaborators for resolve_identity()."""

    users: UserDirectory
    allowed_domains: str = ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def profile_email(profile: dict | None) -> str | None:
    """Return the email claim from a userinfo profile, or None."""
    if not profile:
        return None
    email = profile.get("email")
    if not isinstance(email, str) or not email.strip():
        return None
    return email.strip()


async def resolve_identity(
    context: IdentityContext,
    access_token: str | None,
    refresh_token: str | None,
    profile: dict | None,
) -> AuthOutcome:
    """Resolve a verified Google profile to an AuthOutcome.

    access_token and refresh_token are accepted for parity with the token
    response but are not stored -- the directory only keys on email.
    """
    email = profile_email(profile)
    if email is None:
        logger.info("Google sign-in rejected: profile has no email")
        return Rejected(reason=REASON_EMAIL_NOT_PROVIDED, message=MESSAGE_EMAIL_NOT_PROVIDED)

    users = context.users
    try:
        registration_open, user = await asyncio.gather(
            asyncio.to_thread(users.admin_registration_open),
            asyncio.to_thread(users.find_one_by_email, email),
        )

        if user is not None:
            if user.disabled:
                logger.info("Google sign-in rejected: account %s is disabled", user.id)
                return Rejected()
            updated = await asyncio.to_thread(users.update, user.id, signup_at=_now_iso())
            if updated is None:
                raise LookupError(f"user {user.id} disappeared during sign-in")
            return Authenticated(updated)

        if registration_open or is_allowed(context.allowed_domains, email):
            role = ROLE_ADMIN if registration_open else ROLE_EDITOR
            created = await asyncio.to_thread(users.create, User(email=email, role=role, signup_at=_now_iso()))
            logger.info("Provisioned %s account %s via Google sign-in", role, created.id)
            return Authenticated(created)

    except Exception as exc:
        logger.exception("User directory failure during Google sign-in")
        return AuthError(exc)

    # Not an error: authentication is simply invalid for this address.
    logger.info("Google sign-in rejected: domain %s is not invited", email_domain(email))
    return Rejected(reason=REASON_NOT_INVITED, message=MESSAGE_NOT_INVITED)
