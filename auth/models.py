"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
resolver do the work; these types only own domain shape.

AuthOutcome is the result of resolving a verified Google profile against the
user directory. It is a closed set of three variants:
  Authenticated -- sign the user in.
  Rejected      -- a normal login failure (no email, disabled, not invited).
                   Never raised; the web layer turns it into a redirect.
  AuthError     -- the directory failed. The web layer turns it into a 5xx.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLES = (ROLE_ADMIN, ROLE_EDITOR)


@dataclass
class User:
    """A member of the user directory.

    email is the only link between a Google identity and a local account.
    signup_at is stamped on every successful Google sign-in (first and
    subsequent), so it doubles as "last signed in".
    """

    email: str
    role: str  # "admin", "editor"
    id: int | None = None
    disabled: bool = False
    signup_at: str | None = None  # ISO 8601 UTC
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Resolution outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Authenticated:
    user: User


@dataclass(frozen=True)
class Rejected:
    """Authentication is invalid but nothing went wrong.

    reason is a machine-readable code for the sign-in page; message is the
    human-readable text. Both are None for disabled accounts -- callers must
    not invent a message for that case.
    """

    reason: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class AuthError:
    error: Exception


AuthOutcome = Union[Authenticated, Rejected, AuthError]


# ---------------------------------------------------------------------------
# Directory contract
# ---------------------------------------------------------------------------


class UserDirectory(Protocol):
    """What the resolver needs from a user store. auth.store.UserStore implements it."""

    def admin_registration_open(self) -> bool: ...

    def find_one_by_email(self, email: str) -> User | None: ...

    def update(self, user_id: int, **fields) -> User | None: ...

    def create(self, user: User) -> User: ...
