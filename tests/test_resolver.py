"""Unit tests for auth/resolver.py -- Google profile -> AuthOutcome.

Most tests run against a real in-memory UserStore so the assertions cover what
was actually persisted. A small fake directory is used where the test needs to
observe call patterns or inject failures.
"""

from __future__ import annotations

import logging
import threading
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.models import ROLE_ADMIN, ROLE_EDITOR, Authenticated, AuthError, Rejected, User
from auth.resolver import (
    MESSAGE_EMAIL_NOT_PROVIDED,
    MESSAGE_NOT_INVITED,
    REASON_EMAIL_NOT_PROVIDED,
    REASON_NOT_INVITED,
    IdentityContext,
    profile_email,
    resolve_identity,
)


def _ctx(store, allowed_domains: str = "example.com") -> IdentityContext:
    return IdentityContext(users=store, allowed_domains=allowed_domains)


async def _resolve(ctx, profile):
    return await resolve_identity(ctx, "access", "refresh", profile)


def _seed_admin(store) -> User:
    return store.create(User(email="root@example.com", role=ROLE_ADMIN))


class RendezvousDirectory:
    """Directory whose two lookups each block until the other one has started."""

    def __init__(self, user: User | None):
        self.user = user
        self.barrier = threading.Barrier(2, timeout=2)

    def admin_registration_open(self) -> bool:
        self.barrier.wait()
        return False

    def find_one_by_email(self, email: str) -> User | None:
        self.barrier.wait()
        return self.user

    def update(self, user_id: int, **fields) -> User | None:
        return User(id=user_id, email=self.user.email, role=self.user.role, signup_at=fields.get("signup_at"))

    def create(self, user: User) -> User:
        raise AssertionError("create should not be called")


# ---------------------------------------------------------------------------
# Missing email
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestMissingEmail:
    @pytest.mark.parametrize("profile", [None, {}, {"email": ""}, {"email": "   "}, {"name": "Ada"}])
    async def test_rejected_with_message(self, user_store, profile):
        outcome = await _resolve(_ctx(user_store), profile)
        assert outcome == Rejected(reason=REASON_EMAIL_NOT_PROVIDED, message=MESSAGE_EMAIL_NOT_PROVIDED)
        assert outcome.message.startswith("email not provided")

    async def test_directory_is_not_consulted(self):
        directory = MagicMock()
        await _resolve(_ctx(directory), {"name": "Ada"})
        directory.admin_registration_open.assert_not_called()
        directory.find_one_by_email.assert_not_called()


# ---------------------------------------------------------------------------
# Existing users
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestExistingUser:
    async def test_enabled_user_is_authenticated_and_stamped(self, user_store):
        _seed_admin(user_store)
        existing = user_store.create(User(email="ada@example.com", role=ROLE_EDITOR, signup_at="2020-01-01T00:00:00+00:00"))

        outcome = await _resolve(_ctx(user_store), {"email": "ada@example.com"})

        assert isinstance(outcome, Authenticated)
        user = outcome.user
        assert user.id == existing.id
        assert user.email == existing.email
        assert user.role == existing.role
        assert user.disabled is False
        assert user.created_at == existing.created_at
        assert user.signup_at > existing.signup_at
        assert user_store.get_by_id(existing.id).signup_at == user.signup_at

    async def test_existing_user_outside_allow_list_still_signs_in(self, user_store):
        _seed_admin(user_store)
        user_store.create(User(email="guest@elsewhere.org", role=ROLE_EDITOR))

        outcome = await _resolve(_ctx(user_store, allowed_domains=""), {"email": "guest@elsewhere.org"})

        assert isinstance(outcome, Authenticated)
        assert outcome.user.email == "guest@elsewhere.org"

    async def test_disabled_user_rejected_without_message(self, user_store):
        _seed_admin(user_store)
        disabled = user_store.create(User(email="ada@example.com", role=ROLE_EDITOR, disabled=True))

        outcome = await _resolve(_ctx(user_store), {"email": "ada@example.com"})

        assert outcome == Rejected()
        assert outcome.message is None
        assert outcome.reason is None
        assert user_store.get_by_id(disabled.id) == disabled


# ---------------------------------------------------------------------------
# New users
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestNewUser:
    async def test_first_user_becomes_admin_regardless_of_domain(self, user_store):
        outcome = await _resolve(_ctx(user_store, allowed_domains=""), {"email": "founder@anywhere.dev"})

        assert isinstance(outcome, Authenticated)
        assert outcome.user.role == ROLE_ADMIN
        assert outcome.user.email == "founder@anywhere.dev"
        assert outcome.user.signup_at is not None
        assert user_store.find_one_by_email("founder@anywhere.dev") == outcome.user

    async def test_allow_listed_domain_becomes_editor(self, user_store):
        _seed_admin(user_store)

        outcome = await _resolve(_ctx(user_store), {"email": "bob@example.com"})

        assert isinstance(outcome, Authenticated)
        assert outcome.user.role == ROLE_EDITOR
        assert outcome.user.signup_at is not None
        assert outcome.user.disabled is False

    async def test_uninvited_domain_rejected_with_message(self, user_store):
        _seed_admin(user_store)

        outcome = await _resolve(_ctx(user_store), {"email": "mallory@evil.com"})

        assert outcome == Rejected(reason=REASON_NOT_INVITED, message=MESSAGE_NOT_INVITED)
        assert outcome.message == "not invited"
        assert user_store.find_one_by_email("mallory@evil.com") is None
        assert len(user_store.list_users()) == 1

    async def test_uninvited_rejection_logs_domain_not_address(self, user_store, caplog):
        _seed_admin(user_store)

        with caplog.at_level(logging.INFO, logger="signon.auth.resolver"):
            await _resolve(_ctx(user_store), {"email": "mallory@evil.com"})

        messages = [r.getMessage() for r in caplog.records if r.name == "signon.auth.resolver"]
        assert any("evil.com" in m for m in messages)
        assert not any("mallory" in m for m in messages)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestConcurrentLookups:
    async def test_registration_check_and_lookup_overlap(self):
        # Each lookup waits for the other; run one after the other they time out.
        directory = RendezvousDirectory(User(id=3, email="ada@example.com", role=ROLE_EDITOR))

        outcome = await _resolve(_ctx(directory), {"email": "ada@example.com"})

        assert isinstance(outcome, Authenticated), outcome
        assert outcome.user.id == 3
        assert directory.barrier.broken is False


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestDirectoryFailures:
    async def test_lookup_failure_is_error_outcome(self):
        directory = MagicMock()
        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        directory.admin_registration_open.return_value = False
        directory.find_one_by_email.side_effect = failure

        outcome = await _resolve(_ctx(directory), {"email": "ada@example.com"})

        assert isinstance(outcome, AuthError)
        assert outcome.error is failure

    async def test_update_failure_is_error_outcome(self):
        directory = MagicMock()
        directory.admin_registration_open.return_value = False
        directory.find_one_by_email.return_value = User(id=7, email="ada@example.com", role=ROLE_EDITOR)
        directory.update.side_effect = RuntimeError("write failed")

        outcome = await _resolve(_ctx(directory), {"email": "ada@example.com"})

        assert isinstance(outcome, AuthError)
        assert isinstance(outcome.error, RuntimeError)

    async def test_user_deleted_mid_sign_in_is_error_outcome(self):
        directory = MagicMock()
        directory.admin_registration_open.return_value = False
        directory.find_one_by_email.return_value = User(id=7, email="ada@example.com", role=ROLE_EDITOR)
        directory.update.return_value = None

        outcome = await _resolve(_ctx(directory), {"email": "ada@example.com"})

        assert isinstance(outcome, AuthError)
        assert isinstance(outcome.error, LookupError)

    async def test_duplicate_create_race_is_error_outcome(self, user_store):
        _seed_admin(user_store)
        directory = MagicMock(wraps=user_store)
        # Simulate a concurrent sign-in inserting the row between lookup and create.
        directory.find_one_by_email.return_value = None
        user_store.create(User(email="bob@example.com", role=ROLE_EDITOR))

        outcome = await _resolve(_ctx(directory), {"email": "bob@example.com"})

        assert isinstance(outcome, AuthError)
        assert isinstance(outcome.error, IntegrityError)


# ---------------------------------------------------------------------------
# profile_email
# ---------------------------------------------------------------------------


def test_profile_email_strips_whitespace():
    assert profile_email({"email": "  ada@example.com "}) == "ada@example.com"


def test_profile_email_ignores_non_string():
    assert profile_email({"email": ["ada@example.com"]}) is None
