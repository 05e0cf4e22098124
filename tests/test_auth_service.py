"""
Service-level tests for login and refresh-token rotation.

These tests talk to AuthService directly so they can inspect the stored
credential and drive concurrent refreshes.

These tests verify:
  - Login stores only the digest of the refresh secret, with a future expiry
  - A refresh secret works exactly once; its replay revokes the chain
  - A tampered or expired refresh secret revokes the chain
  - Expired access tokens are accepted for refresh, foreign ones are not
  - Disabled users cannot log in or refresh
  - Two simultaneous refreshes with the same secret: exactly one succeeds
  - Per-user refresh locks are released and forgotten afterwards
  - The user's version column refuses a write based on a stale read
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import select, update
from sqlalchemy.orm.exc import StaleDataError

from cardapi.database import as_utc
from cardapi.exceptions import (
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from cardapi.models.user import User
from cardapi.security import Argon2PasswordHasher, TokenCodec, digest_secret
from cardapi.services.auth_service import AuthService


PASSWORD = "AlicePass123!"


async def load_user(session_factory, username: str = "alice") -> User:
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one()


@pytest_asyncio.fixture
async def alice_pair(auth_service, session_factory):
    """Register alice and log her in; returns the first token pair."""
    async with session_factory() as session:
        await auth_service.register(session, "alice", PASSWORD)
        await session.commit()
    async with session_factory() as session:
        return await auth_service.login(session, "alice", PASSWORD)


class TestRegister:

    async def test_username_is_normalized(self, auth_service, db_session):
        user = await auth_service.register(db_session, "  Alice  ", PASSWORD)

        assert user.username == "alice"
        assert user.hashed_password != PASSWORD
        assert user.refresh_token_hash is None

    async def test_duplicate_username_ignores_case(self, auth_service, db_session):
        await auth_service.register(db_session, "alice", PASSWORD)

        with pytest.raises(DuplicateUsernameError):
            await auth_service.register(db_session, "ALICE", PASSWORD)

    async def test_blank_username_rejected(self, auth_service, db_session):
        with pytest.raises(ValidationError):
            await auth_service.register(db_session, "   ", PASSWORD)


class TestLogin:

    async def test_login_persists_only_the_digest(self, alice_pair, session_factory):
        user = await load_user(session_factory)

        assert user.refresh_token_hash == digest_secret(alice_pair.refresh_token)
        assert user.refresh_token_hash != alice_pair.refresh_token
        assert as_utc(user.refresh_token_expires_at) > datetime.now(timezone.utc) + timedelta(days=6)

    async def test_login_is_case_insensitive(self, alice_pair, auth_service, db_session):
        pair = await auth_service.login(db_session, " ALICE ", PASSWORD)

        assert pair.refresh_token != alice_pair.refresh_token

    async def test_second_login_replaces_refresh_secret(
        self, alice_pair, auth_service, db_session
    ):
        await auth_service.login(db_session, "alice", PASSWORD)

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

    @pytest.mark.parametrize(
        "username, password",
        [("alice", "WrongPass123!"), ("nobody", PASSWORD), ("", ""), ("alice", None)],
    )
    async def test_bad_credentials_rejected_uniformly(
        self, alice_pair, auth_service, db_session, username, password
    ):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await auth_service.login(db_session, username, password)

        assert exc_info.value.detail == "Invalid username or password"

    async def test_disabled_user_cannot_log_in(self, alice_pair, auth_service, session_factory):
        async with session_factory() as session:
            user = (await session.execute(select(User))).scalar_one()
            user.disable()
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(InvalidCredentialsError):
                await auth_service.login(session, "alice", PASSWORD)


class TestRefresh:

    async def test_refresh_rotates_both_tokens(self, alice_pair, auth_service, db_session, session_factory):
        pair = await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

        assert pair.refresh_token != alice_pair.refresh_token
        assert pair.access_token != alice_pair.access_token
        user = await load_user(session_factory)
        assert user.refresh_token_hash == digest_secret(pair.refresh_token)

    async def test_new_pair_can_refresh_again(self, alice_pair, auth_service, db_session):
        second = await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)
        third = await auth_service.refresh(db_session, second.access_token, second.refresh_token)

        assert third.refresh_token not in (alice_pair.refresh_token, second.refresh_token)

    async def test_replay_revokes_the_chain(self, alice_pair, auth_service, db_session, session_factory):
        rotated = await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

        # An attacker replays the old secret
        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

        user = await load_user(session_factory)
        assert user.refresh_token_hash is None
        assert user.refresh_token_expires_at is None

        # The legitimate holder is now locked out as well
        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, rotated.access_token, rotated.refresh_token)

    async def test_tampered_secret_revokes_the_chain(self, alice_pair, auth_service, db_session):
        tampered = alice_pair.refresh_token[:-1] + ("A" if alice_pair.refresh_token[-1] != "A" else "B")

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, alice_pair.access_token, tampered)

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

    async def test_expired_secret_rejected_and_cleared(
        self, alice_pair, auth_service, session_factory
    ):
        async with session_factory() as session:
            await session.execute(
                update(User.__table__).values(
                    refresh_token_expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
                )
            )
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(InvalidTokenError) as exc_info:
                await auth_service.refresh(session, alice_pair.access_token, alice_pair.refresh_token)

        assert exc_info.value.reason == "refresh credential expired"
        user = await load_user(session_factory)
        assert user.refresh_token_hash is None

    async def test_expired_access_token_is_accepted(
        self, alice_pair, auth_service, codec, db_session, session_factory
    ):
        user = await load_user(session_factory)
        stale_access = codec.issue_access_token(
            user, now=datetime.now(timezone.utc) - timedelta(hours=2)
        )

        pair = await auth_service.refresh(db_session, stale_access, alice_pair.refresh_token)

        assert pair.refresh_token != alice_pair.refresh_token

    async def test_foreign_access_token_rejected_without_revoking(
        self, alice_pair, auth_service, db_session, session_factory
    ):
        user = await load_user(session_factory)
        forger = TokenCodec(
            secret_key="attacker-controlled-key-with-32-characters",
            issuer=auth_service.codec.issuer,
            audience=auth_service.codec.audience,
        )

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(
                db_session, forger.issue_access_token(user), alice_pair.refresh_token
            )

        # The genuine pair still works
        await auth_service.refresh(db_session, alice_pair.access_token, alice_pair.refresh_token)

    async def test_unknown_subject_rejected(self, alice_pair, auth_service, codec, db_session):
        ghost = SimpleNamespace(id=uuid.uuid4(), username="ghost")

        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(
                db_session, codec.issue_access_token(ghost), alice_pair.refresh_token
            )

    @pytest.mark.parametrize("access, secret", [("", "x"), ("x", ""), ("  ", "  ")])
    async def test_blank_inputs_rejected(self, auth_service, db_session, access, secret):
        with pytest.raises(InvalidTokenError):
            await auth_service.refresh(db_session, access, secret)

    async def test_disabled_user_cannot_refresh(self, alice_pair, auth_service, session_factory):
        async with session_factory() as session:
            user = (await session.execute(select(User))).scalar_one()
            user.disable()
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(InvalidTokenError):
                await auth_service.refresh(session, alice_pair.access_token, alice_pair.refresh_token)


class TestConcurrentRefresh:

    async def test_only_one_of_two_parallel_refreshes_wins(
        self, alice_pair, auth_service, session_factory
    ):
        async def attempt():
            async with session_factory() as session:
                return await auth_service.refresh(
                    session, alice_pair.access_token, alice_pair.refresh_token
                )

        results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InvalidTokenError)

    async def test_lock_timeout_reports_invalid_token(self, alice_pair, codec, session_factory):
        service = AuthService(codec=codec, hasher=Argon2PasswordHasher(), lock_timeout=0.05)
        user = await load_user(session_factory)

        async with service._credential_lock(user.id, RuntimeError("held elsewhere")):
            async with session_factory() as session:
                with pytest.raises(InvalidTokenError) as exc_info:
                    await service.refresh(session, alice_pair.access_token, alice_pair.refresh_token)

        assert exc_info.value.reason == "refresh lock timeout"
        assert service._locks == {}

    async def test_locks_are_dropped_once_released(
        self, alice_pair, auth_service, session_factory
    ):
        """The per-user lock table does not grow with every user ever seen."""
        async with session_factory() as session:
            pair = await auth_service.refresh(
                session, alice_pair.access_token, alice_pair.refresh_token
            )

        async def attempt():
            async with session_factory() as session:
                return await auth_service.refresh(session, pair.access_token, pair.refresh_token)

        await asyncio.gather(attempt(), attempt(), return_exceptions=True)

        assert auth_service._locks == {}
        assert not auth_service._lock_users


class TestCredentialVersion:

    async def test_stale_write_is_refused(self, alice_pair, session_factory):
        async with session_factory() as first, session_factory() as second:
            stale = (await first.execute(select(User))).scalar_one()
            fresh = (await second.execute(select(User))).scalar_one()

            fresh.clear_refresh_credential()
            await second.commit()

            stale.set_refresh_credential(digest_secret("late"), datetime.now(timezone.utc))
            with pytest.raises(StaleDataError):
                await first.commit()
            await first.rollback()

        user = await load_user(session_factory)
        assert user.refresh_token_hash is None
