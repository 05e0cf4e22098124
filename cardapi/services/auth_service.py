"""
Authentication service — signup, login, and refresh-token rotation.

This module contains the token-lifecycle logic, separated from HTTP
concerns. The router calls AuthService and translates the results into
HTTP responses.

Login flow:
  1. Normalize the username and look the user up
  2. Verify the password (a dummy hash is verified when the user is
     missing, so response time does not reveal which usernames exist)
  3. Reject inactive users
  4. Issue an access token and a fresh refresh secret; store only the
     secret's SHA-256 digest and its absolute expiry

Refresh flow:
  1. Verify the presented access token, ignoring only its expiry
  2. Parse the subject claim as a user id
  3. Load the user; missing or inactive users are rejected
  4. Digest the presented refresh secret
  5. Require a stored digest, an unexpired stored expiry, and a
     constant-time match between the two digests
  6. If any check in step 5 fails, clear the stored credential and commit
     before raising. A stolen-and-replayed or tampered secret therefore
     kills the whole refresh chain and forces a fresh login.
  7. Otherwise rotate: new access token, new refresh secret, new digest
     and expiry overwrite the old ones. Each secret works exactly once.

Concurrency:
  Steps 3-7 run under a per-user asyncio.Lock held by this (process-wide)
  service, and the credential write is committed before the lock is
  released. A second refresh racing on the same secret therefore sees the
  rotated digest and fails like any replay. Across processes, the user's
  version column turns a write based on a stale read into StaleDataError,
  which is rolled back and reported as an invalid token.

Every failure returns the same client-facing error. The reason is only
logged.
"""

import asyncio
import logging
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from cardapi.database import as_utc
from cardapi.exceptions import (
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from cardapi.models.user import User, normalize_username
from cardapi.security import (
    PasswordHasher,
    TokenCodec,
    constant_time_equals,
    digest_secret,
    new_opaque_secret,
)


logger = logging.getLogger("cardapi.auth")


@dataclass(frozen=True)
class TokenPair:
    """Clear-text tokens handed to the client exactly once."""
    access_token: str
    refresh_token: str


class AuthService:
    """
    Issues and rotates credentials.

    One instance is shared by all requests in a process; it holds no
    per-request state, only the per-user rotation locks.

    Args:
        codec: Access-token signer/verifier.
        hasher: Password hashing capability.
        refresh_token_ttl: Absolute lifetime of a refresh secret.
        lock_timeout: Seconds to wait for a concurrent credential write of
            the same user before giving up.
    """

    def __init__(
        self,
        codec: TokenCodec,
        hasher: PasswordHasher,
        refresh_token_ttl: timedelta = timedelta(days=7),
        lock_timeout: float = 5.0,
    ):
        self.codec = codec
        self.hasher = hasher
        self.refresh_token_ttl = refresh_token_ttl
        self.lock_timeout = lock_timeout
        # Entries live only while some request holds or waits for them
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._lock_users: Counter[uuid.UUID] = Counter()
        # Computed once so unknown-username logins cost the same as real ones
        self._dummy_hash = hasher.hash("cardapi-timing-equalization")

    # ------------------------------------------------------------------ #
    # Signup
    # ------------------------------------------------------------------ #

    async def register(self, db: AsyncSession, username: str, password: str) -> User:
        """
        Create a new active user.

        Raises:
            ValidationError: If the username is blank.
            DuplicateUsernameError: If the normalized username is taken.
        """
        normalized = normalize_username(username)
        if await self._find_by_username(db, normalized) is not None:
            raise DuplicateUsernameError(normalized)

        user = User.register(normalized, self.hasher.hash(password))
        db.add(user)
        await db.flush()
        logger.info("User %s registered", user.id)
        return user

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    async def login(self, db: AsyncSession, username: str, password: str) -> TokenPair:
        """
        Authenticate credentials and issue a fresh token pair.

        Raises:
            InvalidCredentialsError: Unknown user, wrong password, or
                disabled account (indistinguishable to the caller).
        """
        password = password or ""
        user = await self._find_by_username(db, normalize_username(username))

        if user is None:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("Login rejected: unknown username")
            raise InvalidCredentialsError()

        user_id = user.id
        if not self.hasher.verify(password, user.hashed_password):
            logger.info("Login rejected for user %s: wrong password", user_id)
            raise InvalidCredentialsError()

        async with self._credential_lock(user_id, InvalidCredentialsError()):
            user = await self._load_user(db, user_id)
            if user is None or not user.is_active:
                logger.info("Login rejected for user %s: inactive", user_id)
                raise InvalidCredentialsError()

            pair = await self._issue_and_persist(
                db, user, datetime.now(timezone.utc), InvalidCredentialsError()
            )

        logger.info("User %s logged in", user_id)
        return pair

    # ------------------------------------------------------------------ #
    # Refresh with rotation
    # ------------------------------------------------------------------ #

    async def refresh(
        self,
        db: AsyncSession,
        access_token: str,
        refresh_token: str,
    ) -> TokenPair:
        """
        Exchange an (possibly expired) access token and the current refresh
        secret for a brand-new pair.

        Raises:
            InvalidTokenError: On any failure. Failures at the refresh-secret
                check also revoke the stored credential.
        """
        if not access_token or not access_token.strip():
            raise self._reject("blank access token")
        if not refresh_token or not refresh_token.strip():
            raise self._reject("blank refresh token")

        try:
            claims = self.codec.verify_expired_allowed(access_token)
        except InvalidTokenError as exc:
            raise self._reject(exc.reason) from exc

        try:
            user_id = uuid.UUID(claims.subject)
        except (TypeError, ValueError, AttributeError):
            raise self._reject("missing or malformed subject")

        async with self._credential_lock(user_id, InvalidTokenError("refresh lock timeout")):
            user = await self._load_user(db, user_id)
            if user is None or not user.is_active:
                raise self._reject("unknown or inactive user")

            presented = digest_secret(refresh_token)
            now = datetime.now(timezone.utc)
            expires_at = as_utc(user.refresh_token_expires_at)

            if user.refresh_token_hash is None:
                reason = "no refresh credential on file"
            elif expires_at is None or expires_at <= now:
                reason = "refresh credential expired"
            elif not constant_time_equals(user.refresh_token_hash, presented):
                reason = "refresh secret mismatch"
            else:
                reason = None

            if reason is not None:
                user.clear_refresh_credential()
                await self._commit(db, InvalidTokenError(reason))
                logger.warning(
                    "Refresh rejected for user %s (%s); refresh credential revoked",
                    user_id, reason,
                )
                raise InvalidTokenError(reason)

            pair = await self._issue_and_persist(db, user, now, InvalidTokenError())

        logger.info("Refresh credential rotated for user %s", user_id)
        return pair

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _issue_and_persist(
        self,
        db: AsyncSession,
        user: User,
        now: datetime,
        on_conflict: Exception,
    ) -> TokenPair:
        access_token = self.codec.issue_access_token(user, now=now)
        refresh_token = new_opaque_secret()

        user.set_refresh_credential(digest_secret(refresh_token), now + self.refresh_token_ttl)
        await self._commit(db, on_conflict)

        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    async def _commit(self, db: AsyncSession, on_conflict: Exception) -> None:
        try:
            await db.commit()
        except StaleDataError as exc:
            await db.rollback()
            logger.warning("Concurrent credential update detected: %s", exc)
            raise on_conflict from exc

    @asynccontextmanager
    async def _credential_lock(self, user_id: uuid.UUID, on_timeout: Exception):
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] += 1
        try:
            try:
                async with asyncio.timeout(self.lock_timeout):
                    await lock.acquire()
            except TimeoutError:
                logger.warning("Timed out waiting for credential lock of user %s", user_id)
                raise on_timeout
            try:
                yield
            finally:
                lock.release()
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    @staticmethod
    def _reject(reason: str) -> InvalidTokenError:
        logger.warning("Refresh rejected: %s", reason)
        return InvalidTokenError(reason)

    @staticmethod
    async def _find_by_username(db: AsyncSession, username: str) -> User | None:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    @staticmethod
    async def _load_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        # populate_existing: always read the committed row, never a stale
        # identity-map copy, since the rotation decision depends on it
        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
