"""
Security utilities: password hashing, access tokens, and refresh secrets.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - The rest of the code only sees the PasswordHasher protocol; the
     Argon2 implementation uses passlib's CryptContext

2. ACCESS TOKENS (JWT, HS256)
   - TokenCodec signs and verifies short-lived access tokens
   - The signing key, issuer and audience are passed in at construction;
     nothing here reads global settings
   - Two verification paths exist: verify_active() enforces expiry and is
     used for resource access; verify_expired_allowed() skips only the
     expiry check so the refresh flow can recover identity from a stale
     access token

3. REFRESH SECRETS (opaque random values)
   - 256 random bits, URL-safe text, handed to the client exactly once
   - Only the SHA-256 digest is persisted
   - Digests are compared with hmac.compare_digest; both sides are always
     64 hex characters, so the comparison time never depends on content
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from jose import JWTError, jwt
from passlib.context import CryptContext

from cardapi.exceptions import InvalidTokenError


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

class PasswordHasher(Protocol):
    """Opaque password-hashing capability used by the auth service."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, password_hash: str) -> bool: ...


class Argon2PasswordHasher:
    """
    Argon2id hashing via passlib.

    deprecated="auto" lets passlib verify hashes from retired schemes while
    new hashes always use the active one.
    """

    def __init__(self):
        self._context = CryptContext(schemes=["argon2"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        # passlib raises ValueError for hashes it cannot identify
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            return False


# ---------------------------------------------------------------------------
# 2. Access Tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenClaims:
    """Claims recovered from a verified access token."""
    subject: str | None
    username: str | None
    token_id: str | None
    issued_at: datetime | None
    expires_at: datetime | None


def _timestamp_to_datetime(value) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class TokenCodec:
    """
    Creates and verifies signed, time-bounded access tokens.

    Args:
        secret_key: Symmetric HMAC key shared by issuer and verifier.
        issuer: Value of the "iss" claim; verified on decode.
        audience: Value of the "aud" claim; verified on decode.
        access_token_ttl: Lifetime of issued tokens.
        algorithm: JWS algorithm. Only this algorithm is accepted on decode.
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        audience: str,
        access_token_ttl: timedelta = timedelta(minutes=15),
        algorithm: str = "HS256",
    ):
        self._secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.access_token_ttl = access_token_ttl
        self.algorithm = algorithm

    def issue_access_token(self, user, now: datetime | None = None) -> str:
        """
        Create a signed access token for a user.

        The payload contains:
          - "sub": user ID (standard JWT subject claim)
          - "unique_name": normalized username
          - "jti": fresh random token ID
          - "iss" / "aud": issuer and audience
          - "iat" / "nbf" / "exp": issue time, not-before, expiry
        """
        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "unique_name": user.username,
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": now + self.access_token_ttl,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self.algorithm)

    def verify_active(self, token: str) -> TokenClaims:
        """Verify signature, algorithm, issuer, audience, and expiry."""
        return self._decode(token, verify_exp=True)

    def verify_expired_allowed(self, token: str) -> TokenClaims:
        """
        Verify everything except expiry.

        Only the refresh flow may call this: its purpose is to accept an
        access token after it has expired.
        """
        return self._decode(token, verify_exp=False)

    def _decode(self, token: str, verify_exp: bool) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": verify_exp,
                    "require_exp": True,
                    "require_iss": True,
                    "require_aud": True,
                },
            )
            return TokenClaims(
                subject=payload.get("sub"),
                username=payload.get("unique_name"),
                token_id=payload.get("jti"),
                issued_at=_timestamp_to_datetime(payload.get("iat")),
                expires_at=_timestamp_to_datetime(payload.get("exp")),
            )
        except (JWTError, TypeError, ValueError, AttributeError) as exc:
            raise InvalidTokenError(f"access token rejected: {exc.__class__.__name__}") from exc


# ---------------------------------------------------------------------------
# 3. Refresh Secrets
# ---------------------------------------------------------------------------

# Length of a hex-encoded SHA-256 digest
DIGEST_LENGTH = hashlib.sha256().digest_size * 2


def new_opaque_secret() -> str:
    """Generate a 256-bit random refresh secret as URL-safe base64 text."""
    return secrets.token_urlsafe(32)


def digest_secret(secret: str) -> str:
    """Return the SHA-256 hex digest of a refresh secret (always 64 chars)."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def constant_time_equals(a: str | None, b: str | None) -> bool:
    """
    Compare two refresh-secret digests in constant time.

    Anything that is not a DIGEST_LENGTH string is rejected up front. Real
    digests always have that length, so this branch never depends on the
    content of a valid digest.
    """
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    if len(a) != DIGEST_LENGTH or len(b) != DIGEST_LENGTH:
        return False
    return hmac.compare_digest(a.encode("ascii", "replace"), b.encode("ascii", "replace"))
