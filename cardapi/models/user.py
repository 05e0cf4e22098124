"""
User model — the authentication identity.

Each User is a login credential (normalized username + Argon2 hash) plus
the state of its single refresh credential:

  - refresh_token_hash: SHA-256 digest of the current refresh secret
  - refresh_token_expires_at: absolute expiry of that secret

The two refresh columns are always written together through
set_refresh_credential() / clear_refresh_credential(); nothing else in the
codebase assigns them.

Concurrency:
  credential_version is SQLAlchemy's version_id_col. Every UPDATE of a user
  row includes "WHERE credential_version = <value read>", so two writers
  that read the same refresh state cannot both commit; the loser gets a
  StaleDataError. This is the compare-and-swap behind refresh rotation when
  several API processes share one database.

Users are never deleted. disable() blocks login and refresh while keeping
their cards and transactions.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from cardapi.database import Base
from cardapi.exceptions import ValidationError


def normalize_username(username: str | None) -> str:
    """Trim and lower-case a username; lookups and storage both use this."""
    return (username or "").strip().lower()


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Normalized (trimmed, lower-case) login name
    username: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    hashed_password: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    # Soft-disable: deactivated users can't log in or refresh
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    refresh_token_hash: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    credential_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": credential_version}

    @classmethod
    def register(cls, username: str, hashed_password: str) -> "User":
        """Build a new active user; the username is normalized here."""
        normalized = normalize_username(username)
        if not normalized:
            raise ValidationError("username", "Username is required")
        if not hashed_password or not hashed_password.strip():
            raise ValidationError("password", "Password hash is required")
        return cls(
            id=uuid.uuid4(),
            username=normalized,
            hashed_password=hashed_password,
            is_active=True,
        )

    def set_refresh_credential(self, token_hash: str, expires_at: datetime) -> None:
        self.refresh_token_hash = token_hash
        self.refresh_token_expires_at = expires_at

    def clear_refresh_credential(self) -> None:
        self.refresh_token_hash = None
        self.refresh_token_expires_at = None

    def disable(self) -> None:
        self.is_active = False
