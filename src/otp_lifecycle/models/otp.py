"""SQLAlchemy models for issued codes, issuance history and the rate-limit log."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

OTP_LENGTH = 6


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


class UtcDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp on every backend.

    SQLite drops ``tzinfo`` on the way in and hands back naive values; this
    normalises binds to UTC and re-attaches UTC on load so comparisons
    against the clock never mix naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime cannot be stored; attach a timezone")
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class OtpRecord(Base):
    """One issued code and its lifecycle flags.

    A record is *active* while both ``used`` and ``invalidated`` are false.
    At most one active record exists per identity; the partial unique index
    below rejects a second one even if a writer skips the identity lock.
    """

    __tablename__ = "otp_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(
        String(255), nullable=False, doc="Normalized (lowercased, trimmed) email"
    )
    code: Mapped[str] = mapped_column(String(OTP_LENGTH), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
    resend_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invalidated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_otp_records_identity", "identity"),
        Index(
            "uq_otp_records_active_identity",
            "identity",
            unique=True,
            sqlite_where=text("used = 0 AND invalidated = 0"),
            postgresql_where=text("NOT used AND NOT invalidated"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return not self.used and not self.invalidated

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"<OtpRecord id={self.id} identity={self.identity!r} "
            f"resend_count={self.resend_count} used={self.used} "
            f"invalidated={self.invalidated}>"
        )


class OtpHistory(Base):
    """Append-only log of every code ever issued, for uniqueness checks."""

    __tablename__ = "otp_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(OTP_LENGTH), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    __table_args__ = (Index("ix_otp_history_identity_created", "identity", "created_at"),)


class OtpRateLimit(Base):
    """Append-only log of send-initiated requests."""

    __tablename__ = "otp_rate_limit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(255), nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    requested_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)

    __table_args__ = (
        Index("ix_otp_rate_limit_identity_requested", "identity", "requested_at"),
    )


class IdentityLock(Base):
    """One row per identity, write-locked for the length of a lifecycle transaction."""

    __tablename__ = "otp_identity_locks"

    identity: Mapped[str] = mapped_column(String(255), primary_key=True)
    acquired_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=lambda: datetime.now(UTC)
    )
