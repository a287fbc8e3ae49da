"""SQLAlchemy ErrorLog model."""

from datetime import UTC, datetime

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from otp_lifecycle.models.otp import Base, UtcDateTime


class ErrorLog(Base):
    """A failure recorded at the HTTP boundary, keyed by correlation ID."""

    __tablename__ = "error_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    correlation_id: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    error_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_stack: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    request_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("ix_error_logs_correlation_id", "correlation_id"),)

    def __repr__(self) -> str:
        return f"<ErrorLog id={self.id} correlation_id={self.correlation_id!r} type={self.error_type!r}>"
