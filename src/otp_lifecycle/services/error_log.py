"""Error-log sink — persists boundary failures for later debugging."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from otp_lifecycle.models.error_log import ErrorLog

logger = logging.getLogger(__name__)


@dataclass
class ErrorLogEntry:
    """Value object describing one failure to record."""

    correlation_id: str
    error_message: str
    email: str | None = None
    error_type: str | None = None
    error_stack: str | None = None
    request_path: str | None = None
    request_method: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException, correlation_id: str, **kwargs) -> ErrorLogEntry:
        """Build an entry carrying the exception's message, type and traceback."""
        return cls(
            correlation_id=correlation_id,
            error_message=str(exc) or exc.__class__.__name__,
            error_type=exc.__class__.__name__,
            error_stack="".join(traceback.format_exception(exc)),
            **kwargs,
        )


class ErrorLogService:
    """Writes :class:`ErrorLogEntry` rows in a session of its own.

    Logging an error must never turn into a second failure for the caller,
    so database errors here are reported through :mod:`logging` only.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def log_error(self, entry: ErrorLogEntry) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    ErrorLog(
                        correlation_id=entry.correlation_id,
                        email=entry.email,
                        error_message=entry.error_message,
                        error_type=entry.error_type,
                        error_stack=entry.error_stack,
                        request_path=entry.request_path,
                        request_method=entry.request_method,
                    )
                )
        except SQLAlchemyError:
            logger.exception("Failed to persist error log entry: %r", entry)
            return

        logger.info(
            "Error logged for correlation %s: %s (%s)",
            entry.correlation_id,
            entry.error_message,
            entry.error_type,
        )
