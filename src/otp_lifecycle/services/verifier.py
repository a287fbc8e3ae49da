"""Verifier — fixed-time code comparison and the single-use flip."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime

from otp_lifecycle.database.repository import OtpRepository
from otp_lifecycle.models.otp import OtpRecord
from otp_lifecycle.services.errors import InvalidOtp, OtpExpired, OtpNotFound

logger = logging.getLogger(__name__)


def constant_time_equals(supplied: str, stored: str) -> bool:
    """Compare two codes without stopping at the first differing position.

    Inputs of different length short-circuit; the length of a code is not
    secret.
    """
    if len(supplied) != len(stored):
        return False
    return hmac.compare_digest(supplied.encode(), stored.encode())


class Verifier:
    """Checks a supplied code against an active record and consumes it."""

    def __init__(self, repository: OtpRepository) -> None:
        self._repo = repository

    async def verify(self, record: OtpRecord, supplied: str, now: datetime) -> bool:
        if record.is_expired(now):
            raise OtpExpired("This OTP code has expired. Please request a new one.")

        if not constant_time_equals(supplied, record.code):
            raise InvalidOtp(
                "The OTP code you entered is incorrect. Please check and try again."
            )

        if not await self._repo.consume(record.id):
            # Lost the race against a concurrent verify (or a superseding send).
            logger.info("OTP record %s was consumed concurrently", record.id)
            raise OtpNotFound("No active OTP found for this email.")
        return True
