"""Rate limiter — caps send-initiated requests per identity per rolling hour."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from otp_lifecycle.database.repository import OtpRepository
from otp_lifecycle.services.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = timedelta(hours=1)


class RateLimiter:
    """Counts and records requests in the ``otp_rate_limit`` log.

    Must be called inside a transaction that already holds the identity
    lock, otherwise two concurrent callers can both pass the count.
    """

    def __init__(self, repository: OtpRepository, max_requests: int) -> None:
        self._repo = repository
        self._max_requests = max_requests

    async def check_and_record(
        self, identity: str, now: datetime, correlation_id: str | None = None
    ) -> None:
        """Record one request for *identity*, or raise if the hourly cap is reached.

        Nothing is written when the cap is reached.
        """
        count = await self._repo.count_requests_since(identity, now - RATE_LIMIT_WINDOW)
        if count >= self._max_requests:
            logger.info(
                "Rate limit hit for %s (%d requests in the last hour)", identity, count
            )
            raise RateLimitExceeded(
                f"You've reached the limit of {self._max_requests} OTP requests per hour. "
                "Please wait about an hour before trying again."
            )
        await self._repo.record_request(identity, now, correlation_id)
