"""Uniqueness enforcer — draws codes not issued to the same identity recently."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from otp_lifecycle.database.repository import OtpRepository
from otp_lifecycle.models.otp import OTP_LENGTH
from otp_lifecycle.services.errors import GenerationExhausted

logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 100


def random_code() -> str:
    """Uniform draw from ``"000000"``–``"999999"``, zero-padded."""
    return f"{secrets.randbelow(10**OTP_LENGTH):0{OTP_LENGTH}d}"


class UniqueCodeGenerator:
    """Generates a code absent from the identity's recent issuance history.

    The returned code is *not* written to history; the caller persists the
    record and its history row together.
    """

    def __init__(
        self,
        repository: OtpRepository,
        window: timedelta,
        draw: Callable[[], str] = random_code,
        max_attempts: int = MAX_GENERATION_ATTEMPTS,
    ) -> None:
        self._repo = repository
        self._window = window
        self._draw = draw
        self._max_attempts = max_attempts

    async def generate_unique(self, identity: str, now: datetime) -> str:
        recent = await self._repo.codes_issued_since(identity, now - self._window)
        for _ in range(self._max_attempts):
            code = self._draw()
            if code not in recent:
                return code

        logger.error(
            "Could not draw an unused code for %s after %d attempts (%d recent codes)",
            identity,
            self._max_attempts,
            len(recent),
        )
        raise GenerationExhausted()
