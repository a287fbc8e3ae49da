"""OTP service — the send / resend / verify lifecycle.

State per identity is derived from its active record:

* ``NONE``        no active record
* ``ACTIVE``      freshly issued or resent
* ``USED``        terminal, after a successful verify
* ``INVALIDATED`` terminal, superseded by a newer code

``EXPIRED`` is never stored; it is ``now >= expires_at`` checked at verify
time.  The resend window (measured from ``created_at``) is separate from,
and longer than, the expiry, so a record can be expired for verification
while still eligible for resend.

Rate limiting policy: every ``send`` call consumes a slot, including one
that turns into a resend of the current code.  An explicit ``resend`` call
consumes none.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from otp_lifecycle.clock import Clock
from otp_lifecycle.config import OtpPolicy, settings
from otp_lifecycle.database.repository import OtpRepository
from otp_lifecycle.models.otp import OtpRecord
from otp_lifecycle.services.code_generator import UniqueCodeGenerator, random_code
from otp_lifecycle.services.errors import (
    MaxResendExceeded,
    OtpError,
    OtpErrorKind,
    OtpExpired,
    OtpNotFound,
)
from otp_lifecycle.services.rate_limiter import RateLimiter
from otp_lifecycle.services.verifier import Verifier

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import async_sessionmaker

    from otp_lifecycle.services.email_service import Notifier

logger = logging.getLogger(__name__)


def normalize_identity(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class OtpResult:
    """Outcome of a public lifecycle operation.

    Exactly one of ``value`` / ``error`` is meaningful.  For ``send`` and
    ``resend`` the value is the code, for in-process callers only; the HTTP
    layer never returns it.
    """

    value: str | bool | None = None
    error: OtpErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: str | bool) -> OtpResult:
        return cls(value=value)

    @classmethod
    def failure(cls, exc: OtpError) -> OtpResult:
        return cls(error=exc.kind, message=exc.message)


class OtpService:
    """Composes rate limiting, generation, storage and verification.

    Each public call runs in its own transaction.  ``send`` and ``resend``
    hold the per-identity lock for the whole read-modify-write, so at most
    one active record exists per identity and the rate-limit count cannot
    be overrun by concurrent callers.  ``verify`` relies on the conditional
    used-flip instead.

    Storage errors are not part of the :class:`OtpResult` taxonomy and
    propagate to the caller unchanged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: Notifier,
        *,
        policy: OtpPolicy | None = None,
        clock: Clock | None = None,
        draw: Callable[[], str] = random_code,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._policy = policy or OtpPolicy.from_settings(settings)
        self._clock = clock or Clock()
        self._draw = draw

    # ── Public API ───────────────────────────────────────

    async def send(self, email: str, correlation_id: str | None = None) -> OtpResult:
        """Issue a new code, or resend the current one if still in its resend window."""
        try:
            code = await self._send(normalize_identity(email), correlation_id)
        except OtpError as exc:
            return OtpResult.failure(exc)
        return OtpResult.success(code)

    async def resend(self, email: str, correlation_id: str | None = None) -> OtpResult:
        """Re-deliver the current code with a fresh expiry."""
        identity = normalize_identity(email)
        now = self._clock.now()
        try:
            async with self._session_factory() as session, session.begin():
                repo = OtpRepository(session)
                await repo.lock_identity(identity, now)
                record = await self._extend_active(repo, identity, now)
        except OtpError as exc:
            return OtpResult.failure(exc)

        logger.info(
            "Resent OTP to %s (resend %d, correlation %s)",
            identity,
            record.resend_count,
            correlation_id,
        )
        await self._notify(identity, record.code)
        return OtpResult.success(record.code)

    async def verify(self, email: str, otp: str) -> OtpResult:
        """Check *otp* against the active code and consume it on success."""
        identity = normalize_identity(email)
        now = self._clock.now()
        try:
            async with self._session_factory() as session, session.begin():
                repo = OtpRepository(session)
                record = await repo.find_active(identity)
                if record is None:
                    raise OtpNotFound("No active OTP found for this email.")
                await Verifier(repo).verify(record, otp.strip(), now)
        except OtpError as exc:
            logger.info("OTP verification failed for %s: %s", identity, exc.kind.value)
            return OtpResult.failure(exc)

        logger.info("OTP verified for %s", identity)
        return OtpResult.success(True)

    # ── Internals ────────────────────────────────────────

    async def _send(self, identity: str, correlation_id: str | None) -> str:
        now = self._clock.now()
        policy = self._policy
        failure: OtpError | None = None
        code = ""

        async with self._session_factory() as session, session.begin():
            repo = OtpRepository(session)
            await repo.lock_identity(identity, now)
            await RateLimiter(repo, policy.max_requests_per_hour).check_and_record(
                identity, now, correlation_id
            )

            # Past the gate the request has been charged; a lifecycle failure
            # below must not roll the rate-limit entry back with it.
            try:
                existing = await repo.find_active(identity)
                if existing is not None and now < existing.created_at + policy.resend_window:
                    record = await self._extend_active(repo, identity, now, existing)
                    logger.info(
                        "Send for %s reused the active code (resend %d)",
                        identity,
                        record.resend_count,
                    )
                else:
                    generator = UniqueCodeGenerator(repo, policy.uniqueness_window, self._draw)
                    new_code = await generator.generate_unique(identity, now)
                    record = await repo.supersede(
                        identity,
                        new_code,
                        now=now,
                        expires_at=now + policy.expiry,
                        correlation_id=correlation_id,
                    )
                    logger.info(
                        "Issued new OTP record %s for %s (correlation %s)",
                        record.id,
                        identity,
                        correlation_id,
                    )
                code = record.code
            except OtpError as exc:
                failure = exc

        if failure is not None:
            raise failure

        await self._notify(identity, code)
        return code

    async def _extend_active(
        self,
        repo: OtpRepository,
        identity: str,
        now: datetime,
        record: OtpRecord | None = None,
    ) -> OtpRecord:
        if record is None:
            record = await repo.find_active(identity)
        if record is None:
            raise OtpNotFound(
                "No OTP code found for this email. Please request a new one to continue."
            )
        if now >= record.created_at + self._policy.resend_window:
            raise OtpExpired("Your OTP code has expired. Please request a new one to continue.")
        if record.resend_count >= self._policy.max_resend_count:
            raise MaxResendExceeded(
                f"You've reached the maximum number of resends "
                f"({self._policy.max_resend_count}). Please request a new OTP code."
            )
        return await repo.extend(record, now + self._policy.expiry)

    async def _notify(self, identity: str, code: str) -> None:
        delivered = await self._notifier.send_code(identity, code)
        if not delivered:
            logger.warning("OTP delivery to %s failed; the code stays valid", identity)
