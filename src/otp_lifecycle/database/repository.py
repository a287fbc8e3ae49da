"""OTP repository — data access layer for the code lifecycle tables."""

from datetime import datetime

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from otp_lifecycle.models.otp import IdentityLock, OtpHistory, OtpRateLimit, OtpRecord

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _active_for(identity: str):
    return and_(
        OtpRecord.identity == identity,
        OtpRecord.used.is_(False),
        OtpRecord.invalidated.is_(False),
    )


class OtpRepository:
    """Encapsulates all database queries related to the OTP lifecycle.

    Every method runs inside the caller's transaction; the repository never
    commits.  Callers that mutate lifecycle state for an identity must call
    :meth:`lock_identity` first so the read-modify-write sequence is
    serialized against other writers for the same identity.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Locking ──────────────────────────────────────────

    async def lock_identity(self, identity: str, now: datetime) -> None:
        """Take the per-identity write lock for the rest of the transaction.

        The lock row is created on first use.  Updating it takes a row lock
        on PostgreSQL and the database write lock on SQLite; either way a
        second transaction for the same identity blocks here until the
        first one commits or rolls back.
        """
        dialect = self._session.get_bind().dialect.name
        try:
            insert = _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise NotImplementedError(f"identity locking is not supported on {dialect}") from None

        await self._session.execute(
            insert(IdentityLock)
            .values(identity=identity, acquired_at=now)
            .on_conflict_do_nothing(index_elements=[IdentityLock.identity])
        )
        await self._session.execute(
            update(IdentityLock)
            .where(IdentityLock.identity == identity)
            .values(acquired_at=now)
        )

    # ── Code records ─────────────────────────────────────

    async def find_active(self, identity: str) -> OtpRecord | None:
        """Return the active (unused, not invalidated) record for *identity*."""
        stmt = (
            select(OtpRecord)
            .where(_active_for(identity))
            .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def supersede(
        self,
        identity: str,
        code: str,
        *,
        now: datetime,
        expires_at: datetime,
        correlation_id: str | None = None,
    ) -> OtpRecord:
        """Invalidate any active record and insert a fresh one plus its history row."""
        await self._session.execute(
            update(OtpRecord)
            .where(_active_for(identity))
            .values(invalidated=True)
            .execution_options(synchronize_session="fetch")
        )

        record = OtpRecord(
            identity=identity,
            code=code,
            correlation_id=correlation_id,
            created_at=now,
            expires_at=expires_at,
            resend_count=0,
            used=False,
            invalidated=False,
        )
        self._session.add(record)
        self._session.add(
            OtpHistory(
                identity=identity,
                code=code,
                correlation_id=correlation_id,
                created_at=now,
            )
        )
        await self._session.flush()
        return record

    async def extend(self, record: OtpRecord, expires_at: datetime) -> OtpRecord:
        """Push out the expiry of *record* and count one more resend."""
        record.expires_at = expires_at
        record.resend_count += 1
        await self._session.flush()
        return record

    async def consume(self, record_id: int) -> bool:
        """Flip *record_id* to used if it is still active.

        Returns ``False`` when another transaction consumed or invalidated
        the record first.
        """
        result = await self._session.execute(
            update(OtpRecord)
            .where(
                OtpRecord.id == record_id,
                OtpRecord.used.is_(False),
                OtpRecord.invalidated.is_(False),
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ── Issuance history ─────────────────────────────────

    async def codes_issued_since(self, identity: str, since: datetime) -> set[str]:
        """Codes issued to *identity* at or after *since*."""
        stmt = select(OtpHistory.code).where(
            OtpHistory.identity == identity, OtpHistory.created_at >= since
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    # ── Rate-limit log ───────────────────────────────────

    async def count_requests_since(self, identity: str, since: datetime) -> int:
        stmt = select(func.count(OtpRateLimit.id)).where(
            OtpRateLimit.identity == identity, OtpRateLimit.requested_at >= since
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def record_request(
        self, identity: str, now: datetime, correlation_id: str | None = None
    ) -> None:
        self._session.add(
            OtpRateLimit(identity=identity, requested_at=now, correlation_id=correlation_id)
        )
        await self._session.flush()
