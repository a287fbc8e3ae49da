"""Tests for the OtpService — the send / resend / verify lifecycle."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from otp_lifecycle.database.repository import OtpRepository
from otp_lifecycle.models.otp import OtpHistory, OtpRateLimit, OtpRecord
from otp_lifecycle.services.errors import OtpErrorKind
from otp_lifecycle.services.otp_service import OtpService

EMAIL = "a@x"


def _scripted(*codes):
    return iter(codes).__next__


async def _active_records(factory, identity=EMAIL) -> list[OtpRecord]:
    async with factory() as session:
        stmt = select(OtpRecord).where(
            OtpRecord.identity == identity,
            OtpRecord.used.is_(False),
            OtpRecord.invalidated.is_(False),
        )
        return list((await session.execute(stmt)).scalars().all())


async def _count(factory, model) -> int:
    async with factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


# ──────────────────────────────────────────────────────────
# send
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_first_send_creates_one_active_record(otp_service, session_factory, notifier, clock):
    result = await otp_service.send(EMAIL, "corr-1")

    assert result.ok
    code = result.value
    assert isinstance(code, str) and len(code) == 6 and code.isdigit()

    active = await _active_records(session_factory)
    assert len(active) == 1
    assert active[0].code == code
    assert active[0].resend_count == 0
    assert active[0].correlation_id == "corr-1"
    assert active[0].expires_at == clock.now() + timedelta(seconds=30)
    assert await _count(session_factory, OtpHistory) == 1
    notifier.send_code.assert_awaited_once_with(EMAIL, code)


@pytest.mark.asyncio
async def test_leading_zeros_preserved(session_factory, notifier, policy, clock):
    service = OtpService(
        session_factory, notifier, policy=policy, clock=clock, draw=_scripted("000123")
    )
    result = await service.send(EMAIL)
    assert result.value == "000123"

    verified = await service.verify(EMAIL, "000123")
    assert verified.ok and verified.value is True


@pytest.mark.asyncio
async def test_identity_is_normalized(otp_service, session_factory):
    code = (await otp_service.send("  Alice@Example.COM ")).value

    active = await _active_records(session_factory, "alice@example.com")
    assert len(active) == 1
    assert (await otp_service.verify("alice@example.com", f" {code} ")).ok


@pytest.mark.asyncio
async def test_second_send_within_window_reuses_code(otp_service, session_factory, clock):
    first = await otp_service.send(EMAIL)
    clock.advance(minutes=2)
    second = await otp_service.send(EMAIL)

    assert second.ok
    assert second.value == first.value
    active = await _active_records(session_factory)
    assert len(active) == 1
    assert active[0].resend_count == 1
    assert await _count(session_factory, OtpRecord) == 1
    assert await _count(session_factory, OtpHistory) == 1


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_send(otp_service, notifier, session_factory):
    notifier.send_code.return_value = False

    result = await otp_service.send(EMAIL)

    assert result.ok
    assert len(await _active_records(session_factory)) == 1


# ──────────────────────────────────────────────────────────
# Rate limiting
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_rate_limit_counts_auto_resends(otp_service, session_factory, clock):
    for _ in range(3):
        assert (await otp_service.send(EMAIL)).ok
        clock.advance(seconds=10)

    result = await otp_service.send(EMAIL)

    assert not result.ok
    assert result.error is OtpErrorKind.RATE_LIMIT_EXCEEDED
    assert await _count(session_factory, OtpRateLimit) == 3

    clock.advance(hours=1)
    assert (await otp_service.send(EMAIL)).ok


@pytest.mark.asyncio
async def test_explicit_resend_does_not_consume_rate_limit(otp_service, session_factory, clock):
    await otp_service.send(EMAIL)
    assert (await otp_service.resend(EMAIL)).ok
    assert (await otp_service.resend(EMAIL)).ok
    assert await _count(session_factory, OtpRateLimit) == 1

    clock.advance(minutes=6)
    assert (await otp_service.send(EMAIL)).ok
    assert (await otp_service.send(EMAIL)).ok

    result = await otp_service.send(EMAIL)
    assert result.error is OtpErrorKind.RATE_LIMIT_EXCEEDED


@pytest.mark.asyncio
async def test_failed_auto_resend_still_charges_rate_limit(otp_service, session_factory):
    await otp_service.send(EMAIL)
    for _ in range(3):
        assert (await otp_service.resend(EMAIL)).ok

    result = await otp_service.send(EMAIL)

    assert result.error is OtpErrorKind.MAX_RESEND_EXCEEDED
    assert await _count(session_factory, OtpRateLimit) == 2


# ──────────────────────────────────────────────────────────
# Uniqueness
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_new_codes_do_not_repeat_within_window(session_factory, notifier, policy, clock):
    service = OtpService(
        session_factory,
        notifier,
        policy=policy,
        clock=clock,
        draw=_scripted("123456", "123456", "123456", "654321"),
    )
    first = await service.send(EMAIL)
    clock.advance(minutes=6)
    second = await service.send(EMAIL)

    assert first.value == "123456"
    assert second.value == "654321"


@pytest.mark.asyncio
async def test_generation_exhausted_keeps_current_record(session_factory, notifier, policy, clock):
    service = OtpService(
        session_factory, notifier, policy=policy, clock=clock, draw=lambda: "123456"
    )
    await service.send(EMAIL)
    clock.advance(minutes=6)

    result = await service.send(EMAIL)

    assert result.error is OtpErrorKind.GENERATION_EXHAUSTED
    active = await _active_records(session_factory)
    assert len(active) == 1 and active[0].code == "123456"
    assert await _count(session_factory, OtpRateLimit) == 2


# ──────────────────────────────────────────────────────────
# resend
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_resend_without_active_record(otp_service):
    result = await otp_service.resend(EMAIL)
    assert result.error is OtpErrorKind.OTP_NOT_FOUND


@pytest.mark.asyncio
async def test_resend_extends_expiry_in_place(otp_service, session_factory, notifier, clock):
    code = (await otp_service.send(EMAIL)).value
    clock.advance(minutes=1)

    result = await otp_service.resend(EMAIL)

    assert result.value == code
    active = await _active_records(session_factory)
    assert active[0].expires_at == clock.now() + timedelta(seconds=30)
    assert active[0].resend_count == 1
    assert await _count(session_factory, OtpHistory) == 1
    assert notifier.send_code.await_count == 2


@pytest.mark.asyncio
async def test_resend_after_window_is_expired(otp_service, clock):
    await otp_service.send(EMAIL)
    clock.advance(minutes=5)

    result = await otp_service.resend(EMAIL)
    assert result.error is OtpErrorKind.OTP_EXPIRED


@pytest.mark.asyncio
async def test_resend_allowed_after_verification_expiry(otp_service, clock):
    code = (await otp_service.send(EMAIL)).value
    clock.advance(minutes=3)

    assert (await otp_service.verify(EMAIL, code)).error is OtpErrorKind.OTP_EXPIRED
    assert (await otp_service.resend(EMAIL)).ok
    assert (await otp_service.verify(EMAIL, code)).ok


# ──────────────────────────────────────────────────────────
# verify
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_verify_without_send(otp_service):
    result = await otp_service.verify(EMAIL, "123456")
    assert result.error is OtpErrorKind.OTP_NOT_FOUND


@pytest.mark.asyncio
async def test_verify_wrong_code_leaves_record_active(otp_service, session_factory):
    code = (await otp_service.send(EMAIL)).value
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    result = await otp_service.verify(EMAIL, wrong)

    assert result.error is OtpErrorKind.INVALID_OTP
    assert len(await _active_records(session_factory)) == 1
    assert (await otp_service.verify(EMAIL, code)).ok


@pytest.mark.asyncio
async def test_verify_at_expiry_instant_fails(otp_service, clock):
    code = (await otp_service.send(EMAIL)).value
    clock.advance(seconds=30)

    result = await otp_service.verify(EMAIL, code)
    assert result.error is OtpErrorKind.OTP_EXPIRED


# ──────────────────────────────────────────────────────────
# Scenarios
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_scenario_single_use(otp_service, session_factory):
    code = (await otp_service.send(EMAIL)).value

    first = await otp_service.verify(EMAIL, code)
    second = await otp_service.verify(EMAIL, code)

    assert first.ok and first.value is True
    assert second.error is OtpErrorKind.OTP_NOT_FOUND
    assert await _active_records(session_factory) == []


@pytest.mark.asyncio
async def test_scenario_send_after_expiry_reuses_code(otp_service, session_factory, clock):
    code = (await otp_service.send(EMAIL)).value
    clock.advance(seconds=45)

    again = await otp_service.send(EMAIL)

    assert again.value == code
    active = await _active_records(session_factory)
    assert active[0].expires_at == clock.now() + timedelta(seconds=30)
    assert (await otp_service.verify(EMAIL, code)).ok


@pytest.mark.asyncio
async def test_scenario_resend_quota(otp_service):
    await otp_service.send(EMAIL)

    for _ in range(3):
        assert (await otp_service.resend(EMAIL)).ok

    result = await otp_service.resend(EMAIL)
    assert result.error is OtpErrorKind.MAX_RESEND_EXCEEDED
    assert "maximum number of resends (3)" in result.message


@pytest.mark.asyncio
async def test_scenario_send_outside_window_supersedes(session_factory, notifier, policy, clock):
    async with session_factory() as session, session.begin():
        seeded_at = clock.now() - timedelta(minutes=6)
        old = await OtpRepository(session).supersede(
            EMAIL, "111111", now=seeded_at, expires_at=seeded_at + timedelta(seconds=30)
        )

    service = OtpService(
        session_factory, notifier, policy=policy, clock=clock, draw=_scripted("222222")
    )
    result = await service.send(EMAIL)
    assert result.value == "222222"

    async with session_factory() as session:
        stored_old = await session.get(OtpRecord, old.id)
    assert stored_old.invalidated is True

    assert (await service.verify(EMAIL, "111111")).error is OtpErrorKind.INVALID_OTP
    assert (await service.verify(EMAIL, "222222")).ok
