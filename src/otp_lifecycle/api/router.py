"""OTP API router — HTTP boundary for send, resend and verify.

Endpoints
---------
POST /api/otp/send     → issue a code (or resend the current one)
POST /api/otp/resend   → resend the current code
POST /api/otp/verify   → verify a code

Every request must carry a ``correlationid`` header.  Codes are delivered
by email only and never appear in a response body.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from otp_lifecycle.api.schemas import (
    ErrorResponse,
    ResendOtpRequest,
    SendOtpRequest,
    SuccessResponse,
    VerifyOtpRequest,
    VerifySuccessResponse,
)
from otp_lifecycle.database.engine import async_session_factory
from otp_lifecycle.services.email_service import EmailNotifier
from otp_lifecycle.services.error_log import ErrorLogEntry, ErrorLogService
from otp_lifecycle.services.errors import OtpErrorKind
from otp_lifecycle.services.otp_service import OtpResult, OtpService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/otp", tags=["OTP"])

# ── Shared instances (created once, reused across requests) ──
_otp_service = OtpService(async_session_factory, EmailNotifier())
_error_log = ErrorLogService(async_session_factory)


def get_otp_service() -> OtpService:
    return _otp_service


def get_error_log() -> ErrorLogService:
    return _error_log


_STATUS_BY_KIND = {
    OtpErrorKind.RATE_LIMIT_EXCEEDED: 429,
    OtpErrorKind.OTP_NOT_FOUND: 400,
    OtpErrorKind.OTP_EXPIRED: 400,
    OtpErrorKind.INVALID_OTP: 400,
    OtpErrorKind.MAX_RESEND_EXCEEDED: 400,
    OtpErrorKind.GENERATION_EXHAUSTED: 503,
}

# Failures worth keeping in the error log; the rest are ordinary user mistakes.
_LOGGED_KINDS = {OtpErrorKind.RATE_LIMIT_EXCEEDED, OtpErrorKind.GENERATION_EXHAUSTED}

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ── Response helpers ─────────────────────────────────────

def _error(status_code: int, message: str, correlation_id: str | None) -> JSONResponse:
    body = ErrorResponse(message=message, correlation_id=correlation_id)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True)
    )


def _missing_correlation_id() -> JSONResponse:
    return _error(400, "Correlation ID is required", None)


async def _failure(
    result: OtpResult,
    correlation_id: str,
    email: str,
    path: str,
    error_log: ErrorLogService,
) -> JSONResponse:
    if result.error in _LOGGED_KINDS:
        await error_log.log_error(
            ErrorLogEntry(
                correlation_id=correlation_id,
                email=email,
                error_message=result.message,
                error_type=result.error.value,
                request_path=path,
                request_method="POST",
            )
        )
    return _error(_STATUS_BY_KIND[result.error], result.message, correlation_id)


async def _internal_error(
    exc: Exception,
    correlation_id: str,
    email: str,
    path: str,
    error_log: ErrorLogService,
    message: str,
) -> JSONResponse:
    logger.exception("Unexpected error on %s (correlation %s)", path, correlation_id)
    await error_log.log_error(
        ErrorLogEntry.from_exception(
            exc,
            correlation_id,
            email=email,
            request_path=path,
            request_method="POST",
        )
    )
    return _error(500, message, correlation_id)


# ── Endpoints ────────────────────────────────────────────

@router.post(
    "/send",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def send_otp(
    body: SendOtpRequest,
    correlationid: str | None = Header(None, description="Correlation ID (uuid) for request tracking"),
    service: OtpService = Depends(get_otp_service),
    error_log: ErrorLogService = Depends(get_error_log),
):
    """Send a new OTP, or resend the existing one if within its resend window."""
    if not correlationid:
        return _missing_correlation_id()

    path = "/api/otp/send"
    try:
        result = await service.send(body.email, correlationid)
    except Exception as exc:
        return await _internal_error(
            exc, correlationid, body.email, path, error_log,
            "Something went wrong while sending your OTP. Please try again in a moment.",
        )

    if not result.ok:
        return await _failure(result, correlationid, body.email, path, error_log)
    return SuccessResponse(message="OTP sent successfully", correlation_id=correlationid)


@router.post(
    "/resend",
    response_model=SuccessResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def resend_otp(
    body: ResendOtpRequest,
    correlationid: str | None = Header(None, description="Correlation ID (uuid) for request tracking"),
    service: OtpService = Depends(get_otp_service),
    error_log: ErrorLogService = Depends(get_error_log),
):
    """Resend the current OTP with a fresh expiry."""
    if not correlationid:
        return _missing_correlation_id()

    path = "/api/otp/resend"
    try:
        result = await service.resend(body.email, correlationid)
    except Exception as exc:
        return await _internal_error(
            exc, correlationid, body.email, path, error_log,
            "Something went wrong while resending your OTP. Please try again in a moment.",
        )

    if not result.ok:
        return await _failure(result, correlationid, body.email, path, error_log)
    return SuccessResponse(message="OTP resent successfully", correlation_id=correlationid)


@router.post(
    "/verify",
    response_model=VerifySuccessResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
)
async def verify_otp(
    body: VerifyOtpRequest,
    correlationid: str | None = Header(None, description="Correlation ID (uuid) for request tracking"),
    service: OtpService = Depends(get_otp_service),
    error_log: ErrorLogService = Depends(get_error_log),
):
    """Verify an OTP code."""
    if not correlationid:
        return _missing_correlation_id()

    path = "/api/otp/verify"
    try:
        result = await service.verify(body.email, body.otp)
    except Exception as exc:
        return await _internal_error(
            exc, correlationid, body.email, path, error_log,
            "Something went wrong while verifying your OTP. Please try again in a moment.",
        )

    if not result.ok:
        return await _failure(result, correlationid, body.email, path, error_log)
    return VerifySuccessResponse(correlation_id=correlationid)
