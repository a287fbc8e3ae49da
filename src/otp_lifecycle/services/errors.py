"""Error taxonomy for the OTP lifecycle."""

from __future__ import annotations

from enum import Enum


class OtpErrorKind(str, Enum):
    """Stable identifiers the HTTP boundary maps to status codes."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    OTP_NOT_FOUND = "otp_not_found"
    OTP_EXPIRED = "otp_expired"
    INVALID_OTP = "invalid_otp"
    MAX_RESEND_EXCEEDED = "max_resend_exceeded"
    GENERATION_EXHAUSTED = "generation_exhausted"


class OtpError(Exception):
    """Base class for every recoverable lifecycle failure."""

    kind: OtpErrorKind
    default_message = "OTP request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class RateLimitExceeded(OtpError):
    kind = OtpErrorKind.RATE_LIMIT_EXCEEDED
    default_message = "Rate limit exceeded"


class OtpNotFound(OtpError):
    kind = OtpErrorKind.OTP_NOT_FOUND
    default_message = "No active OTP found"


class OtpExpired(OtpError):
    kind = OtpErrorKind.OTP_EXPIRED
    default_message = "OTP has expired"


class InvalidOtp(OtpError):
    kind = OtpErrorKind.INVALID_OTP
    default_message = "Invalid OTP"


class MaxResendExceeded(OtpError):
    kind = OtpErrorKind.MAX_RESEND_EXCEEDED
    default_message = "Maximum resend count exceeded"


class GenerationExhausted(OtpError):
    """No unused code could be drawn; transient, not the caller's fault."""

    kind = OtpErrorKind.GENERATION_EXHAUSTED
    default_message = "We're experiencing high demand. Please try again in a moment."
