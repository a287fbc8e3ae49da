"""Request / response models for the OTP HTTP API."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

OTP_PATTERN = re.compile(r"^\d{6}$")
MAX_EMAIL_LENGTH = 255


class SendOtpRequest(BaseModel):
    email: EmailStr = Field(..., description="Email address")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().lower()
            if len(value) > MAX_EMAIL_LENGTH:
                raise PydanticCustomError(
                    "string_too_long",
                    "Email address is too long. Please use a shorter email address.",
                )
        return value


class ResendOtpRequest(SendOtpRequest):
    pass


class VerifyOtpRequest(SendOtpRequest):
    otp: str = Field(..., description="6-digit OTP code")

    @field_validator("otp", mode="before")
    @classmethod
    def check_otp(cls, value: object) -> str:
        # Leading zeros are significant, so the code is never parsed as a number.
        if not isinstance(value, str):
            raise PydanticCustomError("invalid_otp", "Please enter your OTP code")
        value = value.strip()
        if not OTP_PATTERN.match(value):
            raise PydanticCustomError("invalid_otp", "Please enter a 6-digit code")
        return value


# ── Responses ────────────────────────────────────────────

class ApiResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    correlation_id: str | None = Field(default=None, alias="correlationId")


class ErrorItem(BaseModel):
    code: str
    path: list[str]
    message: str


class SuccessResponse(ApiResponse):
    success: bool = True
    message: str


class VerifySuccessResponse(ApiResponse):
    success: bool = True
    valid: bool = True
    message: str = "OTP verified successfully"


class ErrorResponse(ApiResponse):
    success: bool = False
    message: str
    errors: list[ErrorItem] = Field(default_factory=list)
