from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

PHONE_PATTERN = r"^\+[1-9]\d{1,14}$"


class UserRole(str, Enum):
    VENDOR = "vendor"
    SUPPLIER = "supplier"
    ADMIN = "admin"


# Request schemas
class SendOTPRequest(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN, description="Phone number in E.164 format, e.g. +919876543210")


class VerifyOTPRequest(BaseModel):
    phone: str = Field(pattern=PHONE_PATTERN)
    otp: str = Field(pattern=r"^\d{6}$")
    role: UserRole = UserRole.VENDOR
    name: Optional[str] = Field(default=None, max_length=100)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


# Response schemas
class OTPSentResponse(BaseModel):
    message: str
    phone: str


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user_id: str
    role: str
    is_new_user: bool = False


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
