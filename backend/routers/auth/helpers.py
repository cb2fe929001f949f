from supabase import Client
from fastapi import HTTPException, status
from config import get_supabase_client, get_supabase_admin_client, JWT_SECRET_KEY, JWT_ALGORITHM
from typing import Dict, Tuple
import jwt
import logging
import time

logger = logging.getLogger(__name__)

OTP_MAX_ATTEMPTS = 3
OTP_WINDOW_SECONDS = 15 * 60
OTP_VERIFY_MAX_ATTEMPTS = 5
OTP_VERIFY_WINDOW_SECONDS = 5 * 60


class OTPRateLimiter:
    """At most max_attempts calls per identifier per fixed window"""

    def __init__(self, max_attempts: int = OTP_MAX_ATTEMPTS, window_seconds: int = OTP_WINDOW_SECONDS):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._attempts: Dict[str, Tuple[int, float]] = {}

    def allow(self, identifier: str) -> bool:
        now = time.monotonic()
        self._prune(now)
        count, reset_at = self._attempts.get(identifier, (0, 0.0))

        if now > reset_at:
            self._attempts[identifier] = (1, now + self.window_seconds)
            return True
        if count >= self.max_attempts:
            return False

        self._attempts[identifier] = (count + 1, reset_at)
        return True

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._attempts.items() if now > reset_at]
        for key in expired:
            del self._attempts[key]


class AuthHelpers:
    """Helper functions for authentication operations"""

    def __init__(self):
        self._supabase = None
        self._admin_client = None
        self.rate_limiter = OTPRateLimiter()
        self.verify_limiter = OTPRateLimiter(OTP_VERIFY_MAX_ATTEMPTS, OTP_VERIFY_WINDOW_SECONDS)

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    @property
    def admin_client(self) -> Client:
        if self._admin_client is None:
            self._admin_client = get_supabase_admin_client()
        return self._admin_client

    def verify_token(self, token: str):
        """
        Verify JWT token locally without calling Supabase API
        Returns user object with role from JWT
        """
        try:
            payload = jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM],
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_signature": True,
                    "verify_aud": False
                }
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID"
            )

        user_metadata = payload.get("user_metadata") or {}
        return type('User', (), {
            'id': user_id,
            'phone': payload.get("phone"),
            'role': user_metadata.get("role"),
            'name': user_metadata.get("name"),
            'payload': payload
        })()

    def send_otp(self, phone: str) -> None:
        """Ask Supabase to text a one-time code to the phone number"""
        if not self.rate_limiter.allow(phone):
            logger.warning(f"OTP rate limit hit for {phone}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Please try again later."
            )

        try:
            self.supabase.auth.sign_in_with_otp({"phone": phone})
            logger.info(f"OTP sent to {phone}")
        except Exception as e:
            logger.error(f"Failed to send OTP to {phone}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send verification code"
            )

    def verify_otp(self, phone: str, otp: str):
        """Exchange phone + code for a Supabase session"""
        if not self.verify_limiter.allow(phone):
            logger.warning(f"OTP verify rate limit hit for {phone}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Please try again later."
            )

        try:
            auth_response = self.supabase.auth.verify_otp({
                "phone": phone,
                "token": otp,
                "type": "sms"
            })
        except Exception as e:
            logger.warning(f"OTP verification failed for {phone}: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid verification code"
            )

        if auth_response.user is None or auth_response.session is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid verification code"
            )

        return auth_response

    def set_user_metadata(self, user_id: str, role: str, name: str = None) -> bool:
        """
        Copy role (and name) into Supabase user metadata so the next issued
        JWT carries them. Failure is logged; the profile document still holds the role.
        """
        metadata = {"role": role}
        if name:
            metadata["name"] = name

        try:
            response = self.admin_client.auth.admin.update_user_by_id(
                user_id,
                {"user_metadata": metadata}
            )
            return response.user is not None
        except Exception as e:
            logger.error(f"Failed to update Supabase metadata for {user_id}: {str(e)}")
            return False

    async def refresh_token(self, refresh_token: str):
        """Refresh access token using refresh token"""
        try:
            auth_response = self.supabase.auth.refresh_session(refresh_token)
        except Exception as e:
            logger.error(f"Token refresh error: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        if auth_response.session is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        return auth_response.session

auth_helpers = AuthHelpers()
