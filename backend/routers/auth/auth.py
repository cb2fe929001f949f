from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from routers.users.helpers import UserHelpers, get_user_helpers
from utils.errors import MarketplaceError
from .schemas import (
    SendOTPRequest,
    VerifyOTPRequest,
    RefreshTokenRequest,
    OTPSentResponse,
    AuthResponse,
    TokenResponse,
)
from .helpers import auth_helpers
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

security = HTTPBearer()


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    user_helpers: UserHelpers = Depends(get_user_helpers)
):
    """Get current user from JWT token"""
    token = credentials.credentials
    supabase_user = auth_helpers.verify_token(token)

    current_user = {
        "user_id": supabase_user.id,
        "phone": supabase_user.phone,
        "role": supabase_user.role,
        "name": supabase_user.name or "",
    }

    if not current_user["role"] or not current_user["name"]:
        # Fallback: role and name from the profile document
        try:
            profile = await user_helpers.get_profile(supabase_user.id)
        except MarketplaceError as e:
            raise e.to_http_exception()

        if profile:
            current_user["role"] = current_user["role"] or profile.get("role")
            current_user["name"] = current_user["name"] or profile.get("name", "")
            current_user["phone"] = current_user["phone"] or profile.get("phone")
            logger.info(f"User {supabase_user.id} role from profile: {current_user['role']}")
        elif not current_user["role"]:
            current_user["role"] = "vendor"
            logger.warning(f"No user profile found for {supabase_user.id}, using default role: vendor")

    request.state.current_user = current_user
    return current_user


@router.post("/otp/send", response_model=OTPSentResponse)
async def send_otp(request_data: SendOTPRequest):
    """Text a 6 digit sign-in code to the phone number"""
    auth_helpers.send_otp(request_data.phone)
    return OTPSentResponse(message="Verification code sent", phone=request_data.phone)


@router.post("/otp/verify", response_model=AuthResponse)
async def verify_otp(
    request_data: VerifyOTPRequest,
    user_helpers: UserHelpers = Depends(get_user_helpers)
):
    """
    Verify the code and start a session. First login creates the profile with
    the requested role; later logins keep the stored role.
    """
    try:
        auth_response = auth_helpers.verify_otp(request_data.phone, request_data.otp)
        user_id = auth_response.user.id

        profile, created = await user_helpers.get_or_create_profile(
            user_id=user_id,
            phone=request_data.phone,
            role=request_data.role.value,
            name=request_data.name,
        )

        if created:
            auth_helpers.set_user_metadata(user_id, profile["role"], profile.get("name"))

        return AuthResponse(
            access_token=auth_response.session.access_token,
            refresh_token=auth_response.session.refresh_token,
            user_id=user_id,
            role=profile["role"],
            is_new_user=created,
        )

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"OTP login failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(request_data: RefreshTokenRequest):
    session = await auth_helpers.refresh_token(request_data.refresh_token)
    return TokenResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token
    )
