from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from routers.auth.auth import get_current_user
from dependencies.rbac import require_profile_read, require_profile_write
from utils.errors import MarketplaceError
from utils.response_helpers import document_to_model, documents_to_models, page_to_offset
from utils.storage import storage_helpers
from .helpers import UserHelpers, get_user_helpers
from .schemas import UserProfileUpdate, UserProfileResponse, AvatarUploadResponse, SupplierListResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserProfileResponse)
async def get_my_profile(
    current_user = Depends(get_current_user),
    user_helpers: UserHelpers = Depends(get_user_helpers),
    _: bool = Depends(require_profile_read)
):
    try:
        profile = await user_helpers.require_profile(current_user["user_id"])
        return document_to_model(UserProfileResponse, profile)
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.put("/me", response_model=UserProfileResponse)
async def update_my_profile(
    updates: UserProfileUpdate,
    current_user = Depends(get_current_user),
    user_helpers: UserHelpers = Depends(get_user_helpers),
    _: bool = Depends(require_profile_write)
):
    """Update profile fields; profile_completeness is recomputed on every save"""
    try:
        profile = await user_helpers.update_profile(current_user["user_id"], updates)
        return document_to_model(UserProfileResponse, profile)
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error updating profile: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )


@router.post("/me/avatar", response_model=AvatarUploadResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    current_user = Depends(get_current_user),
    user_helpers: UserHelpers = Depends(get_user_helpers),
    _: bool = Depends(require_profile_write)
):
    try:
        avatar_url = await storage_helpers.upload_image("profiles", current_user["user_id"], file)
        previous_url = await user_helpers.set_avatar(current_user["user_id"], avatar_url)
        if previous_url:
            storage_helpers.delete_image(previous_url)

        return AvatarUploadResponse(message="Avatar updated", avatar_url=avatar_url)

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error uploading avatar: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload avatar"
        )


@router.get("/suppliers", response_model=SupplierListResponse)
async def list_suppliers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    location: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    verified_only: bool = Query(False),
    current_user = Depends(get_current_user),
    user_helpers: UserHelpers = Depends(get_user_helpers),
    _: bool = Depends(require_profile_read)
):
    """Supplier directory for vendors looking for someone to quote"""
    try:
        result = await user_helpers.list_suppliers(
            location=location,
            category=category,
            verified_only=verified_only,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        return SupplierListResponse(
            suppliers=documents_to_models(UserProfileResponse, result.documents),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more
        )
    except MarketplaceError as e:
        raise e.to_http_exception()
