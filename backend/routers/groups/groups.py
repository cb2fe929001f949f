from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from routers.auth.auth import get_current_user
from dependencies.rbac import require_group_read, require_group_write, require_group_join, require_group_manage
from utils.errors import MarketplaceError
from utils.response_helpers import document_to_model, documents_to_models, page_to_offset
from utils.storage import storage_helpers
from .helpers import GroupManager, get_group_manager
from .schemas import (
    GroupCreate, GroupResponse, GroupListResponse, GroupStatusUpdate,
    GroupActionResponse, GroupCategory, GroupStatus, GroupFilters
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["Buying Groups"])


@router.post("/", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_write)
):
    """Create a buying group; the caller becomes its owner and first member"""
    try:
        group_id = await manager.create_group(
            group_data,
            owner_id=current_user["user_id"],
            owner_name=current_user["name"],
            owner_phone=current_user.get("phone"),
        )
        group = await manager.get_group(group_id)
        return document_to_model(GroupResponse, group)

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error creating group: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create group"
        )


@router.get("/", response_model=GroupListResponse)
async def list_groups(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    location: Optional[str] = Query(None),
    category: Optional[GroupCategory] = Query(None),
    group_status: Optional[GroupStatus] = Query(None, alias="status"),
    mine: bool = Query(False, description="Only groups the caller is a member of"),
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_read)
):
    try:
        filters = GroupFilters(
            location=location,
            category=category,
            status=group_status,
            member_id=current_user["user_id"] if mine else None,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        result = await manager.list_groups(filters)

        return GroupListResponse(
            groups=documents_to_models(GroupResponse, result.documents),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more
        )

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error listing groups: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve groups"
        )


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: str,
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_read)
):
    try:
        group = await manager.get_group(group_id)
        return document_to_model(GroupResponse, group)
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/{group_id}/join", response_model=GroupActionResponse)
async def join_group(
    group_id: str,
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_join)
):
    try:
        await manager.join_group(
            group_id,
            user_id=current_user["user_id"],
            user_name=current_user["name"],
            user_phone=current_user.get("phone"),
        )
        return GroupActionResponse(message="Joined group successfully", group_id=group_id)

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error joining group {group_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to join group"
        )


@router.put("/{group_id}/status", response_model=GroupActionResponse)
async def update_group_status(
    group_id: str,
    status_update: GroupStatusUpdate,
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_manage)
):
    """Administrative status change (reopen a full group, archive, deactivate)"""
    try:
        await manager.set_group_status(group_id, status_update.status, actor_id=current_user["user_id"])
        return GroupActionResponse(message=f"Group status set to {status_update.status}", group_id=group_id)
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/{group_id}/images", response_model=GroupResponse)
async def upload_group_image(
    group_id: str,
    file: UploadFile = File(...),
    current_user = Depends(get_current_user),
    manager: GroupManager = Depends(get_group_manager),
    _: bool = Depends(require_group_write)
):
    """Owner-only: attach a photo to the group"""
    try:
        group = await manager.get_group(group_id)
        if group["owner_id"] != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the group owner can add images"
            )

        image_url = await storage_helpers.upload_image("groups", group_id, file)
        await manager.add_image(group_id, image_url)

        return document_to_model(GroupResponse, await manager.get_group(group_id))

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error uploading image for group {group_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image"
        )
