from fastapi import APIRouter, Depends, HTTPException, status, Query, Header, UploadFile, File
from routers.auth.auth import get_current_user
from routers.users.helpers import UserHelpers, get_user_helpers
from dependencies.rbac import require_surplus_read, require_surplus_write, require_surplus_reserve, has_permission
from utils.errors import MarketplaceError
from utils.response_helpers import document_to_model, documents_to_models, page_to_offset
from utils.storage import storage_helpers
from config import INTERNAL_SECRET
from .helpers import SurplusManager, get_surplus_manager
from .schemas import (
    SurplusItemCreate, SurplusItemResponse, SurplusListResponse, SurplusFilters,
    SurplusStatus, ReservationRequest, ReservationResponse, ExpireSweepResponse
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/surplus", tags=["Surplus Exchange"])


@router.post("/", response_model=SurplusItemResponse, status_code=status.HTTP_201_CREATED)
async def create_surplus_item(
    item_data: SurplusItemCreate,
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    user_helpers: UserHelpers = Depends(get_user_helpers),
    _: bool = Depends(require_surplus_write)
):
    """List surplus stock for other vendors to reserve"""
    try:
        profile = await user_helpers.get_profile(current_user["user_id"]) or {}
        item_id = await manager.create_surplus_item(
            item_data,
            vendor_id=current_user["user_id"],
            vendor_name=current_user["name"],
            vendor_phone=current_user.get("phone"),
            vendor_location=profile.get("location"),
        )
        return document_to_model(SurplusItemResponse, await manager.get_surplus_item(item_id))

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error creating surplus item: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create surplus item"
        )


@router.get("/", response_model=SurplusListResponse)
async def list_surplus_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    location: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    item_status: Optional[SurplusStatus] = Query(None, alias="status"),
    vendor_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    expiring_within_days: Optional[int] = Query(None, ge=1),
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    _: bool = Depends(require_surplus_read)
):
    try:
        filters = SurplusFilters(
            location=location,
            category=category,
            status=item_status,
            vendor_id=vendor_id,
            min_price=min_price,
            max_price=max_price,
            expiring_within_days=expiring_within_days,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        result = await manager.list_surplus_items(filters)

        return SurplusListResponse(
            items=documents_to_models(SurplusItemResponse, result.documents),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more
        )

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error listing surplus items: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve surplus items"
        )


@router.post("/expire", response_model=ExpireSweepResponse)
async def expire_surplus_items(
    x_internal_secret: str = Header(...),
    manager: SurplusManager = Depends(get_surplus_manager)
):
    """Scheduled job: persist the expired status on past-due listings"""
    if not INTERNAL_SECRET or x_internal_secret != INTERNAL_SECRET:
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        expired = await manager.expire_surplus_items()
        return ExpireSweepResponse(message="Expiry sweep completed", expired=expired)
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.get("/{item_id}", response_model=SurplusItemResponse)
async def get_surplus_item(
    item_id: str,
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    _: bool = Depends(require_surplus_read)
):
    try:
        return document_to_model(SurplusItemResponse, await manager.get_surplus_item(item_id))
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/{item_id}/reserve", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def reserve_surplus_item(
    item_id: str,
    reservation: ReservationRequest,
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    _: bool = Depends(require_surplus_reserve)
):
    """Reserve part of a listing; fails with 409 when not enough is left"""
    try:
        reserved = await manager.reserve(
            item_id,
            buyer_id=current_user["user_id"],
            buyer_name=current_user["name"],
            quantity=reservation.quantity,
            hold_minutes=reservation.hold_minutes,
        )
        return ReservationResponse.model_validate(reserved)

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error reserving surplus item {item_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reserve surplus item"
        )


@router.post("/{item_id}/withdraw", response_model=SurplusItemResponse)
async def withdraw_surplus_item(
    item_id: str,
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    _: bool = Depends(require_surplus_read)
):
    """Take a listing off the market (seller or admin)"""
    try:
        await manager.withdraw_surplus_item(
            item_id,
            vendor_id=current_user["user_id"],
            as_admin=has_permission(current_user["role"], "surplus", "manage"),
        )
        return document_to_model(SurplusItemResponse, await manager.get_surplus_item(item_id))
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.post("/{item_id}/images", response_model=SurplusItemResponse)
async def upload_surplus_image(
    item_id: str,
    file: UploadFile = File(...),
    current_user = Depends(get_current_user),
    manager: SurplusManager = Depends(get_surplus_manager),
    _: bool = Depends(require_surplus_write)
):
    """Seller-only: attach a photo to the listing"""
    try:
        item = await manager.get_surplus_item(item_id)
        if item["vendor_id"] != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the seller can add images"
            )

        image_url = await storage_helpers.upload_image("surplus", item_id, file)
        await manager.add_image(item_id, image_url)

        return document_to_model(SurplusItemResponse, await manager.get_surplus_item(item_id))

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error uploading image for surplus item {item_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload image"
        )
