from fastapi import APIRouter, Depends, HTTPException, status, Query
from routers.auth.auth import get_current_user
from dependencies.rbac import (
    require_order_read, require_order_write, ensure_permission,
    order_status_permission, has_permission
)
from utils.errors import MarketplaceError
from utils.response_helpers import document_to_model, documents_to_models, page_to_offset
from .helpers import OrderManager, get_order_manager
from .schemas import (
    OrderCreate, OrderStatusUpdate, OrderFilters, OrderResponse,
    OrderListResponse, OrderStatus
)
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


def can_view_order(order: dict, current_user: dict) -> bool:
    if has_permission(current_user["role"], "orders", "view_all"):
        return True
    if current_user["role"] == "vendor":
        return order["vendor_id"] == current_user["user_id"]
    # suppliers see their own orders and anything still open for quotes
    return order.get("supplier_id") in (None, current_user["user_id"])


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    current_user = Depends(get_current_user),
    manager: OrderManager = Depends(get_order_manager),
    _: bool = Depends(require_order_write)
):
    """
    Create a draft order for a buying group. Send the same order_id again to
    retry safely.
    """
    try:
        order_id = await manager.create_order(
            order_data,
            vendor_id=current_user["user_id"],
            vendor_name=current_user["name"],
            vendor_phone=current_user.get("phone"),
        )
        return document_to_model(OrderResponse, await manager.get_order(order_id))

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error creating order: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create order"
        )


@router.get("/", response_model=OrderListResponse)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    group_id: Optional[str] = Query(None),
    current_user = Depends(get_current_user),
    manager: OrderManager = Depends(get_order_manager),
    _: bool = Depends(require_order_read)
):
    """Vendors see orders they placed, suppliers orders they handle, admins everything"""
    try:
        sees_all = has_permission(current_user["role"], "orders", "view_all")
        filters = OrderFilters(
            user_id=None if sees_all else current_user["user_id"],
            role=current_user["role"],
            status=order_status,
            group_id=group_id,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        result = await manager.list_orders(filters)

        return OrderListResponse(
            orders=documents_to_models(OrderResponse, result.documents),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more
        )

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error getting orders: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve orders"
        )


@router.get("/open", response_model=OrderListResponse)
async def list_open_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    group_id: Optional[str] = Query(None),
    current_user = Depends(get_current_user),
    manager: OrderManager = Depends(get_order_manager),
    _: bool = Depends(require_order_read)
):
    """Pending orders no supplier has picked up yet"""
    try:
        ensure_permission(current_user, "orders", "quote")
        filters = OrderFilters(
            status=OrderStatus.PENDING,
            group_id=group_id,
            unassigned=True,
            limit=limit,
            offset=page_to_offset(page, limit),
        )
        result = await manager.list_orders(filters)

        return OrderListResponse(
            orders=documents_to_models(OrderResponse, result.documents),
            page=page,
            limit=limit,
            total=result.total,
            has_more=result.has_more
        )

    except MarketplaceError as e:
        raise e.to_http_exception()


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    current_user = Depends(get_current_user),
    manager: OrderManager = Depends(get_order_manager),
    _: bool = Depends(require_order_read)
):
    try:
        order = await manager.get_order(order_id)
        if not can_view_order(order, current_user):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found"
            )
        return document_to_model(OrderResponse, order)

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    current_user = Depends(get_current_user),
    manager: OrderManager = Depends(get_order_manager),
    _: bool = Depends(require_order_read)
):
    """
    Move an order along its lifecycle. Which statuses a caller may set
    depends on their role: suppliers quote and fulfil, vendors submit,
    confirm and return, both may cancel.
    """
    try:
        ensure_permission(current_user, "orders", order_status_permission(status_update.status))

        await manager.update_order_status(
            order_id,
            status_update.status,
            actor_id=current_user["user_id"],
            actor_name=current_user["name"],
            actor_role=current_user["role"],
            options=status_update,
            actor_phone=current_user.get("phone"),
        )
        return document_to_model(OrderResponse, await manager.get_order(order_id))

    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error updating order {order_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update order status"
        )
