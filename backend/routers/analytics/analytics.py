from fastapi import APIRouter, Depends, HTTPException, status, Query
from routers.auth.auth import get_current_user
from dependencies.rbac import require_analytics, ensure_permission
from utils.errors import MarketplaceError
from .helpers import DashboardAnalytics, get_dashboard_analytics
from .schemas import DashboardPeriod, DashboardResponse, AnalyticsEventCreate, AnalyticsEventResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    period: DashboardPeriod = Query(DashboardPeriod.MONTH),
    user_id: Optional[str] = Query(None, description="Admin only: another user's dashboard"),
    role: Optional[str] = Query(None, pattern="^(vendor|supplier)$", description="Role of user_id"),
    current_user = Depends(get_current_user),
    analytics: DashboardAnalytics = Depends(get_dashboard_analytics),
    _: bool = Depends(require_analytics)
):
    """
    Dashboard rollups for the caller's role. Vendors get spend and savings,
    suppliers revenue and completion rate, admins platform totals.
    """
    try:
        target_id, target_role = current_user["user_id"], current_user["role"]
        if user_id:
            ensure_permission(current_user, "analytics", "view_all")
            if not role:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="role is required together with user_id"
                )
            target_id, target_role = user_id, role

        dashboard = await analytics.get_dashboard(target_id, target_role, period.value)
        await analytics.record_event(
            current_user["user_id"], current_user["role"], "dashboard_viewed", {"period": period.value}
        )
        return DashboardResponse(**dashboard)

    except HTTPException:
        raise
    except MarketplaceError as e:
        raise e.to_http_exception()
    except Exception as e:
        logger.error(f"Error building dashboard: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build dashboard"
        )


@router.post("/events", response_model=AnalyticsEventResponse, status_code=status.HTTP_202_ACCEPTED)
async def record_event(
    event: AnalyticsEventCreate,
    current_user = Depends(get_current_user),
    analytics: DashboardAnalytics = Depends(get_dashboard_analytics),
    _: bool = Depends(require_analytics)
):
    """Record a client usage event; failures are logged, not returned"""
    recorded = await analytics.record_event(
        current_user["user_id"], current_user["role"], event.event, event.data
    )
    return AnalyticsEventResponse(message="Event accepted", recorded=recorded)
