from collections import Counter
from datetime import datetime, timedelta, timezone
from fastapi import Depends
from typing import Any, Dict, List, Optional
import logging

from config import get_store
from routers.groups.helpers import GROUPS
from routers.notifications.helpers import NOTIFICATIONS
from routers.orders.helpers import ORDERS
from routers.orders.schemas import OrderStatus
from routers.surplus.helpers import SURPLUS_ITEMS
from routers.users.helpers import USERS
from store.base import DocumentStore, Filter, SERVER_TIMESTAMP
from .schemas import DashboardPeriod

logger = logging.getLogger(__name__)

ANALYTICS_EVENTS = "analytics_events"
TOP_CATEGORY_LIMIT = 5
RECENT_ORDER_LIMIT = 5

PERIOD_DAYS = {
    DashboardPeriod.WEEK.value: 7,
    DashboardPeriod.MONTH.value: 30,
    DashboardPeriod.QUARTER.value: 90,
    DashboardPeriod.YEAR.value: 365,
}


def period_start(period: str, now: datetime) -> datetime:
    return now - timedelta(days=PERIOD_DAYS[period])


def settled_amount(order: Dict[str, Any]) -> Optional[float]:
    """The amount the order actually settled at: final, else quoted"""
    if order.get("final_amount") is not None:
        return order["final_amount"]
    return order.get("quoted_amount")


def order_savings(order: Dict[str, Any]) -> float:
    settled = settled_amount(order)
    if settled is None or settled >= order["total_amount"]:
        return 0
    return order["total_amount"] - settled


def status_breakdown(orders: List[Dict[str, Any]]) -> Dict[str, int]:
    return dict(Counter(order["status"] for order in orders))


def top_categories(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    spend: Dict[str, float] = {}
    counts: Counter = Counter()
    for order in orders:
        for item in order.get("items", []):
            category = item.get("category") or "other"
            counts[category] += 1
            spend[category] = spend.get(category, 0) + item["estimated_price"] * item["quantity"]
    return [
        {"name": name, "items": count, "value": round(spend[name], 2)}
        for name, count in counts.most_common(TOP_CATEGORY_LIMIT)
    ]


class DashboardAnalytics:
    """Read-only rollups over orders, groups and surplus listings"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _all(self, collection: str, filters: List[Filter]) -> List[Dict[str, Any]]:
        result = await self.store.query(collection, filters, order_by="created_at", descending=True)
        return result.documents

    async def _count(self, collection: str, filters: Optional[List[Filter]] = None) -> int:
        result = await self.store.query(collection, filters or [], limit=0)
        return result.total

    async def get_dashboard(
        self,
        user_id: str,
        role: str,
        period: str = DashboardPeriod.MONTH.value,
    ) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        since = period_start(period, now)

        if role == "vendor":
            metrics = await self.vendor_metrics(user_id, since)
        elif role == "supplier":
            metrics = await self.supplier_metrics(user_id, since)
        else:
            metrics = await self.admin_metrics(since)

        return {
            "user_id": None if role == "admin" else user_id,
            "role": role,
            "period": period,
            "since": since,
            "generated_at": now,
            "metrics": metrics,
        }

    async def vendor_metrics(self, user_id: str, since: datetime) -> Dict[str, Any]:
        orders = await self._all(ORDERS, [
            Filter("vendor_id", "==", user_id),
            Filter("created_at", ">=", since),
        ])
        surplus_items = await self._all(SURPLUS_ITEMS, [
            Filter("vendor_id", "==", user_id),
            Filter("created_at", ">=", since),
        ])

        order_value = sum(order["total_amount"] for order in orders)
        return {
            "orders_placed": len(orders),
            "order_value": round(order_value, 2),
            "average_order_value": round(order_value / len(orders), 2) if orders else 0,
            "savings_achieved": round(sum(order_savings(order) for order in orders), 2),
            "groups_joined": await self._count(GROUPS, [Filter("members", "array_contains", user_id)]),
            "surplus_shared": len(surplus_items),
            "surplus_earnings": round(sum(
                (item["original_quantity"] - item["remaining_quantity"]) * item["price"]
                for item in surplus_items
            ), 2),
            "status_breakdown": status_breakdown(orders),
            "top_categories": top_categories(orders),
        }

    async def supplier_metrics(self, user_id: str, since: datetime) -> Dict[str, Any]:
        orders = await self._all(ORDERS, [
            Filter("supplier_id", "==", user_id),
            Filter("created_at", ">=", since),
        ])
        delivered = [order for order in orders if order["status"] == OrderStatus.DELIVERED.value]

        revenue = sum(settled_amount(order) or 0 for order in delivered)
        vendors = Counter(order["vendor_id"] for order in orders)
        return {
            "orders_received": len(orders),
            "orders_completed": len(delivered),
            "revenue": round(revenue, 2),
            "completion_rate": round(len(delivered) / len(orders) * 100, 1) if orders else 0,
            "average_order_value": round(revenue / len(delivered), 2) if delivered else 0,
            "customers": len(vendors),
            "repeat_customers": sum(1 for count in vendors.values() if count > 1),
            "status_breakdown": status_breakdown(orders),
            "recent_orders": [
                {
                    "id": order["id"],
                    "order_number": order["order_number"],
                    "vendor": order["vendor_name"],
                    "amount": settled_amount(order) or order["total_amount"],
                    "status": order["status"],
                    "created_at": order["created_at"],
                }
                for order in orders[:RECENT_ORDER_LIMIT]
            ],
        }

    async def admin_metrics(self, since: datetime) -> Dict[str, Any]:
        orders = await self._all(ORDERS, [Filter("created_at", ">=", since)])
        delivered = [order for order in orders if order["status"] == OrderStatus.DELIVERED.value]

        return {
            "total_users": await self._count(USERS),
            "total_vendors": await self._count(USERS, [Filter("role", "==", "vendor")]),
            "total_suppliers": await self._count(USERS, [Filter("role", "==", "supplier")]),
            "new_registrations": await self._count(USERS, [Filter("created_at", ">=", since)]),
            "total_groups": await self._count(GROUPS),
            "total_orders": await self._count(ORDERS),
            "total_surplus_items": await self._count(SURPLUS_ITEMS),
            "total_notifications": await self._count(NOTIFICATIONS),
            "orders_in_period": len(orders),
            "transaction_value": round(sum(settled_amount(order) or 0 for order in delivered), 2),
            "status_breakdown": status_breakdown(orders),
        }

    async def record_event(
        self,
        user_id: str,
        user_role: str,
        event: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Best-effort usage event; never raises"""
        try:
            await self.store.create(ANALYTICS_EVENTS, {
                "user_id": user_id,
                "user_role": user_role,
                "event": event,
                "data": data or {},
                "created_at": SERVER_TIMESTAMP,
            })
            return True
        except Exception as e:
            logger.error(f"Error recording analytics event {event} for {user_id}: {str(e)}")
            return False


def get_dashboard_analytics(store: DocumentStore = Depends(get_store)) -> DashboardAnalytics:
    return DashboardAnalytics(store)
