from fastapi import Depends
from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import logging

from config import get_store, SUBSCRIPTION_POLL_SECONDS
from routers.notifications.helpers import NotificationManager
from routers.notifications.schemas import NotificationCreate
from store.base import DocumentStore, Filter, QueryResult, SERVER_TIMESTAMP
from store.transactions import run_transaction
from utils.errors import ConflictError, NotFoundError, InvalidTransitionError, PermissionDeniedError
from utils.ids import generate_order_number
from utils.messaging import messenger as twilio_messenger, get_order_status_message
from utils.subscriptions import Subscription
from .schemas import OrderCreate, OrderFilters, OrderStatus, PaymentStatus, StatusUpdateOptions

logger = logging.getLogger(__name__)

ORDERS = "orders"

ORDER_PIPELINE = [
    OrderStatus.DRAFT.value,
    OrderStatus.PENDING.value,
    OrderStatus.QUOTED.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.PACKED.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.IN_TRANSIT.value,
    OrderStatus.DELIVERED.value,
]
TERMINAL_STATUSES = {OrderStatus.CANCELLED.value, OrderStatus.RETURNED.value}

# statuses the vendor hears about on WhatsApp
VENDOR_MESSAGE_STATUSES = {
    OrderStatus.QUOTED.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
}

# outbound messages still in flight; the event loop only keeps weak references
_pending_messages: Set[asyncio.Task] = set()


def can_transition(current: str, target: str) -> bool:
    """
    Forward along the pipeline (skipping steps is allowed), cancel from any
    non-terminal state except delivered, return only from delivered.
    """
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED.value:
        return current != OrderStatus.DELIVERED.value
    if target == OrderStatus.RETURNED.value:
        return current == OrderStatus.DELIVERED.value
    if current not in ORDER_PIPELINE or target not in ORDER_PIPELINE:
        return False
    return ORDER_PIPELINE.index(target) > ORDER_PIPELINE.index(current)


def calculate_total_amount(items: List[Dict[str, Any]]) -> float:
    return sum(item["estimated_price"] * item["quantity"] for item in items)


def format_amount(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def _message_finished(task: asyncio.Task) -> None:
    _pending_messages.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Vendor message failed: {str(error)}")
    elif task.result().get("status") in ("failed", "not_configured", "unsupported_channel"):
        logger.warning(f"Vendor message not delivered: {task.result()}")


class OrderManager:
    """Order lifecycle: creation, validated status transitions with an append-only timeline"""

    def __init__(
        self,
        store: DocumentStore,
        notifications: Optional[NotificationManager] = None,
        messenger=None,
        poll_interval: float = SUBSCRIPTION_POLL_SECONDS,
    ):
        self.store = store
        self.notifications = notifications if notifications is not None else NotificationManager(store)
        self.messenger = messenger
        self.poll_interval = poll_interval

    async def create_order(
        self,
        order_data: OrderCreate,
        vendor_id: str,
        vendor_name: str,
        vendor_phone: Optional[str] = None,
    ) -> str:
        """
        Create a draft order. With a caller-assigned order_id, replaying the
        same request returns the existing order id instead of a duplicate.
        """
        data = order_data.model_dump(exclude={"order_id"})
        items = [
            {**item, "id": f"item_{index}", "quoted_price": None, "final_price": None}
            for index, item in enumerate(data.pop("items"), start=1)
        ]

        document = {
            **data,
            "order_number": generate_order_number(),
            "vendor_id": vendor_id,
            "vendor_name": vendor_name,
            "vendor_phone": vendor_phone,
            "supplier_id": None,
            "supplier_name": None,
            "supplier_phone": None,
            "items": items,
            "status": OrderStatus.DRAFT.value,
            "total_amount": calculate_total_amount(items),
            "quoted_amount": None,
            "final_amount": None,
            "payment_status": PaymentStatus.PENDING.value,
            "attachments": [],
            "actual_delivery_time": None,
            "timeline": [
                {
                    "id": "timeline_1",
                    "status": OrderStatus.DRAFT.value,
                    "timestamp": SERVER_TIMESTAMP,
                    "note": "Order created",
                    "updated_by": vendor_id,
                    "updated_by_name": vendor_name,
                    "updated_by_role": "vendor",
                    "attachments": [],
                    "location": None,
                    "estimated_time": None,
                    "cost": None,
                    "is_public": True,
                    "notification_sent": False,
                }
            ],
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }

        try:
            order_id = await self.store.create(ORDERS, document, doc_id=order_data.order_id)
        except ConflictError:
            if order_data.order_id is None:
                raise
            existing = await self.store.get(ORDERS, order_data.order_id)
            if existing is None or existing.get("vendor_id") != vendor_id:
                raise
            logger.info(f"Replayed create for order {order_data.order_id}, returning existing order")
            return order_data.order_id

        logger.info(f"Order {order_id} ({document['order_number']}) created by {vendor_id}, total {document['total_amount']}")
        return order_id

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        order = await self.store.get(ORDERS, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def update_order_status(
        self,
        order_id: str,
        new_status: str,
        actor_id: str,
        actor_name: str,
        actor_role: str,
        options: Optional[StatusUpdateOptions] = None,
        actor_phone: Optional[str] = None,
    ) -> None:
        """
        Move the order to ``new_status`` and append one timeline entry, in a
        single version-checked write. quoted_amount is stored when supplied.
        """
        options = options or StatusUpdateOptions()

        def apply_transition(order: Dict[str, Any]) -> Dict[str, Any]:
            if actor_role == "vendor" and order["vendor_id"] != actor_id:
                raise PermissionDeniedError("Only the vendor who placed this order can update it")
            if actor_role == "supplier" and order.get("supplier_id") not in (None, actor_id):
                raise PermissionDeniedError("This order is handled by another supplier")

            current_status = order["status"]
            if not can_transition(current_status, new_status):
                raise InvalidTransitionError(f"Cannot move order from {current_status} to {new_status}")

            timeline = list(order.get("timeline") or [])
            timeline.append({
                "id": f"timeline_{len(timeline) + 1}",
                "status": new_status,
                "timestamp": SERVER_TIMESTAMP,
                "note": options.note,
                "updated_by": actor_id,
                "updated_by_name": actor_name,
                "updated_by_role": actor_role,
                "attachments": list(options.attachments),
                "location": options.location,
                "estimated_time": options.estimated_time,
                "cost": options.cost,
                "is_public": options.is_public,
                "notification_sent": False,
            })

            changes = {
                "status": new_status,
                "timeline": timeline,
                "updated_at": SERVER_TIMESTAMP,
            }
            if options.quoted_amount is not None:
                changes["quoted_amount"] = options.quoted_amount
            if options.final_amount is not None:
                changes["final_amount"] = options.final_amount
            if options.attachments:
                changes["attachments"] = list(order.get("attachments") or []) + list(options.attachments)
            if actor_role == "supplier" and not order.get("supplier_id"):
                changes.update({
                    "supplier_id": actor_id,
                    "supplier_name": actor_name,
                    "supplier_phone": actor_phone,
                })
            if new_status == OrderStatus.DELIVERED.value:
                changes["actual_delivery_time"] = SERVER_TIMESTAMP
            return changes

        order = await run_transaction(self.store, ORDERS, order_id, apply_transition, not_found_message="Order not found")
        logger.info(f"Order {order_id} moved to {new_status} by {actor_role} {actor_id}")

        if new_status == OrderStatus.QUOTED.value and actor_id != order["vendor_id"]:
            await self._notify_vendor_of_quote(order)
        if new_status in VENDOR_MESSAGE_STATUSES:
            self._message_vendor(order, new_status)

    async def _notify_vendor_of_quote(self, order: Dict[str, Any]) -> None:
        """Best-effort: a failure here never undoes the status change"""
        quoted_amount = order.get("quoted_amount")
        try:
            await self.notifications.create(NotificationCreate(
                user_id=order["vendor_id"],
                user_role="vendor",
                type="order",
                category="info",
                title="Order Quote Received",
                message=f"Your order #{order['order_number']} has been quoted at ₹{format_amount(quoted_amount)}",
                data={"order_id": order["id"], "quoted_amount": quoted_amount},
                action_url=f"/orders/{order['id']}",
                priority="medium",
                channels=["app", "whatsapp"],
                related_entity_id=order["id"],
                related_entity_type="order",
            ))
        except Exception as e:
            logger.error(f"Failed to notify vendor {order['vendor_id']} about quote on {order['id']}: {str(e)}")

    def _message_vendor(self, order: Dict[str, Any], new_status: str) -> None:
        """Fire-and-forget WhatsApp message to the vendor"""
        if self.messenger is None or not order.get("vendor_phone"):
            return

        body = get_order_status_message(order, new_status, order.get("quoted_amount"))
        task = asyncio.create_task(
            asyncio.to_thread(self.messenger.send_message, order["vendor_phone"], body, "whatsapp")
        )
        _pending_messages.add(task)
        task.add_done_callback(_message_finished)

    async def list_orders(self, filters: OrderFilters) -> QueryResult:
        conditions = []
        if filters.user_id and filters.role == "vendor":
            conditions.append(Filter("vendor_id", "==", filters.user_id))
        elif filters.user_id and filters.role == "supplier" and not filters.unassigned:
            conditions.append(Filter("supplier_id", "==", filters.user_id))
        if filters.unassigned:
            conditions.append(Filter("supplier_id", "==", None))
        if filters.status:
            conditions.append(Filter("status", "==", filters.status))
        if filters.group_id:
            conditions.append(Filter("group_id", "==", filters.group_id))

        return await self.store.query(
            ORDERS,
            conditions,
            order_by="created_at",
            descending=True,
            limit=filters.limit,
            offset=filters.offset,
        )

    def subscribe_to_order(
        self,
        order_id: str,
        callback: Callable[[Optional[Dict[str, Any]]], Any],
        interval: Optional[float] = None,
    ) -> Subscription:
        """Deliver the order (None once it is missing) now and after every write to it"""
        subscription = Subscription(
            fetch=lambda: self.store.get(ORDERS, order_id),
            callback=callback,
            fingerprint=lambda order: order["_version"] if order else None,
            interval=interval if interval is not None else self.poll_interval,
            name=f"order:{order_id}",
        )
        return subscription.start()


def get_order_manager(store: DocumentStore = Depends(get_store)) -> OrderManager:
    return OrderManager(store, notifications=NotificationManager(store), messenger=twilio_messenger)
