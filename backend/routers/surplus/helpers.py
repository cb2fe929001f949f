from datetime import datetime, timedelta, timezone
from fastapi import Depends
from typing import Any, Dict, Optional
import logging

from config import get_store
from routers.notifications.helpers import NotificationManager
from routers.notifications.schemas import NotificationCreate
from store.base import DocumentStore, Filter, QueryResult, SERVER_TIMESTAMP, as_datetime
from store.transactions import run_transaction
from utils.errors import (
    InsufficientQuantityError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError, ValidationError
)
from utils.ids import generate_id
from .schemas import SurplusFilters, SurplusItemCreate, SurplusStatus

logger = logging.getLogger(__name__)

SURPLUS_ITEMS = "surplus_items"
DEFAULT_HOLD_MINUTES = 30
# quantities are kept to grams/millilitres
QUANTITY_DECIMALS = 3

# statuses that turn into "expired" once the listing is past its expiry
EXPIRABLE_STATUSES = [
    SurplusStatus.AVAILABLE.value,
    SurplusStatus.RESERVED.value,
    SurplusStatus.PARTIALLY_SOLD.value,
]
CLOSED_STATUSES = {
    SurplusStatus.SOLD.value,
    SurplusStatus.EXPIRED.value,
    SurplusStatus.WITHDRAWN.value,
}


def normalize_quantity(quantity: float) -> float:
    return round(float(quantity), QUANTITY_DECIMALS)


def calculate_discount_percentage(price: float, original_price: Optional[float]) -> int:
    if not original_price:
        return 0
    return round((original_price - price) / original_price * 100)


def effective_status(item: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Stored status, except that a past-due open listing reads as expired"""
    now = now or datetime.now(timezone.utc)
    status = item.get("status")
    expires_at = as_datetime(item.get("expires_at"))
    if status in EXPIRABLE_STATUSES and expires_at is not None and expires_at <= now:
        return SurplusStatus.EXPIRED.value
    return status


def with_effective_status(item: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    return {**item, "status": effective_status(item, now)}


def status_after_sale(remaining: float, original: float) -> str:
    if remaining <= 0:
        return SurplusStatus.SOLD.value
    if remaining < original:
        return SurplusStatus.PARTIALLY_SOLD.value
    return SurplusStatus.AVAILABLE.value


class SurplusManager:
    """Surplus listings and reservations against their remaining quantity"""

    def __init__(self, store: DocumentStore, notifications: Optional[NotificationManager] = None):
        self.store = store
        self.notifications = notifications

    async def create_surplus_item(
        self,
        item_data: SurplusItemCreate,
        vendor_id: str,
        vendor_name: str,
        vendor_phone: Optional[str] = None,
        vendor_location: Optional[str] = None,
    ) -> str:
        data = item_data.model_dump()
        data["quantity"] = normalize_quantity(data["quantity"])
        if data["max_quantity"] is not None and data["max_quantity"] > data["quantity"]:
            raise ValidationError("max_quantity cannot exceed the listed quantity")
        if data["min_quantity"] is not None and data["min_quantity"] > data["quantity"]:
            raise ValidationError("min_quantity cannot exceed the listed quantity")
        if data["original_price"] is not None and data["price"] > data["original_price"]:
            raise ValidationError("price cannot be higher than original_price")

        document = {
            **data,
            "vendor_id": vendor_id,
            "vendor_name": vendor_name,
            "vendor_phone": vendor_phone,
            "vendor_location": vendor_location or data["location"],
            "address": data["address"] or data["location"],
            "original_quantity": data["quantity"],
            "remaining_quantity": data["quantity"],
            "original_price": data["original_price"] or data["price"],
            "discount_percentage": calculate_discount_percentage(data["price"], data["original_price"]),
            "min_quantity": data["min_quantity"] or 1,
            "max_quantity": data["max_quantity"] or data["quantity"],
            "delivery_radius": 5,
            "images": [],
            "status": SurplusStatus.AVAILABLE.value,
            "interested_buyers": [],
            "reservations": [],
            "expires_at": data["expiry_date"],
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }

        item_id = await self.store.create(SURPLUS_ITEMS, document)
        logger.info(f"Surplus item {item_id} listed by {vendor_id}: {data['quantity']} {data['unit']} of {data['name']}")
        return item_id

    async def get_surplus_item(self, item_id: str) -> Dict[str, Any]:
        item = await self.store.get(SURPLUS_ITEMS, item_id)
        if item is None:
            raise NotFoundError("Surplus item not found")
        return with_effective_status(item)

    async def reserve(
        self,
        item_id: str,
        buyer_id: str,
        buyer_name: str,
        quantity: float,
        hold_minutes: int = DEFAULT_HOLD_MINUTES,
    ) -> Dict[str, Any]:
        """
        Reserve ``quantity`` units for a buyer. The quantity check and the
        decrement of remaining_quantity are one version-checked write.
        Returns the stored reservation.
        """
        quantity = normalize_quantity(quantity)
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be positive")

        reservation_id = generate_id()

        def apply_reservation(item: Dict[str, Any]) -> Dict[str, Any]:
            now = datetime.now(timezone.utc)
            status = effective_status(item, now)
            if status in (SurplusStatus.WITHDRAWN.value, SurplusStatus.EXPIRED.value):
                raise InvalidTransitionError(f"Surplus item is {status}")
            if item["vendor_id"] == buyer_id:
                raise ValidationError("Cannot reserve your own listing")
            if quantity > item.get("max_quantity", item["original_quantity"]):
                raise ValidationError(f"At most {item['max_quantity']} {item['unit']} per reservation")

            remaining = normalize_quantity(item["remaining_quantity"])
            if quantity > remaining:
                raise InsufficientQuantityError(f"Only {remaining} {item['unit']} left")
            # the last units may be taken below the minimum
            if quantity < item.get("min_quantity", 0) and quantity != remaining:
                raise ValidationError(f"Minimum reservation is {item['min_quantity']} {item['unit']}")

            remaining = normalize_quantity(remaining - quantity)
            reservations = list(item.get("reservations") or [])
            reservations.append({
                "id": reservation_id,
                "buyer_id": buyer_id,
                "buyer_name": buyer_name,
                "quantity": quantity,
                "reserved_at": SERVER_TIMESTAMP,
                "expires_at": now + timedelta(minutes=hold_minutes),
            })
            interested_buyers = list(item.get("interested_buyers") or [])
            if buyer_id not in interested_buyers:
                interested_buyers.append(buyer_id)

            return {
                "remaining_quantity": remaining,
                "status": status_after_sale(remaining, item["original_quantity"]),
                "reservations": reservations,
                "interested_buyers": interested_buyers,
                "updated_at": SERVER_TIMESTAMP,
            }

        item = await run_transaction(
            self.store, SURPLUS_ITEMS, item_id, apply_reservation,
            not_found_message="Surplus item not found",
        )
        logger.info(
            f"{buyer_id} reserved {quantity} of surplus item {item_id}, "
            f"{item['remaining_quantity']} left ({item['status']})"
        )

        await self._notify_seller(item, buyer_name, quantity)

        stored = await self.store.get(SURPLUS_ITEMS, item_id)
        for reservation in (stored or item).get("reservations", []):
            if reservation["id"] == reservation_id:
                return reservation
        raise NotFoundError("Reservation not found")

    async def _notify_seller(self, item: Dict[str, Any], buyer_name: str, quantity: float) -> None:
        if self.notifications is None:
            return
        try:
            await self.notifications.create(NotificationCreate(
                user_id=item["vendor_id"],
                user_role="vendor",
                type="surplus",
                category="success",
                title="Surplus Reserved",
                message=f"{buyer_name} reserved {quantity} {item['unit']} of {item['name']}",
                data={"item_id": item["id"], "quantity": quantity},
                action_url=f"/surplus/{item['id']}",
                related_entity_id=item["id"],
                related_entity_type="surplus_item",
            ))
        except Exception as e:
            logger.error(f"Failed to notify seller {item['vendor_id']} about reservation on {item['id']}: {str(e)}")

    async def withdraw_surplus_item(self, item_id: str, vendor_id: str, as_admin: bool = False) -> None:
        def apply_withdrawal(item: Dict[str, Any]) -> Dict[str, Any]:
            if not as_admin and item["vendor_id"] != vendor_id:
                raise PermissionDeniedError("Only the seller can withdraw this listing")
            status = effective_status(item)
            if status in CLOSED_STATUSES:
                raise InvalidTransitionError(f"Surplus item is already {status}")
            return {"status": SurplusStatus.WITHDRAWN.value, "updated_at": SERVER_TIMESTAMP}

        await run_transaction(
            self.store, SURPLUS_ITEMS, item_id, apply_withdrawal,
            not_found_message="Surplus item not found",
        )
        logger.info(f"Surplus item {item_id} withdrawn by {vendor_id}")

    async def add_image(self, item_id: str, image_url: str) -> None:
        def append_image(item: Dict[str, Any]) -> Dict[str, Any]:
            images = list(item.get("images") or [])
            images.append(image_url)
            return {"images": images, "updated_at": SERVER_TIMESTAMP}

        await run_transaction(
            self.store, SURPLUS_ITEMS, item_id, append_image,
            not_found_message="Surplus item not found",
        )

    async def expire_surplus_items(self) -> int:
        """Persist "expired" on every open listing past its expiry. Returns the count."""
        now = datetime.now(timezone.utc)
        result = await self.store.query(
            SURPLUS_ITEMS,
            [Filter("status", "in", EXPIRABLE_STATUSES), Filter("expires_at", "<=", now)],
            order_by="created_at",
            descending=False,
        )

        expired = set()

        def apply_expiry(item: Dict[str, Any]) -> Dict[str, Any]:
            if item["status"] not in EXPIRABLE_STATUSES or effective_status(item, now) != SurplusStatus.EXPIRED.value:
                return {}
            expired.add(item["id"])
            return {"status": SurplusStatus.EXPIRED.value, "updated_at": SERVER_TIMESTAMP}

        for candidate in result.documents:
            await run_transaction(self.store, SURPLUS_ITEMS, candidate["id"], apply_expiry)

        logger.info(f"Expired {len(expired)} surplus listings")
        return len(expired)

    async def list_surplus_items(self, filters: SurplusFilters) -> QueryResult:
        """
        Status filters match the effective status: "available" leaves out
        past-due listings, "expired" includes them.
        """
        now = datetime.now(timezone.utc)
        conditions = []
        if filters.location:
            conditions.append(Filter("location", "icontains", filters.location))
        if filters.category:
            conditions.append(Filter("category", "==", filters.category))
        if filters.vendor_id:
            conditions.append(Filter("vendor_id", "==", filters.vendor_id))
        if filters.min_price is not None:
            conditions.append(Filter("price", ">=", filters.min_price))
        if filters.max_price is not None:
            conditions.append(Filter("price", "<=", filters.max_price))
        if filters.expiring_within_days:
            conditions.append(Filter("expires_at", "<=", now + timedelta(days=filters.expiring_within_days)))

        if filters.status == SurplusStatus.EXPIRED.value:
            conditions.append(Filter("status", "in", EXPIRABLE_STATUSES + [SurplusStatus.EXPIRED.value]))
            conditions.append(Filter("expires_at", "<=", now))
        elif filters.status in EXPIRABLE_STATUSES:
            conditions.append(Filter("status", "==", filters.status))
            conditions.append(Filter("expires_at", ">", now))
        elif filters.status:
            conditions.append(Filter("status", "==", filters.status))

        result = await self.store.query(
            SURPLUS_ITEMS,
            conditions,
            order_by="created_at",
            descending=True,
            limit=filters.limit,
            offset=filters.offset,
        )
        result.documents = [with_effective_status(item, now) for item in result.documents]
        return result


def get_surplus_manager(store: DocumentStore = Depends(get_store)) -> SurplusManager:
    return SurplusManager(store, notifications=NotificationManager(store))
