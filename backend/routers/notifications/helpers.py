from dataclasses import dataclass
from fastapi import Depends
from typing import Any, Callable, Dict, List, Optional
import logging

from config import get_store, SUBSCRIPTION_POLL_SECONDS
from store.base import BatchOperation, DocumentStore, Filter, SERVER_TIMESTAMP
from store.transactions import run_transaction
from utils.errors import ConflictError, PersistenceError
from utils.subscriptions import Subscription
from .schemas import NotificationCreate, NotificationFilters

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
UNREAD_SNAPSHOT_LIMIT = 10
MARK_ALL_READ_ATTEMPTS = 5


@dataclass
class NotificationPage:
    notifications: List[Dict[str, Any]]
    total: int
    has_more: bool
    unread_count: int


class NotificationManager:
    """In-app notifications: creation, per-user listing, read state and live updates"""

    def __init__(self, store: DocumentStore, poll_interval: float = SUBSCRIPTION_POLL_SECONDS):
        self.store = store
        self.poll_interval = poll_interval

    async def create(self, notification: NotificationCreate) -> str:
        document = {
            **notification.model_dump(),
            "read": False,
            "archived": False,
            "read_at": None,
            "created_at": SERVER_TIMESTAMP,
        }
        notification_id = await self.store.create(NOTIFICATIONS, document)
        logger.info(f"Notification {notification_id} ({notification.type}) created for {notification.user_id}")
        return notification_id

    async def count_unread(self, user_id: str) -> int:
        result = await self.store.query(
            NOTIFICATIONS,
            [Filter("user_id", "==", user_id), Filter("read", "==", False)],
            limit=0,
        )
        return result.total

    async def list_for_user(self, user_id: str, filters: Optional[NotificationFilters] = None) -> NotificationPage:
        """Newest first. unread_count ignores the type/read filters."""
        filters = filters or NotificationFilters()

        conditions = [Filter("user_id", "==", user_id)]
        if filters.type:
            conditions.append(Filter("type", "==", filters.type))
        if filters.read is not None:
            conditions.append(Filter("read", "==", filters.read))
        if not filters.include_archived:
            conditions.append(Filter("archived", "==", False))

        result = await self.store.query(
            NOTIFICATIONS,
            conditions,
            order_by="created_at",
            descending=True,
            limit=filters.limit,
            offset=filters.offset,
        )

        return NotificationPage(
            notifications=result.documents,
            total=result.total,
            has_more=result.has_more,
            unread_count=await self.count_unread(user_id),
        )

    async def get_notification(self, notification_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(NOTIFICATIONS, notification_id)

    async def mark_read(self, notification_id: str) -> None:
        def set_read(notification: Dict[str, Any]) -> Dict[str, Any]:
            if notification.get("read"):
                return {}
            return {"read": True, "read_at": SERVER_TIMESTAMP}

        await run_transaction(
            self.store, NOTIFICATIONS, notification_id, set_read,
            not_found_message="Notification not found",
        )

    async def archive(self, notification_id: str) -> None:
        def set_archived(notification: Dict[str, Any]) -> Dict[str, Any]:
            changes = {"archived": True}
            if not notification.get("read"):
                changes.update({"read": True, "read_at": SERVER_TIMESTAMP})
            return changes

        await run_transaction(
            self.store, NOTIFICATIONS, notification_id, set_archived,
            not_found_message="Notification not found",
        )

    async def mark_all_read(self, user_id: str) -> int:
        """
        Mark every unread notification of the user read in one atomic batch.
        Returns how many were updated.
        """
        for attempt in range(1, MARK_ALL_READ_ATTEMPTS + 1):
            result = await self.store.query(
                NOTIFICATIONS,
                [Filter("user_id", "==", user_id), Filter("read", "==", False)],
            )
            if not result.documents:
                return 0

            operations = [
                BatchOperation(
                    action="update",
                    collection=NOTIFICATIONS,
                    doc_id=notification["id"],
                    data={"read": True, "read_at": SERVER_TIMESTAMP},
                    expected_version=notification["_version"],
                )
                for notification in result.documents
            ]

            try:
                await self.store.atomic_batch(operations)
            except ConflictError:
                logger.info(f"mark_all_read for {user_id} raced another write, attempt {attempt}")
                continue

            logger.info(f"Marked {len(operations)} notifications read for {user_id}")
            return len(operations)

        raise PersistenceError("Could not mark notifications read, try again", retryable=True)

    async def unread_snapshot(self, user_id: str) -> List[Dict[str, Any]]:
        result = await self.store.query(
            NOTIFICATIONS,
            [Filter("user_id", "==", user_id), Filter("read", "==", False)],
            order_by="created_at",
            descending=True,
            limit=UNREAD_SNAPSHOT_LIMIT,
        )
        return result.documents

    def subscribe(
        self,
        user_id: str,
        callback: Callable[[List[Dict[str, Any]]], Any],
        interval: Optional[float] = None,
    ) -> Subscription:
        """
        Deliver the user's unread notifications (newest 10) to ``callback``
        now and whenever that set changes. Must be called from a running event
        loop; stop with ``unsubscribe()``.
        """
        subscription = Subscription(
            fetch=lambda: self.unread_snapshot(user_id),
            callback=callback,
            fingerprint=lambda notifications: tuple(n["id"] for n in notifications),
            interval=interval if interval is not None else self.poll_interval,
            name=f"notifications:{user_id}",
        )
        return subscription.start()


def get_notification_manager(store: DocumentStore = Depends(get_store)) -> NotificationManager:
    return NotificationManager(store)
