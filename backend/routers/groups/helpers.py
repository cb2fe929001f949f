from fastapi import Depends
from typing import Any, Dict, Optional
import logging

from config import get_store
from store.base import DocumentStore, Filter, QueryResult, SERVER_TIMESTAMP
from store.transactions import run_transaction
from utils.errors import AlreadyMemberError, GroupFullError, InvalidTransitionError, NotFoundError
from .schemas import GroupCreate, GroupFilters, GroupStatus, MemberRole

logger = logging.getLogger(__name__)

GROUPS = "groups"

DEFAULT_GROUP_RULES = [
    "Minimum order value: ₹500",
    "Payment within 24 hours of delivery",
    "Quality issues to be reported within 2 hours",
    "Respect delivery timings",
]

CLOSED_GROUP_STATUSES = {GroupStatus.INACTIVE.value, GroupStatus.ARCHIVED.value}


class GroupManager:
    """Buying groups: creation, capacity-limited membership and listing"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create_group(
        self,
        group_data: GroupCreate,
        owner_id: str,
        owner_name: str,
        owner_phone: Optional[str] = None,
    ) -> str:
        data = group_data.model_dump()
        document = {
            **data,
            "rules": data.get("rules") or list(DEFAULT_GROUP_RULES),
            "owner_id": owner_id,
            "owner_name": owner_name,
            "owner_phone": owner_phone,
            "members": [owner_id],
            "member_details": {
                owner_id: {
                    "name": owner_name,
                    "phone": owner_phone,
                    "joined_at": SERVER_TIMESTAMP,
                    "role": MemberRole.OWNER.value,
                }
            },
            "status": GroupStatus.ACTIVE.value,
            "total_orders": 0,
            "total_savings": 0,
            "average_savings": 0,
            "is_verified": False,
            "rating": 0,
            "review_count": 0,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }

        group_id = await self.store.create(GROUPS, document)
        logger.info(f"Group {group_id} created by {owner_id}")
        return group_id

    async def get_group(self, group_id: str) -> Dict[str, Any]:
        group = await self.store.get(GROUPS, group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def join_group(
        self,
        group_id: str,
        user_id: str,
        user_name: str,
        user_phone: Optional[str] = None,
    ) -> None:
        def add_member(group: Dict[str, Any]) -> Dict[str, Any]:
            members = list(group.get("members") or [])
            if user_id in members:
                raise AlreadyMemberError("User is already a member of this group")
            if group.get("status") in CLOSED_GROUP_STATUSES:
                raise InvalidTransitionError(f"Group is {group.get('status')} and not accepting members")

            max_members = group.get("max_members", 10)
            if len(members) >= max_members:
                raise GroupFullError("Group is full")

            members.append(user_id)
            member_details = dict(group.get("member_details") or {})
            member_details[user_id] = {
                "name": user_name,
                "phone": user_phone,
                "joined_at": SERVER_TIMESTAMP,
                "role": MemberRole.MEMBER.value,
            }

            changes = {
                "members": members,
                "member_details": member_details,
                "updated_at": SERVER_TIMESTAMP,
            }
            if len(members) >= max_members:
                changes["status"] = GroupStatus.FULL.value
            return changes

        group = await run_transaction(self.store, GROUPS, group_id, add_member, not_found_message="Group not found")
        logger.info(f"User {user_id} joined group {group_id} ({len(group['members'])}/{group.get('max_members')})")

    async def add_image(self, group_id: str, image_url: str) -> None:
        def append_image(group: Dict[str, Any]) -> Dict[str, Any]:
            images = list(group.get("images") or [])
            images.append(image_url)
            return {"images": images, "updated_at": SERVER_TIMESTAMP}

        await run_transaction(self.store, GROUPS, group_id, append_image, not_found_message="Group not found")

    async def set_group_status(self, group_id: str, new_status: str, actor_id: str) -> None:
        """Administrative status change, the only way a full group becomes active again"""
        def apply_status(group: Dict[str, Any]) -> Dict[str, Any]:
            if group.get("status") == new_status:
                return {}
            return {"status": new_status, "updated_at": SERVER_TIMESTAMP}

        await run_transaction(self.store, GROUPS, group_id, apply_status, not_found_message="Group not found")
        logger.info(f"Group {group_id} status set to {new_status} by {actor_id}")

    async def list_groups(self, filters: GroupFilters) -> QueryResult:
        conditions = []
        if filters.location:
            conditions.append(Filter("location", "icontains", filters.location))
        if filters.category:
            conditions.append(Filter("category", "==", filters.category))
        if filters.status:
            conditions.append(Filter("status", "==", filters.status))
        if filters.member_id:
            conditions.append(Filter("members", "array_contains", filters.member_id))

        return await self.store.query(
            GROUPS,
            conditions,
            order_by="created_at",
            descending=True,
            limit=filters.limit,
            offset=filters.offset,
        )


def get_group_manager(store: DocumentStore = Depends(get_store)) -> GroupManager:
    return GroupManager(store)
