from fastapi import Depends
from typing import Any, Dict, Optional, Tuple
import logging

from config import get_store
from store.base import DocumentStore, Filter, QueryResult, SERVER_TIMESTAMP
from store.transactions import run_transaction
from utils.errors import ConflictError, NotFoundError
from .schemas import UserPreferences, UserProfileUpdate

logger = logging.getLogger(__name__)

USERS = "users"

PROFILE_COMPLETENESS_FIELDS = ["name", "email", "location", "business_name"]


def calculate_profile_completeness(profile: Dict[str, Any]) -> int:
    completed = [
        field for field in PROFILE_COMPLETENESS_FIELDS
        if profile.get(field) and str(profile[field]).strip()
    ]
    return round(len(completed) / len(PROFILE_COMPLETENESS_FIELDS) * 100)


class UserHelpers:
    """User profile documents keyed by the auth user id"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(USERS, user_id)

    async def get_or_create_profile(
        self,
        user_id: str,
        phone: str,
        role: str,
        name: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Returns (profile, created). Existing profiles keep their role."""
        profile = await self.store.get(USERS, user_id)
        if profile is not None:
            await self.store.update(USERS, user_id, {"last_login_at": SERVER_TIMESTAMP})
            return profile, False

        document = {
            "phone": phone,
            "role": role,
            "name": name or "",
            "email": "",
            "business_name": "",
            "location": "",
            "preferences": UserPreferences().model_dump(),
            "is_verified": False,
            "is_active": True,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            "last_login_at": SERVER_TIMESTAMP,
        }
        document["profile_completeness"] = calculate_profile_completeness(document)

        try:
            await self.store.create(USERS, document, doc_id=user_id)
        except ConflictError:
            # a parallel login created it first
            return await self.store.get(USERS, user_id), False

        logger.info(f"Created {role} profile for {user_id}")
        return await self.store.get(USERS, user_id), True

    async def update_profile(self, user_id: str, updates: UserProfileUpdate) -> Dict[str, Any]:
        changes = updates.model_dump(exclude_unset=True, exclude_none=True)

        def apply_updates(profile: Dict[str, Any]) -> Dict[str, Any]:
            merged = {**profile, **changes}
            return {
                **changes,
                "profile_completeness": calculate_profile_completeness(merged),
                "updated_at": SERVER_TIMESTAMP,
            }

        await run_transaction(self.store, USERS, user_id, apply_updates, not_found_message="User profile not found")
        return await self.require_profile(user_id)

    async def set_role(self, user_id: str, new_role: str) -> str:
        """Change the stored role, returns the previous one"""
        previous = {}

        def apply_role(profile: Dict[str, Any]) -> Dict[str, Any]:
            previous["role"] = profile.get("role")
            return {"role": new_role, "updated_at": SERVER_TIMESTAMP}

        await run_transaction(self.store, USERS, user_id, apply_role, not_found_message="User profile not found")
        logger.info(f"Role of {user_id} changed from {previous['role']} to {new_role}")
        return previous["role"]

    async def set_avatar(self, user_id: str, avatar_url: str) -> Optional[str]:
        """Store the new avatar URL, returns the previous one"""
        profile = await self.require_profile(user_id)
        await self.store.update(USERS, user_id, {"avatar_url": avatar_url, "updated_at": SERVER_TIMESTAMP})
        return profile.get("avatar_url")

    async def require_profile(self, user_id: str) -> Dict[str, Any]:
        profile = await self.store.get(USERS, user_id)
        if profile is None:
            raise NotFoundError("User profile not found")
        return profile

    async def list_suppliers(
        self,
        location: Optional[str] = None,
        category: Optional[str] = None,
        verified_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> QueryResult:
        """Active supplier profiles, newest first"""
        conditions = [Filter("role", "==", "supplier"), Filter("is_active", "==", True)]
        if location:
            conditions.append(Filter("location", "icontains", location))
        if category:
            conditions.append(Filter("category", "==", category))
        if verified_only:
            conditions.append(Filter("is_verified", "==", True))

        return await self.store.query(USERS, conditions, limit=limit, offset=offset)


def get_user_helpers(store: DocumentStore = Depends(get_store)) -> UserHelpers:
    return UserHelpers(store)
