import asyncio

import pytest

from conftest import make_group
from routers.groups.helpers import GroupManager, DEFAULT_GROUP_RULES
from routers.groups.schemas import GroupFilters
from utils.errors import AlreadyMemberError, GroupFullError, InvalidTransitionError, NotFoundError


def test_create_group_defaults(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(), owner_id="owner", owner_name="Raj", owner_phone="+919800000001")
        return await manager.get_group(group_id)

    group = asyncio.run(scenario())
    assert group["members"] == ["owner"]
    assert group["member_details"]["owner"]["role"] == "owner"
    assert group["member_details"]["owner"]["joined_at"] is not None
    assert group["status"] == "active"
    assert group["max_members"] == 10
    assert group["rules"] == DEFAULT_GROUP_RULES
    assert group["total_orders"] == 0


def test_create_group_keeps_custom_rules(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(rules=["Pay upfront"]), owner_id="owner", owner_name="Raj")
        return await manager.get_group(group_id)

    assert asyncio.run(scenario())["rules"] == ["Pay upfront"]


def test_group_becomes_full_and_rejects_further_joins(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(max_members=2), owner_id="a", owner_name="A")
        await manager.join_group(group_id, "b", "B", "+919800000002")
        full = await manager.get_group(group_id)
        with pytest.raises(GroupFullError):
            await manager.join_group(group_id, "c", "C")
        return full, await manager.get_group(group_id)

    full, after = asyncio.run(scenario())
    assert full["status"] == "full"
    assert full["member_details"]["b"]["role"] == "member"
    assert after["members"] == ["a", "b"]


def test_join_twice_is_rejected(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(), owner_id="a", owner_name="A")
        await manager.join_group(group_id, "b", "B")
        with pytest.raises(AlreadyMemberError):
            await manager.join_group(group_id, "b", "B")
        with pytest.raises(AlreadyMemberError):
            await manager.join_group(group_id, "a", "A")
        return await manager.get_group(group_id)

    assert asyncio.run(scenario())["members"] == ["a", "b"]


def test_join_missing_group(store):
    with pytest.raises(NotFoundError):
        asyncio.run(GroupManager(store).join_group("missing", "b", "B"))


def test_concurrent_joins_never_exceed_capacity(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(max_members=5), owner_id="owner", owner_name="Owner")
        results = await asyncio.gather(
            *(manager.join_group(group_id, f"user-{n}", f"User {n}") for n in range(9)),
            return_exceptions=True,
        )
        return results, await manager.get_group(group_id)

    results, group = asyncio.run(scenario())
    joined = [result for result in results if result is None]
    rejected = [result for result in results if isinstance(result, GroupFullError)]
    assert len(joined) == 4
    assert len(rejected) == 5
    assert len(group["members"]) == 5
    assert len(set(group["members"])) == 5
    assert group["status"] == "full"


def test_concurrent_duplicate_join_admits_once(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(), owner_id="owner", owner_name="Owner")
        results = await asyncio.gather(
            manager.join_group(group_id, "b", "B"),
            manager.join_group(group_id, "b", "B"),
            return_exceptions=True,
        )
        return results, await manager.get_group(group_id)

    results, group = asyncio.run(scenario())
    assert sum(1 for result in results if isinstance(result, AlreadyMemberError)) == 1
    assert group["members"] == ["owner", "b"]


def test_reopened_full_group_still_enforces_capacity(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(max_members=2), owner_id="a", owner_name="A")
        await manager.join_group(group_id, "b", "B")
        await manager.set_group_status(group_id, "active", actor_id="admin")
        reopened = await manager.get_group(group_id)
        with pytest.raises(GroupFullError):
            await manager.join_group(group_id, "c", "C")
        return reopened

    assert asyncio.run(scenario())["status"] == "active"


def test_closed_group_rejects_joins(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(), owner_id="a", owner_name="A")
        await manager.set_group_status(group_id, "archived", actor_id="admin")
        with pytest.raises(InvalidTransitionError):
            await manager.join_group(group_id, "b", "B")

    asyncio.run(scenario())


def test_list_groups_filters(store):
    manager = GroupManager(store)

    async def scenario():
        first = await manager.create_group(make_group(location="Karol Bagh, Delhi"), owner_id="a", owner_name="A")
        await manager.create_group(make_group(location="Andheri, Mumbai", category="spices"), owner_id="b", owner_name="B")
        await manager.create_group(make_group(location="Saket, Delhi", category="oil"), owner_id="c", owner_name="C")
        await manager.join_group(first, "d", "D")

        by_city = await manager.list_groups(GroupFilters(location="DELHI"))
        by_category = await manager.list_groups(GroupFilters(category="spices"))
        by_member = await manager.list_groups(GroupFilters(member_id="d"))
        first_page = await manager.list_groups(GroupFilters(limit=2))
        return by_city, by_category, by_member, first_page

    by_city, by_category, by_member, first_page = asyncio.run(scenario())
    assert by_city.total == 2
    assert [g["location"] for g in by_category.documents] == ["Andheri, Mumbai"]
    assert [g["owner_id"] for g in by_member.documents] == ["a"]
    assert len(first_page.documents) == 2 and first_page.has_more
    assert first_page.documents[0]["owner_id"] == "c"


def test_add_image_appends(store):
    manager = GroupManager(store)

    async def scenario():
        group_id = await manager.create_group(make_group(), owner_id="a", owner_name="A")
        await manager.add_image(group_id, "https://cdn/1.jpg")
        await manager.add_image(group_id, "https://cdn/2.jpg")
        return await manager.get_group(group_id)

    assert asyncio.run(scenario())["images"] == ["https://cdn/1.jpg", "https://cdn/2.jpg"]
