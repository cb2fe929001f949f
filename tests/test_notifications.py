import asyncio

import pytest

from routers.notifications.helpers import NotificationManager
from routers.notifications.schemas import NotificationCreate, NotificationFilters
from store.memory import InMemoryDocumentStore
from utils.errors import PersistenceError


def notice(user_id, type="order", title="Order update"):
    return NotificationCreate(user_id=user_id, type=type, title=title, message=f"{title} for {user_id}")


def test_create_sets_read_state(notifications):
    async def scenario():
        notification_id = await notifications.create(notice("vendor-1"))
        return await notifications.get_notification(notification_id)

    notification = asyncio.run(scenario())
    assert notification["read"] is False
    assert notification["archived"] is False
    assert notification["read_at"] is None
    assert notification["created_at"] is not None
    assert notification["channels"] == ["app"]


def test_list_filters_and_unfiltered_unread_count(notifications):
    async def scenario():
        await notifications.create(notice("vendor-1", type="order"))
        group_id = await notifications.create(notice("vendor-1", type="group"))
        await notifications.create(notice("vendor-1", type="surplus"))
        await notifications.create(notice("vendor-2", type="order"))
        await notifications.mark_read(group_id)

        orders_only = await notifications.list_for_user("vendor-1", NotificationFilters(type="order"))
        read_only = await notifications.list_for_user("vendor-1", NotificationFilters(read=True))
        everything = await notifications.list_for_user("vendor-1")
        return orders_only, read_only, everything

    orders_only, read_only, everything = asyncio.run(scenario())
    assert [n["type"] for n in orders_only.notifications] == ["order"]
    assert orders_only.unread_count == 2
    assert [n["type"] for n in read_only.notifications] == ["group"]
    assert read_only.unread_count == 2
    assert [n["type"] for n in everything.notifications] == ["surplus", "group", "order"]
    assert everything.total == 3


def test_default_page_holds_fifty(notifications):
    async def scenario():
        for n in range(55):
            await notifications.create(notice("vendor-1", title=f"Update {n}"))
        return await notifications.list_for_user("vendor-1")

    page = asyncio.run(scenario())
    assert len(page.notifications) == 50
    assert page.has_more
    assert page.total == 55
    assert page.notifications[0]["title"] == "Update 54"


def test_mark_all_read_only_touches_one_user(notifications):
    async def scenario():
        for _ in range(3):
            await notifications.create(notice("vendor-1"))
        await notifications.create(notice("vendor-2"))

        updated = await notifications.mark_all_read("vendor-1")
        again = await notifications.mark_all_read("vendor-1")
        return updated, again, await notifications.count_unread("vendor-1"), await notifications.count_unread("vendor-2")

    updated, again, unread_1, unread_2 = asyncio.run(scenario())
    assert updated == 3
    assert again == 0
    assert unread_1 == 0
    assert unread_2 == 1


class FailingBatchStore(InMemoryDocumentStore):
    async def _atomic_batch(self, operations):
        raise RuntimeError("write quorum lost")


def test_mark_all_read_is_all_or_nothing():
    store = FailingBatchStore()
    manager = NotificationManager(store)

    async def scenario():
        for _ in range(3):
            await manager.create(notice("vendor-1"))
        with pytest.raises(PersistenceError):
            await manager.mark_all_read("vendor-1")
        return await manager.count_unread("vendor-1")

    assert asyncio.run(scenario()) == 3


def test_archive_hides_and_marks_read(notifications):
    async def scenario():
        notification_id = await notifications.create(notice("vendor-1"))
        await notifications.archive(notification_id)
        visible = await notifications.list_for_user("vendor-1")
        with_archived = await notifications.list_for_user("vendor-1", NotificationFilters(include_archived=True))
        return visible, with_archived

    visible, with_archived = asyncio.run(scenario())
    assert visible.total == 0
    assert visible.unread_count == 0
    assert with_archived.notifications[0]["archived"] is True
    assert with_archived.notifications[0]["read"] is True


def test_subscribe_delivers_changes_until_unsubscribed(notifications):
    async def scenario():
        received = asyncio.Queue()
        subscription = notifications.subscribe("vendor-1", received.put)

        initial = await asyncio.wait_for(received.get(), timeout=1)
        await notifications.create(notice("vendor-1", title="Quote"))
        after_create = await asyncio.wait_for(received.get(), timeout=1)
        await notifications.create(notice("vendor-2", title="Someone else"))
        await notifications.mark_all_read("vendor-1")
        after_read = await asyncio.wait_for(received.get(), timeout=1)

        subscription.unsubscribe()
        await asyncio.sleep(0.05)
        await notifications.create(notice("vendor-1", title="Too late"))
        await asyncio.sleep(0.05)
        return initial, after_create, after_read, received.empty(), subscription.active

    initial, after_create, after_read, nothing_more, active = asyncio.run(scenario())
    assert initial == []
    assert [n["title"] for n in after_create] == ["Quote"]
    assert after_read == []
    assert nothing_more
    assert active is False


def test_subscription_as_context_manager(notifications):
    async def scenario():
        received = []
        async with notifications.subscribe("vendor-1", received.append, interval=0.01) as subscription:
            await notifications.create(notice("vendor-1"))
            await asyncio.sleep(0.1)
        return received, subscription.active

    received, active = asyncio.run(scenario())
    assert received[0] == []
    assert len(received[-1]) == 1
    assert active is False


def test_subscription_survives_failed_polls():
    class FlakyStore(InMemoryDocumentStore):
        failures = 2

        async def _query(self, *args):
            if self.failures:
                self.failures -= 1
                raise RuntimeError("temporary outage")
            return await super()._query(*args)

    manager = NotificationManager(FlakyStore(), poll_interval=0.01)

    async def scenario():
        received = asyncio.Queue()
        subscription = manager.subscribe("vendor-1", received.put)
        snapshot = await asyncio.wait_for(received.get(), timeout=1)
        subscription.unsubscribe()
        return snapshot

    assert asyncio.run(scenario()) == []
