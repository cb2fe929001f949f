import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_surplus
from routers.surplus.helpers import (
    SurplusManager, SURPLUS_ITEMS, calculate_discount_percentage, effective_status
)
from routers.surplus.schemas import SurplusFilters
from utils.errors import (
    InsufficientQuantityError, InvalidTransitionError, NotFoundError,
    PermissionDeniedError, ValidationError
)


def past(days=1):
    return datetime.now(timezone.utc) - timedelta(days=days)


def test_discount_percentage():
    assert calculate_discount_percentage(20, 25) == 20
    assert calculate_discount_percentage(20, None) == 0
    assert calculate_discount_percentage(66, 99) == 33


def test_effective_status():
    later = datetime.now(timezone.utc) + timedelta(hours=1)
    assert effective_status({"status": "available", "expires_at": later}) == "available"
    assert effective_status({"status": "partially_sold", "expires_at": past()}) == "expired"
    assert effective_status({"status": "available", "expires_at": past().isoformat()}) == "expired"
    assert effective_status({"status": "sold", "expires_at": past()}) == "sold"
    assert effective_status({"status": "withdrawn", "expires_at": past()}) == "withdrawn"


def test_create_surplus_item(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(
            make_surplus(), vendor_id="seller", vendor_name="Sunita", vendor_phone="+919800000003"
        )
        return await manager.get_surplus_item(item_id)

    item = asyncio.run(scenario())
    assert item["original_quantity"] == item["remaining_quantity"] == 10
    assert item["discount_percentage"] == 20
    assert item["status"] == "available"
    assert item["expires_at"] == item["expiry_date"]
    assert item["min_quantity"] == 1
    assert item["max_quantity"] == 10
    assert item["payment_methods"] == ["cash", "upi"]
    assert item["vendor_location"] == "Lajpat Nagar, Delhi"
    assert item["reservations"] == []


def test_original_price_defaults_to_price(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(original_price=None), vendor_id="s", vendor_name="S")
        return await manager.get_surplus_item(item_id)

    item = asyncio.run(scenario())
    assert item["original_price"] == 20
    assert item["discount_percentage"] == 0


def test_reservations_decrement_until_sold(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(), vendor_id="seller", vendor_name="S")
        first = await manager.reserve(item_id, "buyer-1", "Amit", 4)
        after_first = await manager.get_surplus_item(item_id)
        await manager.reserve(item_id, "buyer-2", "Priya", 6)
        after_second = await manager.get_surplus_item(item_id)
        with pytest.raises(InsufficientQuantityError):
            await manager.reserve(item_id, "buyer-3", "Ravi", 1)
        return first, after_first, after_second, await manager.get_surplus_item(item_id)

    first, after_first, after_second, final = asyncio.run(scenario())
    assert first["buyer_id"] == "buyer-1"
    assert first["quantity"] == 4
    assert isinstance(first["reserved_at"], datetime)
    assert first["expires_at"] > first["reserved_at"]

    assert after_first["remaining_quantity"] == 6
    assert after_first["status"] == "partially_sold"
    assert after_second["remaining_quantity"] == 0
    assert after_second["status"] == "sold"
    assert len(final["reservations"]) == 2
    assert final["interested_buyers"] == ["buyer-1", "buyer-2"]
    assert final["original_quantity"] == 10


def test_reserve_validates_quantity(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(max_quantity=5, min_quantity=2), vendor_id="seller", vendor_name="S")
        with pytest.raises(ValidationError):
            await manager.reserve(item_id, "buyer", "B", 0)
        with pytest.raises(ValidationError):
            await manager.reserve(item_id, "buyer", "B", -1)
        with pytest.raises(ValidationError):
            await manager.reserve(item_id, "buyer", "B", 6)
        with pytest.raises(ValidationError):
            await manager.reserve(item_id, "buyer", "B", 1)
        with pytest.raises(ValidationError):
            await manager.reserve(item_id, "seller", "S", 2)
        return await manager.get_surplus_item(item_id)

    item = asyncio.run(scenario())
    assert item["remaining_quantity"] == 10
    assert item["reservations"] == []


def test_create_rejects_max_quantity_above_listed(store):
    with pytest.raises(ValidationError):
        asyncio.run(SurplusManager(store).create_surplus_item(make_surplus(max_quantity=11), vendor_id="s", vendor_name="S"))


def test_create_rejects_min_quantity_above_listed(store):
    with pytest.raises(ValidationError):
        asyncio.run(SurplusManager(store).create_surplus_item(make_surplus(min_quantity=20), vendor_id="s", vendor_name="S"))


def test_create_rejects_price_above_original_price(store):
    with pytest.raises(ValidationError):
        asyncio.run(SurplusManager(store).create_surplus_item(make_surplus(price=30, original_price=25), vendor_id="s", vendor_name="S"))


def test_fractional_listing_sells_out(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(quantity=0.3, min_quantity=0.1), vendor_id="seller", vendor_name="S")
        for buyer in ("buyer-1", "buyer-2", "buyer-3"):
            await manager.reserve(item_id, buyer, buyer, 0.1)
        return await manager.get_surplus_item(item_id)

    item = asyncio.run(scenario())
    assert item["remaining_quantity"] == 0
    assert item["status"] == "sold"
    assert len(item["reservations"]) == 3


def test_reserve_missing_item(store):
    with pytest.raises(NotFoundError):
        asyncio.run(SurplusManager(store).reserve("missing", "buyer", "B", 1))


def test_expired_and_withdrawn_items_cannot_be_reserved(store):
    manager = SurplusManager(store)

    async def scenario():
        stale = await manager.create_surplus_item(make_surplus(expiry_date=past()), vendor_id="seller", vendor_name="S")
        withdrawn = await manager.create_surplus_item(make_surplus(), vendor_id="seller", vendor_name="S")
        await manager.withdraw_surplus_item(withdrawn, vendor_id="seller")

        with pytest.raises(InvalidTransitionError):
            await manager.reserve(stale, "buyer", "B", 1)
        with pytest.raises(InvalidTransitionError):
            await manager.reserve(withdrawn, "buyer", "B", 1)
        return await manager.get_surplus_item(stale), await manager.get_surplus_item(withdrawn)

    stale, withdrawn = asyncio.run(scenario())
    assert stale["status"] == "expired"
    assert withdrawn["status"] == "withdrawn"


def test_concurrent_reservations_never_oversell(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(), vendor_id="seller", vendor_name="S")
        results = await asyncio.gather(
            *(manager.reserve(item_id, f"buyer-{n}", f"Buyer {n}", 2) for n in range(8)),
            return_exceptions=True,
        )
        return results, await manager.get_surplus_item(item_id)

    results, item = asyncio.run(scenario())
    reserved = [r for r in results if isinstance(r, dict)]
    refused = [r for r in results if isinstance(r, InsufficientQuantityError)]
    assert len(reserved) == 5
    assert len(refused) == 3
    assert item["remaining_quantity"] == 0
    assert item["status"] == "sold"
    assert sum(r["quantity"] for r in item["reservations"]) == 10


def test_withdraw_rules(store):
    manager = SurplusManager(store)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(), vendor_id="seller", vendor_name="S")
        with pytest.raises(PermissionDeniedError):
            await manager.withdraw_surplus_item(item_id, vendor_id="intruder")

        sold_id = await manager.create_surplus_item(make_surplus(quantity=2, max_quantity=2), vendor_id="seller", vendor_name="S")
        await manager.reserve(sold_id, "buyer", "B", 2)
        with pytest.raises(InvalidTransitionError):
            await manager.withdraw_surplus_item(sold_id, vendor_id="seller")

        await manager.withdraw_surplus_item(item_id, vendor_id="admin", as_admin=True)
        return await manager.get_surplus_item(item_id)

    assert asyncio.run(scenario())["status"] == "withdrawn"


def test_list_filters_use_effective_status(store):
    manager = SurplusManager(store)

    async def scenario():
        fresh = await manager.create_surplus_item(make_surplus(), vendor_id="a", vendor_name="A")
        stale = await manager.create_surplus_item(make_surplus(expiry_date=past(), location="Saket, Delhi"), vendor_id="b", vendor_name="B")
        await manager.create_surplus_item(make_surplus(category="oil", price=90, original_price=None, location="Andheri, Mumbai"), vendor_id="a", vendor_name="A")

        available = await manager.list_surplus_items(SurplusFilters(status="available"))
        expired = await manager.list_surplus_items(SurplusFilters(status="expired"))
        everything = await manager.list_surplus_items(SurplusFilters())
        in_delhi = await manager.list_surplus_items(SurplusFilters(location="delhi"))
        cheap = await manager.list_surplus_items(SurplusFilters(max_price=50))
        by_vendor = await manager.list_surplus_items(SurplusFilters(vendor_id="a", category="oil"))
        return fresh, stale, available, expired, everything, in_delhi, cheap, by_vendor

    fresh, stale, available, expired, everything, in_delhi, cheap, by_vendor = asyncio.run(scenario())
    assert fresh in [i["id"] for i in available.documents]
    assert stale not in [i["id"] for i in available.documents]
    assert available.total == 2
    assert [i["id"] for i in expired.documents] == [stale]
    assert expired.documents[0]["status"] == "expired"
    assert everything.total == 3
    assert {i["id"]: i["status"] for i in everything.documents}[stale] == "expired"
    assert in_delhi.total == 2
    assert cheap.total == 2
    assert [i["category"] for i in by_vendor.documents] == ["oil"]


def test_expire_sweep_persists_status(store):
    manager = SurplusManager(store)

    async def scenario():
        stale = await manager.create_surplus_item(make_surplus(expiry_date=past()), vendor_id="a", vendor_name="A")
        fresh = await manager.create_surplus_item(make_surplus(), vendor_id="a", vendor_name="A")
        first_run = await manager.expire_surplus_items()
        second_run = await manager.expire_surplus_items()
        return first_run, second_run, await store.get(SURPLUS_ITEMS, stale), await store.get(SURPLUS_ITEMS, fresh)

    first_run, second_run, stale, fresh = asyncio.run(scenario())
    assert first_run == 1
    assert second_run == 0
    assert stale["status"] == "expired"
    assert fresh["status"] == "available"


def test_reservation_notifies_seller(store, notifications):
    manager = SurplusManager(store, notifications=notifications)

    async def scenario():
        item_id = await manager.create_surplus_item(make_surplus(), vendor_id="seller", vendor_name="S")
        await manager.reserve(item_id, "buyer", "Amit", 3)
        return await notifications.list_for_user("seller")

    inbox = asyncio.run(scenario())
    assert inbox.unread_count == 1
    assert inbox.notifications[0]["type"] == "surplus"
    assert inbox.notifications[0]["message"] == "Amit reserved 3 kg of Tomatoes"
