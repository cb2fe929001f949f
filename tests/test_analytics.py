import asyncio

from conftest import make_group, make_order, make_surplus
from routers.analytics.helpers import ANALYTICS_EVENTS, DashboardAnalytics, order_savings
from routers.groups.helpers import GroupManager
from routers.orders.helpers import OrderManager
from routers.orders.schemas import StatusUpdateOptions
from routers.surplus.helpers import SurplusManager
from store.memory import InMemoryDocumentStore


def test_order_savings():
    assert order_savings({"total_amount": 250, "quoted_amount": 240, "final_amount": None}) == 10
    assert order_savings({"total_amount": 250, "quoted_amount": 240, "final_amount": 230}) == 20
    assert order_savings({"total_amount": 250, "quoted_amount": 260, "final_amount": None}) == 0
    assert order_savings({"total_amount": 250, "quoted_amount": None, "final_amount": None}) == 0


async def seed(store):
    groups = GroupManager(store)
    orders = OrderManager(store)
    surplus = SurplusManager(store)

    group_id = await groups.create_group(make_group(), owner_id="owner", owner_name="Owner")
    await groups.join_group(group_id, "vendor-1", "Raj")

    delivered = await orders.create_order(make_order(group_id=group_id), vendor_id="vendor-1", vendor_name="Raj")
    await orders.update_order_status(
        delivered, "quoted", actor_id="supplier-1", actor_name="Sharma", actor_role="supplier",
        options=StatusUpdateOptions(quoted_amount=240),
    )
    await orders.update_order_status(
        delivered, "delivered", actor_id="supplier-1", actor_name="Sharma", actor_role="supplier",
    )
    await orders.create_order(make_order(group_id=group_id), vendor_id="vendor-1", vendor_name="Raj")

    item_id = await surplus.create_surplus_item(make_surplus(), vendor_id="vendor-1", vendor_name="Raj")
    await surplus.reserve(item_id, "vendor-2", "Amit", 4)


def test_vendor_dashboard():
    store = InMemoryDocumentStore()
    analytics = DashboardAnalytics(store)

    async def scenario():
        await seed(store)
        return await analytics.get_dashboard("vendor-1", "vendor", "month")

    dashboard = asyncio.run(scenario())
    metrics = dashboard["metrics"]
    assert dashboard["role"] == "vendor"
    assert metrics["orders_placed"] == 2
    assert metrics["order_value"] == 500
    assert metrics["average_order_value"] == 250
    assert metrics["savings_achieved"] == 10
    assert metrics["groups_joined"] == 1
    assert metrics["surplus_shared"] == 1
    assert metrics["surplus_earnings"] == 80
    assert metrics["status_breakdown"] == {"delivered": 1, "draft": 1}
    assert metrics["top_categories"][0]["name"] == "vegetables"


def test_supplier_dashboard():
    store = InMemoryDocumentStore()
    analytics = DashboardAnalytics(store)

    async def scenario():
        await seed(store)
        return await analytics.get_dashboard("supplier-1", "supplier", "week")

    metrics = asyncio.run(scenario())["metrics"]
    assert metrics["orders_received"] == 1
    assert metrics["orders_completed"] == 1
    assert metrics["revenue"] == 240
    assert metrics["completion_rate"] == 100.0
    assert metrics["average_order_value"] == 240
    assert metrics["recent_orders"][0]["amount"] == 240


def test_admin_dashboard_counts_every_collection():
    store = InMemoryDocumentStore()
    analytics = DashboardAnalytics(store)

    async def scenario():
        await seed(store)
        return await analytics.get_dashboard("admin-1", "admin", "year")

    dashboard = asyncio.run(scenario())
    metrics = dashboard["metrics"]
    assert dashboard["user_id"] is None
    assert metrics["total_groups"] == 1
    assert metrics["total_orders"] == 2
    assert metrics["total_surplus_items"] == 1
    assert metrics["status_breakdown"] == {"delivered": 1, "draft": 1}
    assert metrics["transaction_value"] == 240


def test_empty_dashboard_has_no_division_errors():
    analytics = DashboardAnalytics(InMemoryDocumentStore())
    metrics = asyncio.run(analytics.get_dashboard("supplier-9", "supplier"))["metrics"]
    assert metrics["completion_rate"] == 0
    assert metrics["average_order_value"] == 0


def test_record_event_is_best_effort():
    class ReadOnlyStore(InMemoryDocumentStore):
        async def _create(self, collection, data, doc_id):
            raise RuntimeError("read only replica")

    working = InMemoryDocumentStore()
    assert asyncio.run(DashboardAnalytics(working).record_event("u1", "vendor", "app_open", {"screen": "home"}))
    assert asyncio.run(working.query(ANALYTICS_EVENTS)).total == 1
    assert asyncio.run(DashboardAnalytics(ReadOnlyStore()).record_event("u1", "vendor", "app_open")) is False
