"""Shared fixtures: every manager runs against a fresh in-memory store."""
from datetime import datetime, timedelta, timezone

import pytest

from store.memory import InMemoryDocumentStore
from routers.groups.schemas import GroupCreate
from routers.notifications.helpers import NotificationManager
from routers.orders.schemas import OrderCreate, OrderItemCreate
from routers.surplus.schemas import SurplusItemCreate


@pytest.fixture
def store():
    return InMemoryDocumentStore(timeout=2.0)


@pytest.fixture
def notifications(store):
    return NotificationManager(store, poll_interval=0.01)


def make_group(**overrides):
    data = {
        "name": "Karol Bagh Vegetables",
        "location": "Karol Bagh, Delhi",
        "category": "vegetables",
    }
    data.update(overrides)
    return GroupCreate(**data)


def make_order(**overrides):
    data = {
        "group_id": "group-1",
        "group_name": "Karol Bagh Vegetables",
        "items": [
            OrderItemCreate(name="Onions", category="vegetables", quantity=10, unit="kg", estimated_price=25)
        ],
        "delivery_location": "Karol Bagh, Delhi",
    }
    data.update(overrides)
    return OrderCreate(**data)


def make_surplus(**overrides):
    data = {
        "name": "Tomatoes",
        "category": "vegetables",
        "quantity": 10,
        "unit": "kg",
        "price": 20,
        "original_price": 25,
        "expiry_date": datetime.now(timezone.utc) + timedelta(days=2),
        "location": "Lajpat Nagar, Delhi",
    }
    data.update(overrides)
    return SurplusItemCreate(**data)
