"""
Process-local document store for demo mode and tests. Never used in production.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import asyncio
import copy
import itertools
import logging

from store.base import (
    DEFAULT_TIMEOUT_SECONDS,
    BatchOperation,
    DocumentStore,
    Filter,
    QueryResult,
    as_datetime,
    resolve_server_timestamps,
)
from utils.errors import ConflictError, NotFoundError
from utils.ids import generate_id

logger = logging.getLogger(__name__)


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return as_datetime(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return as_datetime(value)
    return value


def matches(document: Dict[str, Any], condition: Filter) -> bool:
    value = document.get(condition.field)
    op = condition.op

    if op == "==":
        return value == condition.value
    if op == "!=":
        return value != condition.value
    if op == "in":
        return value in condition.value
    if op == "array_contains":
        return isinstance(value, list) and condition.value in value
    if op == "icontains":
        return value is not None and str(condition.value).lower() in str(value).lower()

    if value is None:
        return False
    left, right = value, condition.value
    if isinstance(right, datetime):
        left, right = _comparable(left), _comparable(right)
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._sequence = itertools.count()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _snapshot(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        document = copy.deepcopy(entry["data"])
        document["id"] = entry["id"]
        document["_version"] = entry["version"]
        return document

    async def _get(self, collection, doc_id):
        # every call yields once so concurrent callers interleave like real I/O
        await asyncio.sleep(0)
        entry = self._collections[collection].get(doc_id)
        return self._snapshot(entry) if entry else None

    async def _query(self, collection, filters, order_by, descending, limit, offset):
        await asyncio.sleep(0)
        entries = [
            entry for entry in self._collections[collection].values()
            if all(matches(entry["data"], condition) for condition in filters)
        ]

        def sort_key(entry):
            value = entry["data"].get(order_by)
            if isinstance(value, datetime):
                value = as_datetime(value)
            return (value is not None, value if value is not None else 0, entry["sequence"])

        entries.sort(key=sort_key, reverse=descending)
        total = len(entries)
        window = entries[offset:offset + limit] if limit is not None else entries[offset:]
        documents = [self._snapshot(entry) for entry in window]
        return QueryResult(documents=documents, total=total, has_more=offset + len(documents) < total)

    def _apply_create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str], now: datetime) -> str:
        doc_id = doc_id or generate_id()
        if doc_id in self._collections[collection]:
            raise ConflictError(f"Document {collection}/{doc_id} already exists")
        self._collections[collection][doc_id] = {
            "id": doc_id,
            "data": copy.deepcopy(resolve_server_timestamps(data, now)),
            "version": 1,
            "sequence": next(self._sequence),
        }
        return doc_id

    def _check_update(self, collection: str, doc_id: str, expected_version: Optional[int]) -> Dict[str, Any]:
        entry = self._collections[collection].get(doc_id)
        if entry is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        if expected_version is not None and entry["version"] != expected_version:
            raise ConflictError(
                f"Document {collection}/{doc_id} changed: expected version {expected_version}, found {entry['version']}"
            )
        return entry

    def _apply_update(self, entry: Dict[str, Any], data: Dict[str, Any], now: datetime) -> None:
        entry["data"].update(copy.deepcopy(resolve_server_timestamps(data, now)))
        entry["version"] += 1

    async def _create(self, collection, data, doc_id):
        await asyncio.sleep(0)
        return self._apply_create(collection, data, doc_id, self._now())

    async def _update(self, collection, doc_id, data, expected_version):
        await asyncio.sleep(0)
        entry = self._check_update(collection, doc_id, expected_version)
        self._apply_update(entry, data, self._now())

    async def _atomic_batch(self, operations: List[BatchOperation]):
        await asyncio.sleep(0)
        now = self._now()

        # validate everything before touching state, nothing awaits in between
        for operation in operations:
            if operation.action == "update":
                self._check_update(operation.collection, operation.doc_id, operation.expected_version)
            elif operation.doc_id and operation.doc_id in self._collections[operation.collection]:
                raise ConflictError(f"Document {operation.collection}/{operation.doc_id} already exists")

        for operation in operations:
            if operation.action == "create":
                self._apply_create(operation.collection, operation.data, operation.doc_id, now)
            else:
                entry = self._collections[operation.collection][operation.doc_id]
                self._apply_update(entry, operation.data, now)

        logger.debug(f"Applied batch of {len(operations)} operations")
