"""
Document store capability set used by every manager.

Documents are plain dicts. Reads return the stored fields plus ``id`` and a
store-managed ``_version`` counter that update() can check against.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
import asyncio
import logging

from utils.errors import MarketplaceError, PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

FILTER_OPERATORS = {"==", "!=", "in", "array_contains", "icontains", "<", "<=", ">", ">="}


class _ServerTimestamp:
    """Placeholder replaced by the store clock when a write is applied"""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass
class QueryResult:
    documents: List[Dict[str, Any]]
    total: int
    has_more: bool


@dataclass
class BatchOperation:
    action: str  # "create" or "update"
    collection: str
    data: Dict[str, Any]
    doc_id: Optional[str] = None
    expected_version: Optional[int] = None


@dataclass
class _Operation:
    """Description of a store call, used for log lines and timeout errors"""
    name: str
    target: str

    def __str__(self):
        return f"{self.name} {self.target}"


def resolve_server_timestamps(value: Any, now: datetime) -> Any:
    """Replace every SERVER_TIMESTAMP placeholder in a document with ``now``"""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {key: resolve_server_timestamps(item, now) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_server_timestamps(item, now) for item in value]
    return value


def as_datetime(value: Any) -> Optional[datetime]:
    """Read back a timestamp that may have been stored as an ISO string"""
    if value is None or isinstance(value, datetime):
        result = value
    else:
        result = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if result is not None and result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


class DocumentStore(ABC):
    """
    Every public call is bounded by ``timeout`` seconds. Timeouts and driver
    failures surface as a retryable PersistenceError, domain errors
    (NotFoundError, ConflictError) pass through untouched.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def _guard(self, operation: _Operation, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except MarketplaceError:
            raise
        except asyncio.TimeoutError:
            logger.error(f"Persistence timeout after {self.timeout}s: {operation}")
            raise PersistenceError(f"Persistence operation timed out: {operation}", retryable=True)
        except Exception as e:
            logger.error(f"Persistence failure during {operation}: {str(e)}")
            raise PersistenceError(f"Persistence operation failed: {operation}", retryable=True) from e

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self._guard(_Operation("get", f"{collection}/{doc_id}"), self._get(collection, doc_id))

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> QueryResult:
        return await self._guard(
            _Operation("query", collection),
            self._query(collection, list(filters), order_by, descending, limit, offset),
        )

    async def create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        return await self._guard(_Operation("create", collection), self._create(collection, data, doc_id))

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        """Shallow merge of ``data`` into the stored document"""
        await self._guard(
            _Operation("update", f"{collection}/{doc_id}"),
            self._update(collection, doc_id, data, expected_version),
        )

    async def atomic_batch(self, operations: Sequence[BatchOperation]) -> None:
        """Apply every operation or none of them"""
        for operation in operations:
            if operation.action not in ("create", "update"):
                raise ValueError(f"Unsupported batch action: {operation.action}")
            if operation.action == "update" and not operation.doc_id:
                raise ValueError("Batch update requires a document id")
        await self._guard(_Operation("atomic_batch", f"{len(operations)} operations"), self._atomic_batch(list(operations)))

    async def close(self) -> None:
        return None

    @abstractmethod
    async def _get(self, collection, doc_id): ...

    @abstractmethod
    async def _query(self, collection, filters, order_by, descending, limit, offset): ...

    @abstractmethod
    async def _create(self, collection, data, doc_id): ...

    @abstractmethod
    async def _update(self, collection, doc_id, data, expected_version): ...

    @abstractmethod
    async def _atomic_batch(self, operations): ...
