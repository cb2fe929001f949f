"""
Document store backed by the Postgres ``documents`` table (JSONB bodies)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select, func, cast, DateTime
from sqlalchemy.exc import IntegrityError

from models import DocumentRecord
from store.base import (
    DEFAULT_TIMEOUT_SECONDS,
    BatchOperation,
    DocumentStore,
    Filter,
    QueryResult,
    resolve_server_timestamps,
)
from utils.errors import ConflictError, NotFoundError
from utils.ids import generate_id

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def escape_like(value: Any) -> str:
    """Escape LIKE wildcards so user text matches literally"""
    text = str(value)
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return text


class PostgresDocumentStore(DocumentStore):
    def __init__(self, session_factory, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self.session_factory = session_factory

    @staticmethod
    def _to_document(record: DocumentRecord) -> Dict[str, Any]:
        document = dict(record.data or {})
        document["id"] = record.id
        document["_version"] = record.version
        return document

    @staticmethod
    async def _clock(session) -> datetime:
        result = await session.execute(select(func.clock_timestamp()))
        return result.scalar_one()

    @staticmethod
    def _condition(condition: Filter):
        element = DocumentRecord.data[condition.field]
        value = condition.value
        op = condition.op

        if op == "array_contains":
            return DocumentRecord.data.contains({condition.field: [jsonable_encoder(value)]})
        if op == "icontains":
            return element.astext.ilike(f"%{escape_like(value)}%", escape=LIKE_ESCAPE)
        if op == "in":
            return element.astext.in_([str(item) for item in value])

        if value is None:
            if op == "==":
                return element.astext.is_(None)
            if op == "!=":
                return element.astext.is_not(None)
            raise ValueError(f"Operator {op} does not accept None")

        if isinstance(value, bool):
            left = element.as_boolean()
        elif isinstance(value, (int, float)):
            left = element.as_float()
        elif isinstance(value, datetime):
            left = cast(element.astext, DateTime(timezone=True))
        else:
            left = element.astext
            value = str(value)

        if op == "==":
            return left == value
        if op == "!=":
            return left.is_distinct_from(value)
        if op == "<":
            return left < value
        if op == "<=":
            return left <= value
        if op == ">":
            return left > value
        return left >= value

    @staticmethod
    def _order_column(order_by: str):
        if order_by in ("created_at", "updated_at"):
            return getattr(DocumentRecord, order_by)
        return DocumentRecord.data[order_by]

    async def _get(self, collection, doc_id):
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.id == doc_id,
                )
            )
            record = result.scalar_one_or_none()
            return self._to_document(record) if record else None

    async def _query(self, collection, filters, order_by, descending, limit, offset):
        conditions = [DocumentRecord.collection == collection]
        conditions.extend(self._condition(condition) for condition in filters)

        order_column = self._order_column(order_by)
        ordering = [order_column.desc(), DocumentRecord.id.desc()] if descending else [order_column.asc(), DocumentRecord.id.asc()]

        async with self.session_factory() as session:
            count_result = await session.execute(
                select(func.count()).select_from(DocumentRecord).where(*conditions)
            )
            total = count_result.scalar() or 0

            query = select(DocumentRecord).where(*conditions).order_by(*ordering).offset(offset)
            if limit is not None:
                query = query.limit(limit)

            result = await session.execute(query)
            documents = [self._to_document(record) for record in result.scalars().all()]

        return QueryResult(documents=documents, total=total, has_more=offset + len(documents) < total)

    async def _apply_create(self, session, collection: str, data: Dict[str, Any], doc_id: Optional[str], now: datetime) -> str:
        doc_id = doc_id or generate_id()
        existing = await session.execute(
            select(DocumentRecord.id).where(
                DocumentRecord.collection == collection,
                DocumentRecord.id == doc_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"Document {collection}/{doc_id} already exists")

        session.add(DocumentRecord(
            collection=collection,
            id=doc_id,
            data=jsonable_encoder(resolve_server_timestamps(data, now)),
            version=1,
            created_at=now,
            updated_at=now,
        ))
        return doc_id

    async def _apply_update(self, session, collection: str, doc_id: str, data: Dict[str, Any], expected_version: Optional[int], now: datetime) -> None:
        result = await session.execute(
            select(DocumentRecord)
            .where(
                DocumentRecord.collection == collection,
                DocumentRecord.id == doc_id,
            )
            .with_for_update()
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        if expected_version is not None and record.version != expected_version:
            raise ConflictError(
                f"Document {collection}/{doc_id} changed: expected version {expected_version}, found {record.version}"
            )

        # JSONB columns are not mutation-tracked, assign a new dict
        record.data = {**record.data, **jsonable_encoder(resolve_server_timestamps(data, now))}
        record.version = record.version + 1
        record.updated_at = now

    async def _create(self, collection, data, doc_id):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    now = await self._clock(session)
                    return await self._apply_create(session, collection, data, doc_id, now)
        except IntegrityError:
            raise ConflictError(f"Document {collection}/{doc_id} already exists")

    async def _update(self, collection, doc_id, data, expected_version):
        async with self.session_factory() as session:
            async with session.begin():
                now = await self._clock(session)
                await self._apply_update(session, collection, doc_id, data, expected_version, now)

    async def _atomic_batch(self, operations: List[BatchOperation]):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    now = await self._clock(session)
                    for operation in operations:
                        if operation.action == "create":
                            await self._apply_create(session, operation.collection, operation.data, operation.doc_id, now)
                        else:
                            await self._apply_update(
                                session, operation.collection, operation.doc_id,
                                operation.data, operation.expected_version, now,
                            )
        except IntegrityError:
            raise ConflictError("Batch create collided with an existing document")
        logger.debug(f"Committed batch of {len(operations)} operations")

    async def close(self) -> None:
        bind = getattr(self.session_factory, "kw", {}).get("bind")
        if bind is not None:
            await bind.dispose()
