"""
Optimistic read-modify-write over a single document
"""
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import inspect
import logging

from store.base import DocumentStore
from utils.errors import ConflictError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ATTEMPTS = 10

Mutation = Callable[[Dict[str, Any]], Union[Optional[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]]


async def run_transaction(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    mutate: Mutation,
    not_found_message: Optional[str] = None,
    max_attempts: int = MAX_TRANSACTION_ATTEMPTS,
) -> Dict[str, Any]:
    """
    Read the document, let ``mutate`` validate it and return the fields to
    change, then write them only if nobody else wrote in between. On a version
    conflict the whole cycle runs again against the fresh document, so checks
    made inside ``mutate`` always hold at commit time.

    ``mutate`` raises domain errors to abort; returning None or {} skips the
    write. Returns the document as stored after the write, with server
    timestamps resolved.
    """
    for attempt in range(1, max_attempts + 1):
        document = await store.get(collection, doc_id)
        if document is None:
            raise NotFoundError(not_found_message or f"{collection} {doc_id} not found")

        changes = mutate(document)
        if inspect.isawaitable(changes):
            changes = await changes
        if not changes:
            return document

        try:
            await store.update(collection, doc_id, changes, expected_version=document["_version"])
        except ConflictError:
            logger.info(f"Write conflict on {collection}/{doc_id}, attempt {attempt}/{max_attempts}")
            continue

        stored = await store.get(collection, doc_id)
        if stored is not None:
            return stored
        # deleted right after our write
        document.update(changes)
        document["_version"] += 1
        return document

    logger.error(f"Gave up on {collection}/{doc_id} after {max_attempts} conflicting writes")
    raise PersistenceError(f"Too much contention updating {collection} {doc_id}, try again", retryable=True)
