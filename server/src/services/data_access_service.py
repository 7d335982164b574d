"""
Data access layer over the document store.

Every operation is generic over a collection name and returns plain Python
data: multi-document results are drained from the driver cursor into a list
before the caller sees them, single-document operations return the document
or ``None``, and writes return a ``WriteAcknowledgement``.

Store errors are classified into three kinds:
- not found: an empty result, never raised
- conflict: a unique index violation, reported as an empty result / a
  conflicted acknowledgement because callers only need "no effect"
- fault: anything else; logged and raised as ``StorageFaultError`` so the
  caller's success path never runs. Nothing is retried.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, DuplicateKeyError, OperationFailure, PyMongoError

from server.src.core.constants import Collection
from server.src.core.errors import StorageFaultError
from server.src.core.logging_config import get_logger
from server.src.core.metrics import metrics
from server.src.schemas.store_results import StoreErrorKind, WriteAcknowledgement

logger = get_logger("skirmish.store")

CollectionName = Union[str, Collection]
SortSpec = Union[None, str, Sequence[Any], Mapping[str, Any]]

DEFAULT_SORT_FIELD = "_id"
DUPLICATE_KEY_CODE = 11000

# (collection, keys, create_index options)
_INDEXES = [
    (Collection.USERS, "username", {"unique": True, "name": "unique_username"}),
    (Collection.USERS, "sessionKey", {"name": "session_key"}),
    (
        Collection.CHARACTERS,
        [("owner", ASCENDING), ("template.name", ASCENDING)],
        {"unique": True, "name": "unique_owner_character_name"},
    ),
]

_DIRECTIONS: Dict[Any, int] = {
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "1": ASCENDING,
    1: ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
    "-1": DESCENDING,
    -1: DESCENDING,
}


def normalize_sort(sort: SortSpec) -> List[List[Any]]:
    """
    Bring a sort specification into ``[[field, direction], ...]`` form.

    ``None`` sorts ascending by ``_id``, a bare field name sorts ascending on
    that field, and a single ``[field, direction]`` pair is nested.
    """
    if not sort:
        return [[DEFAULT_SORT_FIELD, "asc"]]

    if isinstance(sort, str):
        return [[sort, "asc"]]

    if isinstance(sort, Mapping):
        return [[field, direction] for field, direction in sort.items()]

    if isinstance(sort[0], str):
        pair = list(sort)
        if len(pair) == 1:
            pair.append("asc")
        return [pair]

    normalized = []
    for entry in sort:
        if isinstance(entry, str):
            normalized.append([entry, "asc"])
        else:
            normalized.append(list(entry))
    return normalized


def to_driver_sort(normalized: List[List[Any]]) -> List[Tuple[str, int]]:
    """Convert a normalized sort into the driver's ``[(field, 1|-1)]`` form."""
    driver_sort = []
    for field, direction in normalized:
        key = direction.lower() if isinstance(direction, str) else direction
        if key not in _DIRECTIONS:
            raise ValueError(f"Unknown sort direction {direction!r} for field '{field}'")
        driver_sort.append((field, _DIRECTIONS[key]))
    return driver_sort


def classify_store_error(error: BaseException) -> StoreErrorKind:
    """Map a driver error onto the store error taxonomy."""
    if isinstance(error, DuplicateKeyError):
        return StoreErrorKind.CONFLICT

    if isinstance(error, BulkWriteError):
        write_errors = (error.details or {}).get("writeErrors", [])
        if write_errors and all(
            err.get("code") == DUPLICATE_KEY_CODE for err in write_errors
        ):
            return StoreErrorKind.CONFLICT
        return StoreErrorKind.FAULT

    if isinstance(error, OperationFailure):
        if error.code == DUPLICATE_KEY_CODE:
            return StoreErrorKind.CONFLICT
        if "No matching object found" in str(error):
            return StoreErrorKind.NOT_FOUND

    return StoreErrorKind.FAULT


async def drain_cursor(cursor) -> List[Dict[str, Any]]:
    """Read every document from an async cursor, preserving cursor order."""
    documents = []
    async for document in cursor:
        documents.append(document)
    return documents


def _collection_name(collection: CollectionName) -> str:
    return collection.value if isinstance(collection, Enum) else collection


def _is_operator_update(update: Mapping[str, Any]) -> bool:
    return any(key.startswith("$") for key in update)


class DataAccessService:
    """Find / update / insert / remove against named collections."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self._database = database
        self._background_tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Reads
    # =========================================================================

    async def find(
        self,
        collection: CollectionName,
        query: Optional[Mapping[str, Any]],
        sort: SortSpec = None,
    ) -> List[Dict[str, Any]]:
        """Return every matching document, ordered by ``sort`` (default ``_id``)."""
        name = _collection_name(collection)
        driver_sort = to_driver_sort(normalize_sort(sort))
        start = time.perf_counter()
        try:
            cursor = self._database[name].find(dict(query or {}), sort=driver_sort)
            documents = await drain_cursor(cursor)
        except PyMongoError as e:
            return self._handle_error("find", name, e, start, empty=[])

        self._track("find", name, start)
        logger.debug(
            "Find completed",
            extra={"collection": name, "query": query, "count": len(documents)},
        )
        return documents

    # =========================================================================
    # Writes
    # =========================================================================

    async def find_and_update(
        self,
        collection: CollectionName,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
        sort: SortSpec = None,
        upsert: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically update the first document matching ``query`` and return
        it as it is after the update.

        Returns ``None`` when nothing matched and ``upsert`` is false, or when
        the upsert collided with a unique index.
        """
        name = _collection_name(collection)
        driver_sort = to_driver_sort(normalize_sort(sort))
        start = time.perf_counter()
        try:
            document = await self._database[name].find_one_and_update(
                dict(query),
                dict(update),
                sort=driver_sort,
                upsert=upsert,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            return self._handle_error("find_and_update", name, e, start, empty=None)

        self._track("find_and_update", name, start)
        return document

    async def insert(
        self,
        collection: CollectionName,
        documents: Union[Dict[str, Any], List[Dict[str, Any]]],
    ) -> WriteAcknowledgement:
        """Insert one document or a list of documents."""
        name = _collection_name(collection)
        start = time.perf_counter()
        try:
            if isinstance(documents, list):
                result = await self._database[name].insert_many(documents)
                inserted_ids = list(result.inserted_ids)
            else:
                result = await self._database[name].insert_one(documents)
                inserted_ids = [result.inserted_id]
        except PyMongoError as e:
            return self._handle_error(
                "insert", name, e, start, empty=WriteAcknowledgement.conflicted()
            )

        self._track("insert", name, start)
        return WriteAcknowledgement(inserted_ids=inserted_ids)

    async def update(
        self,
        collection: CollectionName,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
    ) -> WriteAcknowledgement:
        """
        Update the first document matching ``query``.

        An update without ``$`` operators replaces the whole document.
        """
        name = _collection_name(collection)
        start = time.perf_counter()
        try:
            target = self._database[name]
            if _is_operator_update(update):
                result = await target.update_one(dict(query), dict(update), upsert=upsert)
            else:
                result = await target.replace_one(dict(query), dict(update), upsert=upsert)
        except PyMongoError as e:
            return self._handle_error(
                "update", name, e, start, empty=WriteAcknowledgement.conflicted()
            )

        self._track("update", name, start)
        return WriteAcknowledgement(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=result.upserted_id,
        )

    def update_in_background(
        self,
        collection: CollectionName,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> asyncio.Task:
        """
        Fire-and-forget update. Faults are logged by ``update``; nobody
        waits for the acknowledgement.
        """
        task = asyncio.create_task(self.update(collection, query, update))
        self._background_tasks.add(task)
        task.add_done_callback(self._finish_background_task)
        return task

    async def remove(
        self, collection: CollectionName, query: Mapping[str, Any]
    ) -> WriteAcknowledgement:
        """Delete every document matching ``query``."""
        name = _collection_name(collection)
        start = time.perf_counter()
        try:
            result = await self._database[name].delete_many(dict(query))
        except PyMongoError as e:
            return self._handle_error(
                "remove", name, e, start, empty=WriteAcknowledgement.conflicted()
            )

        self._track("remove", name, start)
        return WriteAcknowledgement(deleted_count=result.deleted_count)

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def ensure_indexes(self) -> None:
        """
        Create the indexes the server relies on for uniqueness and lookups.

        Each index is built on its own. A unique index that existing
        duplicates prevent from building is logged as an error and the
        remaining indexes are still created; a fault raises.
        """
        failed = []
        for collection, keys, options in _INDEXES:
            start = time.perf_counter()
            try:
                await self._database[collection.value].create_index(keys, **options)
            except PyMongoError as e:
                if classify_store_error(e) is not StoreErrorKind.CONFLICT:
                    self._handle_error("ensure_indexes", collection.value, e, start, empty=None)
                    continue
                self._track("ensure_indexes", collection.value, start, StoreErrorKind.CONFLICT.value)
                metrics.track_error("store", "index_conflict")
                logger.error(
                    "Index build blocked by duplicate documents",
                    extra={
                        "collection": collection.value,
                        "index": options["name"],
                        "error": str(e),
                    },
                )
                failed.append(options["name"])
                continue
            self._track("ensure_indexes", collection.value, start)

        if failed:
            logger.warning("Document store indexes incomplete", extra={"missing": failed})
        else:
            logger.info("Document store indexes ensured")

    async def wait_for_background_tasks(self) -> None:
        """Wait for outstanding fire-and-forget writes (used at shutdown)."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    # =========================================================================
    # Internals
    # =========================================================================

    def _track(self, operation: str, collection: str, start: float, result: str = "ok"):
        metrics.track_store_operation(
            operation, collection, time.perf_counter() - start, result
        )

    def _handle_error(
        self, operation: str, collection: str, error: PyMongoError, start: float, empty: Any
    ) -> Any:
        kind = classify_store_error(error)
        self._track(operation, collection, start, kind.value)

        if kind is StoreErrorKind.FAULT:
            logger.error(
                "Document store fault",
                extra={
                    "operation": operation,
                    "collection": collection,
                    "error": str(error),
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
            metrics.track_error("store", type(error).__name__)
            raise StorageFaultError(operation, collection, error) from error

        logger.debug(
            "Store operation had no effect",
            extra={"operation": operation, "collection": collection, "kind": kind.value},
        )
        return empty

    def _finish_background_task(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, StorageFaultError):
            logger.error(
                "Background update failed",
                extra={"error": str(error), "error_type": type(error).__name__},
                exc_info=error,
            )
