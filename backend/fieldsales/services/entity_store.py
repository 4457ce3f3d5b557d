# Overview: Document collections with a local durable cache in front of a remote document store.

from __future__ import annotations

import copy
import operator
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CacheEntry, RemoteDocument, SyncStatus
from ..time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry


"""
Entity store invariants

- Every write is committed to the local cache before the remote store is touched.
- A remote failure never reverts the local write; the cache row stays PENDING
  and the reconciliation pass retries it.
- Sync state lives on the cache row, not in the document.
- Append-only collections reject update and delete.
"""

COLLECTIONS = frozenset({
    "orders",
    "bills",
    "outstanding_payments",
    "ledger_transactions",
    "load_forms",
    "users",
    "activity_log",
})

APPEND_ONLY_COLLECTIONS = frozenset({"ledger_transactions", "activity_log"})


class SyncFailure(Exception):
    """Remote store unreachable or write denied. Never surfaced to end users."""

    def __init__(self, message: str, *, collection: str | None = None, document_id: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.document_id = document_id


class EntityNotFound(LookupError):
    def __init__(self, collection: str, document_id: str):
        super().__init__(f"{collection} document {document_id} not found")
        self.collection = collection
        self.document_id = document_id


class ImmutableDocumentError(ValueError):
    """Update/delete attempted on an append-only collection."""


class StoreWriteError(RuntimeError):
    """The local cache write itself failed; nothing was persisted."""


def cache_key(collection: str, document_id: str) -> str:
    return f"{collection}/{document_id}"


# =============================================================================
# Query predicates
# =============================================================================

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

QUERY_OPERATORS = frozenset(_OPERATORS) | {"in"}


def _comparable(left: Any, right: Any) -> tuple[Any, Any]:
    # Money is stored as decimal strings; compare numerically against numbers.
    if isinstance(right, (int, float, Decimal)) and not isinstance(right, bool):
        try:
            return Decimal(str(left)), Decimal(str(right))
        except (InvalidOperation, ValueError):
            return left, right
    return left, right


def matches(document: dict, field: str, op: str, value: Any) -> bool:
    if op not in QUERY_OPERATORS:
        raise ValueError(f"Unsupported query operator: {op}")
    if field not in document:
        return False
    current = document[field]
    if op == "in":
        return current in value
    if current is None and op not in ("==", "!="):
        return False
    left, right = _comparable(current, value)
    try:
        return _OPERATORS[op](left, right)
    except TypeError:
        return False


# =============================================================================
# Local cache (default bind)
# =============================================================================

class LocalCache:
    """
    Durable key/value mirror of every collection.

    get/set are keyed "<collection>/<id>"; set() commits before returning.
    """

    def entry(self, key: str) -> CacheEntry | None:
        return db.session.query(CacheEntry).filter_by(cache_key=key).first()

    def get(self, key: str) -> dict | None:
        row = self.entry(key)
        if row is None or row.deleted:
            return None
        return copy.deepcopy(row.data)

    def set(self, key: str, value: dict | None, *, deleted: bool = False) -> CacheEntry:
        collection, _, document_id = key.partition("/")

        def _op() -> CacheEntry:
            row = self.entry(key)
            if row is None:
                row = CacheEntry(cache_key=key, collection=collection, document_id=document_id)
                db.session.add(row)
            row.data = copy.deepcopy(value)
            row.deleted = deleted
            # A new local write is new intent: restart the retry budget.
            row.sync_status = SyncStatus.PENDING.value
            row.sync_attempts = 0
            row.last_sync_error = None
            db.session.commit()
            return row

        try:
            return run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreWriteError(f"local cache write failed for {key}: {exc}") from exc

    def remember(self, key: str, value: dict) -> None:
        """Fill the cache from a remote read (already synced). Caller commits."""
        collection, _, document_id = key.partition("/")
        db.session.add(CacheEntry(
            cache_key=key,
            collection=collection,
            document_id=document_id,
            data=copy.deepcopy(value),
            deleted=False,
            sync_status=SyncStatus.SYNCED.value,
            sync_attempts=0,
            last_synced_at=utcnow(),
        ))

    def entries(self, collection: str) -> list[CacheEntry]:
        return (
            db.session.query(CacheEntry)
            .filter_by(collection=collection)
            .order_by(CacheEntry.id.asc())
            .all()
        )

    def unsynced(self, *, include_failed: bool = False) -> list[CacheEntry]:
        statuses = [SyncStatus.PENDING.value]
        if include_failed:
            statuses.append(SyncStatus.FAILED.value)
        return (
            db.session.query(CacheEntry)
            .filter(CacheEntry.sync_status.in_(statuses))
            .order_by(CacheEntry.id.asc())
            .all()
        )

    def mark_synced(self, row: CacheEntry) -> None:
        row.sync_status = SyncStatus.SYNCED.value
        row.sync_attempts = 0
        row.last_sync_error = None
        row.last_synced_at = utcnow()
        db.session.commit()

    def mark_attempt_failed(self, row: CacheEntry, error: str, *, max_attempts: int | None) -> None:
        """Count a failed push; with max_attempts set, exhausting it marks the row FAILED."""
        row.sync_attempts = (row.sync_attempts or 0) + 1
        row.last_sync_error = error[:1000]
        if max_attempts is not None and row.sync_attempts >= max_attempts:
            row.sync_status = SyncStatus.FAILED.value
        else:
            row.sync_status = SyncStatus.PENDING.value
        db.session.commit()

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        rows = (
            db.session.query(CacheEntry.sync_status, db.func.count(CacheEntry.id))
            .group_by(CacheEntry.sync_status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts


# =============================================================================
# Remote document store ("remote" bind)
# =============================================================================

class SqlDocumentStore:
    """Remote source of truth. Every storage error surfaces as SyncFailure."""

    def _row(self, collection: str, document_id: str) -> RemoteDocument | None:
        return (
            db.session.query(RemoteDocument)
            .filter_by(collection=collection, document_id=document_id)
            .first()
        )

    def _fail(self, action: str, collection: str, document_id: str | None, exc: Exception) -> SyncFailure:
        db.session.rollback()
        return SyncFailure(
            f"remote {action} failed for {collection}/{document_id or '*'}: {exc}",
            collection=collection,
            document_id=document_id,
        )

    def get(self, collection: str, document_id: str) -> dict | None:
        try:
            row = self._row(collection, document_id)
        except SQLAlchemyError as exc:
            raise self._fail("read", collection, document_id, exc) from exc
        return copy.deepcopy(row.data) if row else None

    def put(self, collection: str, document_id: str, data: dict) -> None:
        try:
            row = self._row(collection, document_id)
            if row is None:
                row = RemoteDocument(collection=collection, document_id=document_id)
                db.session.add(row)
            row.data = copy.deepcopy(data)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail("write", collection, document_id, exc) from exc

    def delete(self, collection: str, document_id: str) -> None:
        try:
            row = self._row(collection, document_id)
            if row is not None:
                db.session.delete(row)
                db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete", collection, document_id, exc) from exc

    def query(self, collection: str, field: str, op: str, value: Any) -> list[dict]:
        try:
            rows = (
                db.session.query(RemoteDocument)
                .filter_by(collection=collection)
                .order_by(RemoteDocument.id.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("query", collection, None, exc) from exc
        return [copy.deepcopy(r.data) for r in rows if matches(r.data, field, op, value)]


# =============================================================================
# Entity store
# =============================================================================

class EntityStore:
    """
    Generic create/update/delete/get/query primitive used by every engine.

    Remote calls are made inline after the local commit; their failure is
    logged and recorded as sync state, never raised.
    """

    def __init__(
        self,
        cache: LocalCache | None = None,
        remote: SqlDocumentStore | None = None,
        *,
        max_attempts: int = 3,
        clock: Callable[[], Any] = utcnow,
    ):
        self.cache = cache or LocalCache()
        self.remote = remote or SqlDocumentStore()
        self.max_attempts = max_attempts
        self.clock = clock

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")

    def _now(self) -> str:
        return to_utc_z(self.clock())

    def _push(self, collection: str, document_id: str, data: dict | None, *, deleted: bool = False) -> None:
        key = cache_key(collection, document_id)
        try:
            if deleted:
                self.remote.delete(collection, document_id)
            else:
                self.remote.put(collection, document_id, data)
        except SyncFailure as exc:
            current_app.logger.warning(
                "Remote sync failed for %s/%s, left pending: %s", collection, document_id, exc
            )
            row = self.cache.entry(key)
            if row is not None:
                self.cache.mark_attempt_failed(row, str(exc), max_attempts=None)
            return
        row = self.cache.entry(key)
        if row is not None:
            self.cache.mark_synced(row)

    # -- writes ---------------------------------------------------------------

    def create(self, collection: str, document: dict) -> dict:
        self._check_collection(collection)
        doc = copy.deepcopy(document)
        if not doc.get("id"):
            doc["id"] = uuid.uuid4().hex
        now = self._now()
        if not doc.get("createdAt"):
            doc["createdAt"] = now
        doc["updatedAt"] = now

        self.cache.set(cache_key(collection, doc["id"]), doc)
        self._push(collection, doc["id"], doc)
        return copy.deepcopy(doc)

    def update(self, collection: str, document_id: str, fields: dict) -> dict:
        self._check_collection(collection)
        if collection in APPEND_ONLY_COLLECTIONS:
            raise ImmutableDocumentError(f"{collection} is append-only; record an offsetting entry instead")

        current = self.get(collection, document_id)
        if current is None:
            raise EntityNotFound(collection, document_id)

        merged = {**current, **copy.deepcopy(fields)}
        merged["id"] = document_id
        merged["updatedAt"] = self._now()

        self.cache.set(cache_key(collection, document_id), merged)
        self._push(collection, document_id, merged)
        return copy.deepcopy(merged)

    def delete(self, collection: str, document_id: str) -> None:
        self._check_collection(collection)
        if collection in APPEND_ONLY_COLLECTIONS:
            raise ImmutableDocumentError(f"{collection} is append-only; entries cannot be deleted")

        self.cache.set(cache_key(collection, document_id), None, deleted=True)
        self._push(collection, document_id, None, deleted=True)

    # -- reads ----------------------------------------------------------------

    def get(self, collection: str, document_id: str) -> dict | None:
        self._check_collection(collection)
        key = cache_key(collection, document_id)
        row = self.cache.entry(key)
        if row is not None:
            return None if row.deleted else copy.deepcopy(row.data)

        try:
            remote_doc = self.remote.get(collection, document_id)
        except SyncFailure as exc:
            current_app.logger.warning("Remote read failed for %s: %s", key, exc)
            return None
        if remote_doc is None:
            return None

        self.cache.remember(key, remote_doc)
        db.session.commit()
        return remote_doc

    def require(self, collection: str, document_id: str) -> dict:
        doc = self.get(collection, document_id)
        if doc is None:
            raise EntityNotFound(collection, document_id)
        return doc

    def query_where(self, collection: str, field: str, op: str, value: Any) -> list[dict]:
        """
        Remote results merged with the local cache.

        The local copy of a document wins over the remote one, local-only
        documents are included and tombstoned ones are dropped. When the
        remote store fails the cache answers alone.
        """
        self._check_collection(collection)
        if op not in QUERY_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")

        local_rows = {row.document_id: row for row in self.cache.entries(collection)}

        try:
            remote_docs = self.remote.query(collection, field, op, value)
        except SyncFailure as exc:
            current_app.logger.warning("Remote query on %s failed, using local cache: %s", collection, exc)
            remote_docs = []

        results: list[dict] = []
        seen: set[str] = set()
        filled = False
        for doc in remote_docs:
            doc_id = doc.get("id")
            row = local_rows.get(doc_id)
            if row is None:
                self.cache.remember(cache_key(collection, doc_id), doc)
                filled = True
                results.append(doc)
            elif not row.deleted and matches(row.data, field, op, value):
                results.append(copy.deepcopy(row.data))
            seen.add(doc_id)
        if filled:
            db.session.commit()

        for doc_id, row in local_rows.items():
            if doc_id in seen or row.deleted:
                continue
            if matches(row.data, field, op, value):
                results.append(copy.deepcopy(row.data))
        return results

    def all(self, collection: str) -> list[dict]:
        """Every live document in a collection (query with an always-true predicate)."""
        return self.query_where(collection, "id", "!=", None)

    # -- sync -----------------------------------------------------------------

    def sync_status(self, collection: str, document_id: str) -> SyncStatus | None:
        self._check_collection(collection)
        row = self.cache.entry(cache_key(collection, document_id))
        return SyncStatus(row.sync_status) if row else None

    def sync_summary(self) -> dict[str, int]:
        return self.cache.status_counts()

    def sync_pending(self, *, include_failed: bool = False) -> dict[str, int]:
        """
        Reconciliation pass: push PENDING rows (and FAILED rows on an explicit retry).

        Returns how many rows ended synced, still pending, or failed.
        """
        counts = {status.value: 0 for status in SyncStatus}
        rows: Iterable[CacheEntry] = self.cache.unsynced(include_failed=include_failed)
        for row in rows:
            try:
                if row.deleted:
                    self.remote.delete(row.collection, row.document_id)
                else:
                    self.remote.put(row.collection, row.document_id, row.data)
            except SyncFailure as exc:
                self.cache.mark_attempt_failed(row, str(exc), max_attempts=self.max_attempts)
                current_app.logger.warning(
                    "Sync retry for %s failed (attempt %d): %s", row.cache_key, row.sync_attempts, exc
                )
            else:
                self.cache.mark_synced(row)
            counts[row.sync_status] += 1

        current_app.logger.info(
            "Sync pass finished: %d synced, %d pending, %d failed",
            counts[SyncStatus.SYNCED.value], counts[SyncStatus.PENDING.value], counts[SyncStatus.FAILED.value],
        )
        return counts
