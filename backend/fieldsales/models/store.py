from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z


class SyncStatus(str, Enum):
    """
    Remote sync state of a locally cached document.

    Kept on the cache row, never inside the business document, so an
    order's own `status` field is never confused with its sync state.
    """
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"


class CacheEntry(db.Model):
    """
    Local durable cache row.

    WHY: Writes land here synchronously before any remote call, which is what
    makes the clients optimistic. A failed remote write leaves the row PENDING
    and the reconciliation pass retries it later.
    """
    __tablename__ = "cache_entries"
    __table_args__ = (
        db.UniqueConstraint("cache_key", name="uq_cache_entries_key"),
        db.Index("ix_cache_entries_collection_sync", "collection", "sync_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # "<collection>/<document id>"
    cache_key = db.Column(db.String(255), nullable=False)
    collection = db.Column(db.String(64), nullable=False, index=True)
    document_id = db.Column(db.String(64), nullable=False)

    data = db.Column(db.JSON, nullable=True)
    # Tombstone for a delete not yet pushed to the remote store
    deleted = db.Column(db.Boolean, nullable=False, default=False)

    sync_status = db.Column(db.String(16), nullable=False, default=SyncStatus.PENDING.value)
    sync_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_sync_error = db.Column(db.Text, nullable=True)
    last_synced_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "key": self.cache_key,
            "collection": self.collection,
            "document_id": self.document_id,
            "deleted": self.deleted,
            "sync_status": self.sync_status,
            "sync_attempts": self.sync_attempts,
            "last_sync_error": self.last_sync_error,
            "last_synced_at": to_utc_z(self.last_synced_at),
        }


class RemoteDocument(db.Model):
    """Document in the remote store (separate database bind)."""
    __bind_key__ = "remote"
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "document_id", name="uq_documents_collection_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(64), nullable=False, index=True)
    document_id = db.Column(db.String(64), nullable=False)
    data = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class DocumentSequence(db.Model):
    """
    Atomic document sequences (order, bill, load form numbers).

    `scope` partitions numbering, e.g. the year for orders or the day for bills.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "scope", name="uq_doc_sequences_type_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    scope = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())
