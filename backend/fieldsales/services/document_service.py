# Overview: Human-readable document numbers (orders, bills, load forms).

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import run_with_retry


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _allocate(document_type: str, scope: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.scope == scope,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _current() -> int:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, scope=scope)
            .scalar()
        )
        return current - 1

    if db.session.execute(stmt).rowcount:
        return _current()

    db.session.add(DocumentSequence(document_type=document_type, scope=scope, next_number=2))
    try:
        db.session.flush()
        return 1
    except IntegrityError:
        # Another writer created the row first
        db.session.rollback()
        if not db.session.execute(stmt).rowcount:
            raise
        return _current()


def next_document_number(*, document_type: str, prefix: str, scope: str, pad: int = 4) -> str:
    """
    Atomically allocate "<prefix>-<scope>-<seq>" and commit the sequence row.

    Sequences live in the local cache database; the number is consumed even
    if the document write that follows fails.
    """
    def _op() -> str:
        if not document_type:
            raise DocumentSequenceError("document_type is required")
        if not scope:
            raise DocumentSequenceError("scope is required")
        number = _allocate(document_type, scope)
        db.session.commit()
        return f"{prefix}-{scope}-{number:0{pad}d}"

    return run_with_retry(_op)


def next_order_number(at: datetime) -> str:
    return next_document_number(document_type="ORDER", prefix="ORD", scope=f"{at.year:04d}")


def next_bill_number(at: datetime) -> str:
    return next_document_number(document_type="BILL", prefix="BILL", scope=at.strftime("%Y%m%d"))


def next_load_form_number(at: datetime) -> str:
    return next_document_number(document_type="LOAD_FORM", prefix="LF", scope=at.strftime("%Y%m%d"))
