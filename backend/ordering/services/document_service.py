# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import run_with_retry


SALE_ORDER = "SALE_ORDER"
PURCHASE_ORDER = "PURCHASE_ORDER"
PURCHASE_LEDGER = "PURCHASE_LEDGER"

PREFIXES = {
    SALE_ORDER: "SO",
    PURCHASE_ORDER: "PO",
    PURCHASE_LEDGER: "PL",
}


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def format_document_number(prefix: str, on_date: date, number: int, pad: int) -> str:
    """PREFIX-YYMMDD-NNN; wider numbers are allowed to overflow the padding."""
    return f"{prefix}-{on_date:%y%m%d}-{number:0{pad}d}"


def next_document_number(
    *,
    document_type: str,
    on_date: date,
    prefix: str | None = None,
    pad: int | None = None,
) -> str:
    """
    Atomically allocate the next document number for a type and day.

    The increment is a single UPDATE on the (document_type, sequence_date) row,
    so concurrent allocations serialize on that row. The first allocation of a
    day inserts the row; losing that insert race falls back to the UPDATE.

    Runs inside the caller's transaction (flush, no commit).
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if on_date is None:
        raise DocumentSequenceError("on_date is required")

    prefix = prefix or PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"No prefix configured for {document_type}")
    if pad is None:
        pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 3)

    def _bump() -> int | None:
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.sequence_date == on_date,
            )
            .values(next_number=DocumentSequence.next_number + 1)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            return None
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, sequence_date=on_date)
            .scalar()
        )
        return current - 1

    def _op() -> str:
        next_num = _bump()
        if next_num is None:
            seq = DocumentSequence(document_type=document_type, sequence_date=on_date, next_number=2)
            try:
                with db.session.begin_nested():
                    db.session.add(seq)
                next_num = 1
            except IntegrityError:
                next_num = _bump()
                if next_num is None:
                    raise
        return format_document_number(prefix, on_date, next_num, pad)

    return run_with_retry(_op)
