# records.py
"""
Record store for uploaded documents.

One row per document (see models.Document). Reads return immutable
DocumentRecord snapshots; every write is a single DB transaction. Updates that
race on the same id are serialized two ways:

- lock(doc_id): an in-process asyncio.Lock the orchestrator holds across
  find -> merge -> write -> mark_signed
- mark_signed(): compare-and-swap on `signed = false`, so a second finalize
  fails with ConflictError even without the lock
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select, update as sa_update
from sqlalchemy.exc import IntegrityError

from db import SessionLocal
from errors import ConflictError, DuplicateIdError, NotFoundError
from models import Document

log = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "source_path", "recipient_email"})


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    source_path: str
    recipient_email: str
    signed: bool = False
    signed_path: Optional[str] = None
    filename: Optional[str] = None
    created_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "file": self.source_path,
            "email": self.recipient_email,
            "signed": self.signed,
            "filename": self.filename,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "dispatchedAt": self.dispatched_at.isoformat() if self.dispatched_at else None,
        }
        if self.signed:
            out["signedFile"] = self.signed_path
            out["signedAt"] = self.signed_at.isoformat() if self.signed_at else None
        return out


_RECORD_FIELDS = tuple(f.name for f in fields(DocumentRecord))


def _snapshot(row: Document) -> DocumentRecord:
    return DocumentRecord(**{name: getattr(row, name) for name in _RECORD_FIELDS})


def _check_signed_invariant(signed: bool, signed_path: Optional[str]) -> None:
    if bool(signed) != (signed_path is not None):
        raise ValueError("signed_path must be set if and only if signed is true")


class RecordStore:
    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory
        # entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock(self, doc_id: str) -> asyncio.Lock:
        lk = self._locks.get(doc_id)
        if lk is None:
            lk = self._locks[doc_id] = asyncio.Lock()
        return lk

    # ---------------- reads ----------------

    def find(self, doc_id: str) -> DocumentRecord:
        with self._session_factory() as db:
            row = db.get(Document, doc_id)
            if row is None:
                raise NotFoundError(f"Document not found: {doc_id}")
            return _snapshot(row)

    def list(self) -> List[DocumentRecord]:
        with self._session_factory() as db:
            rows = db.execute(select(Document).order_by(desc(Document.created_at))).scalars().all()
            return [_snapshot(r) for r in rows]

    # ---------------- writes ----------------

    def create(self, record: DocumentRecord) -> DocumentRecord:
        _check_signed_invariant(record.signed, record.signed_path)
        values = {k: v for k, v in vars(record).items() if v is not None}
        with self._session_factory() as db:
            if db.get(Document, record.id) is not None:
                raise DuplicateIdError(f"Document id already exists: {record.id}")
            db.add(Document(**values))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise DuplicateIdError(f"Document id already exists: {record.id}") from e
            log.info("[db] created id=%s", record.id)
            return _snapshot(db.get(Document, record.id))

    def update(self, doc_id: str, **patch: Any) -> DocumentRecord:
        bad = IMMUTABLE_FIELDS.intersection(patch)
        if bad:
            raise ValueError(f"immutable fields cannot be updated: {sorted(bad)}")
        unknown = set(patch) - set(_RECORD_FIELDS)
        if unknown:
            raise ValueError(f"unknown fields: {sorted(unknown)}")

        with self._session_factory() as db:
            row = db.get(Document, doc_id)
            if row is None:
                raise NotFoundError(f"Document not found: {doc_id}")
            current = _snapshot(row)
            merged = replace(current, **patch)
            if current.signed and (not merged.signed or merged.signed_path != current.signed_path):
                raise ConflictError()
            _check_signed_invariant(merged.signed, merged.signed_path)
            for k, v in patch.items():
                setattr(row, k, v)
            db.commit()
            return _snapshot(db.get(Document, doc_id))

    def mark_signed(self, doc_id: str, signed_path: str) -> DocumentRecord:
        """Terminal transition: signed false -> true, exactly once."""
        stmt = (
            sa_update(Document)
            .where(Document.id == doc_id, Document.signed == False)  # noqa: E712
            .values(signed=True, signed_path=signed_path, signed_at=datetime.now())
        )
        with self._session_factory() as db:
            res = db.execute(stmt)
            db.commit()
            row = db.get(Document, doc_id)
            if row is None:
                raise NotFoundError(f"Document not found: {doc_id}")
            if res.rowcount == 0:
                raise ConflictError()
            log.info("[db] signed id=%s file=%s", doc_id, signed_path)
            return _snapshot(row)
