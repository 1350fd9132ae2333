# lifecycle.py
"""
Document lifecycle: annotated -> dispatched -> finalized.

create_and_dispatch
    inject fields, write the annotated PDF, persist {signed: false}, email the
    signing link. A mail failure is reported but the record is kept.
finalize
    fill values, flatten, stamp the signature, write the signed PDF, mark the
    record signed. Runs under the per-id lock; a second call gets ConflictError.
retrieve
    the signed PDF if signed, else the annotated one.
"""

from __future__ import annotations

import html
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.concurrency import run_in_threadpool

import settings
from errors import ConflictError, DuplicateIdError, NotificationError, ValidationError
from pdf_fields import inject_fields
from records import DocumentRecord, RecordStore
from signer import decode_signature, merge_signature
from storage import discard, ensure_dirs, get_dirs, get_doc_paths, read_bytes, write_once

log = logging.getLogger(__name__)

SUBJECT = "Sign your document"

ANNOTATED = "annotated"
DISPATCHED = "dispatched"
FINALIZED = "finalized"


def state_of(record: DocumentRecord) -> str:
    if record.signed:
        return FINALIZED
    if record.dispatched_at is not None:
        return DISPATCHED
    return ANNOTATED


def signing_link_html(link: str) -> str:
    href = html.escape(link, quote=True)
    return f'<p>Click to sign your PDF: <a href="{href}">Sign Document</a></p>'


@dataclass
class DispatchOutcome:
    record: DocumentRecord
    link: str
    error: Optional[NotificationError] = None

    @property
    def notified(self) -> bool:
        return self.error is None


@dataclass
class FinalizeOutcome:
    record: DocumentRecord
    pdf: bytes
    skipped: List[str]


class DocumentLifecycle:
    def __init__(self, store: RecordStore, notifier, base_url: str = None, data_dir: str = None):
        self.store = store
        self.notifier = notifier
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.data_dir = data_dir
        ensure_dirs(get_dirs(data_dir))

    # ---------------- create & dispatch ----------------
    async def create_and_dispatch(self, pdf_bytes: bytes, filename: Optional[str], recipient: str) -> DispatchOutcome:
        recipient = (recipient or "").strip()
        if not recipient or "@" not in recipient:
            raise ValidationError("A recipient email address is required")
        if not pdf_bytes:
            raise ValidationError("A PDF upload is required")

        # MalformedDocumentError surfaces here, before anything is written
        annotated = await run_in_threadpool(inject_fields, pdf_bytes)

        doc_id = str(uuid.uuid4())
        path = get_doc_paths(doc_id, self.data_dir)["pdf"]
        try:
            await run_in_threadpool(write_once, path, annotated)
        except FileExistsError as e:
            raise DuplicateIdError(f"Document id already exists: {doc_id}") from e

        try:
            record = self.store.create(DocumentRecord(
                id=doc_id, source_path=path, recipient_email=recipient, filename=filename,
            ))
        except Exception:
            # no record means nothing will ever serve this file
            discard(path)
            raise
        log.info("[upload] doc_id=%s filename=%s to=%s", doc_id, filename, recipient)

        link = f"{self.base_url}/sign/{doc_id}"
        error = None
        try:
            await run_in_threadpool(self.notifier.send, recipient, SUBJECT, signing_link_html(link))
        except NotificationError as e:
            log.error("[upload] failed to send email doc_id=%s: %s", doc_id, e.message)
            error = e
        record = self.store.update(doc_id, dispatched_at=datetime.now())
        return DispatchOutcome(record=record, link=link, error=error)

    # ---------------- fill & finalize ----------------
    async def finalize(self, doc_id: str, values: Optional[Dict[str, Any]], signature: str) -> FinalizeOutcome:
        async with self.store.lock(doc_id):
            record = self.store.find(doc_id)
            if record.signed:
                raise ConflictError()

            source = await run_in_threadpool(read_bytes, record.source_path)
            signature_png = await run_in_threadpool(decode_signature, signature)
            result = await run_in_threadpool(merge_signature, source, values or {}, signature_png)

            signed_path = get_doc_paths(doc_id, self.data_dir)["signed"]
            try:
                await run_in_threadpool(write_once, signed_path, result.pdf)
            except FileExistsError as e:
                raise ConflictError() from e

            try:
                record = self.store.mark_signed(doc_id, signed_path)
            except Exception:
                # the record is still unsigned; a later finalize must be able to write this path
                discard(signed_path)
                raise
            log.info("[sign] doc_id=%s applied=%s skipped=%s", doc_id, result.applied, result.skipped)
            return FinalizeOutcome(record=record, pdf=result.pdf, skipped=result.skipped)

    # ---------------- retrieve ----------------
    async def retrieve(self, doc_id: str) -> Tuple[DocumentRecord, str, bytes]:
        record = self.store.find(doc_id)
        path = record.signed_path if record.signed else record.source_path
        data = await run_in_threadpool(read_bytes, path)
        return record, path, data


def get_lifecycle(request: Request) -> DocumentLifecycle:
    return request.app.state.lifecycle
