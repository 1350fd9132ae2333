# routes_records.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from auth import require_principal
from lifecycle import DocumentLifecycle, get_lifecycle, state_of

router = APIRouter(prefix="/api/records", tags=["records"], dependencies=[Depends(require_principal)])

# ---------------- routes --------------
@router.get("")
def list_records(lifecycle: DocumentLifecycle = Depends(get_lifecycle)):
    return [{**r.to_dict(), "state": state_of(r)} for r in lifecycle.store.list()]

@router.get("/{doc_id}")
def fetch_record(doc_id: str, lifecycle: DocumentLifecycle = Depends(get_lifecycle)):
    record = lifecycle.store.find(doc_id)
    return {**record.to_dict(), "state": state_of(record)}
