# signer.py
"""
Signature merge: fill the injected text fields, flatten the form, and stamp the
drawn signature onto the first page.

Field values are applied tolerantly: names outside FIELD_NAMES, names the
document does not contain, and values PyMuPDF refuses are skipped and reported
in MergeResult.skipped instead of failing the merge.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from errors import ImageDecodeError
from pdf_fields import FIELD_NAMES, FieldSpec, open_pdf

log = logging.getLogger(__name__)

SIGNATURE_BOX = FieldSpec("Signature", 50, 50, width=150, height=50)


@dataclass
class MergeResult:
    pdf: bytes
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


# ---------------- signature image ----------------

def decode_signature(payload: str) -> bytes:
    """Decode a `data:image/...;base64,` URL (or bare base64) into PNG bytes."""
    if not isinstance(payload, str) or not payload.strip():
        raise ImageDecodeError("Missing signature image")
    data = payload.split(",", 1)[1] if payload.startswith("data:") else payload
    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError("Signature image is not valid base64") from e

    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGBA")
            out = io.BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Signature image could not be decoded: {e}") from e
    return out.getvalue()


# ---------------- form values ----------------

def _apply_values(doc: fitz.Document, values: Mapping[str, Any]) -> Tuple[List[str], List[str]]:
    wanted = {k: v for k, v in values.items() if k in FIELD_NAMES}
    skipped = [k for k in values if k not in FIELD_NAMES]
    applied: List[str] = []

    for page in doc:
        for widget in page.widgets(types=[fitz.PDF_WIDGET_TYPE_TEXT]):
            name = widget.field_name
            if name not in wanted or name in applied:
                continue
            value = wanted[name]
            try:
                widget.field_value = "" if value is None else str(value)
                widget.update()
            except Exception as e:
                log.warning("[sign] could not set field=%s: %s", name, e)
                skipped.append(name)
                continue
            applied.append(name)

    skipped.extend(k for k in wanted if k not in applied and k not in skipped)
    return applied, skipped


# ---------------- merge ----------------

def merge_signature(pdf_bytes: bytes, values: Dict[str, Any], signature_png: bytes) -> MergeResult:
    with open_pdf(pdf_bytes) as doc:
        applied, skipped = _apply_values(doc, values or {})
        if skipped:
            log.warning("[sign] skipped %d field value(s): %s", len(skipped), skipped)

        # every widget becomes static page content; no editable fields remain
        doc.bake(annots=False, widgets=True)

        page = doc[0]
        try:
            page.insert_image(
                SIGNATURE_BOX.rect(page.rect.height),
                stream=signature_png,
                keep_proportion=False,
                overlay=True,
            )
        except Exception as e:
            raise ImageDecodeError(f"Signature image could not be embedded: {e}") from e

        return MergeResult(doc.tobytes(garbage=3, deflate=True), applied, skipped)
