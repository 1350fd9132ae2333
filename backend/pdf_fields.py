# pdf_fields.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import fitz  # PyMuPDF

from errors import MalformedDocumentError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """A box on the first page. x/y is the lower-left corner in PDF points
    (origin bottom-left, as in the PDF user space)."""
    name: str
    x: float
    y: float
    width: float = 200
    height: float = 20

    def rect(self, page_height: float) -> fitz.Rect:
        # PyMuPDF puts the origin top-left
        return fitz.Rect(self.x, page_height - self.y - self.height,
                         self.x + self.width, page_height - self.y)


FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("FullName", 150, 500),
    FieldSpec("Date", 150, 470),
    FieldSpec("Company", 150, 440),
)
FIELD_NAMES = frozenset(f.name for f in FIELDS)

FONT = "Helv"  # Helvetica, one of the PDF base-14 fonts
FONT_SIZE = 11


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    """Open PDF bytes; MalformedDocumentError if unparseable or without pages."""
    if not pdf_bytes:
        raise MalformedDocumentError("Empty upload")
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:  # PyMuPDF raises FileDataError or raw MuPDF errors
        raise MalformedDocumentError(f"Cannot parse PDF: {e}") from e
    try:
        pages = doc.page_count if doc.is_pdf else 0
    except Exception as e:
        doc.close()
        raise MalformedDocumentError(f"Cannot read page tree: {e}") from e
    if pages < 1:
        doc.close()
        raise MalformedDocumentError("PDF has no pages")
    return doc


def list_fields(pdf_bytes: bytes) -> Dict[str, Tuple[int, fitz.Rect]]:
    """Form fields in the document: name -> (page number, rect)."""
    out: Dict[str, Tuple[int, fitz.Rect]] = {}
    with open_pdf(pdf_bytes) as doc:
        for page in doc:
            for w in page.widgets():
                out[w.field_name] = (page.number, fitz.Rect(w.rect))
    return out


def inject_fields(pdf_bytes: bytes, fields: Tuple[FieldSpec, ...] = FIELDS) -> bytes:
    """Add empty single-line text fields to the first page and return the new PDF bytes."""
    with open_pdf(pdf_bytes) as doc:
        existing = {w.field_name for page in doc for w in page.widgets()}
        clash = existing.intersection(f.name for f in fields)
        if clash:
            raise MalformedDocumentError(f"Document already has fields: {', '.join(sorted(clash))}")

        page = doc[0]
        height = page.rect.height
        for spec in fields:
            w = fitz.Widget()
            w.field_name = spec.name
            w.field_type = fitz.PDF_WIDGET_TYPE_TEXT
            w.field_value = ""
            w.rect = spec.rect(height)
            w.text_font = FONT
            w.text_fontsize = FONT_SIZE
            page.add_widget(w)  # also generates the appearance stream

        log.info("[fields] injected=%s page_height=%.1f", [f.name for f in fields], height)
        return doc.tobytes(garbage=3, deflate=True)
