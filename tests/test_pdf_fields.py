import fitz  # PyMuPDF
import pytest

from conftest import PAGE_H, make_pdf
from errors import MalformedDocumentError
from pdf_fields import FIELDS, FieldSpec, inject_fields, list_fields


def test_rect_converts_from_bottom_left_origin():
    r = FieldSpec("FullName", 150, 500).rect(792)
    assert tuple(r) == (150, 272, 350, 292)


def test_inject_adds_three_empty_fields_on_first_page(pdf_bytes):
    out = inject_fields(pdf_bytes)

    found = list_fields(out)
    assert set(found) == {"FullName", "Date", "Company"}
    for spec in FIELDS:
        page_no, rect = found[spec.name]
        assert page_no == 0
        assert tuple(rect) == pytest.approx(tuple(spec.rect(PAGE_H)), abs=0.01)

    with fitz.open(stream=out, filetype="pdf") as doc:
        assert doc.page_count == 1
        values = {w.field_name: w.field_value for w in doc[0].widgets()}
        assert all(not v for v in values.values())
        assert all(w.field_type == fitz.PDF_WIDGET_TYPE_TEXT for w in doc[0].widgets())


def test_inject_only_touches_first_page():
    out = inject_fields(make_pdf(pages=3))
    assert {page for page, _ in list_fields(out).values()} == {0}
    with fitz.open(stream=out, filetype="pdf") as doc:
        assert doc.page_count == 3


@pytest.mark.parametrize("data", [b"", b"definitely not a pdf"])
def test_malformed_input_is_rejected(data):
    with pytest.raises(MalformedDocumentError):
        inject_fields(data)


def test_document_with_fields_cannot_be_annotated_twice(pdf_bytes):
    once = inject_fields(pdf_bytes)
    with pytest.raises(MalformedDocumentError):
        inject_fields(once)
