import base64
import io
import os
import tempfile

# must be set before settings/db are imported
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="signing-test-"))
os.environ["VERIFY_MAIL_ON_STARTUP"] = "false"
os.environ.setdefault("SESSION_SECRET", "test-secret")

import fitz  # PyMuPDF
import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db import Base
from errors import NotificationError
from lifecycle import DocumentLifecycle
from records import RecordStore

PAGE_W, PAGE_H = 612, 792


def make_pdf(pages: int = 1, text: str = "Service agreement") -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=PAGE_W, height=PAGE_H)
        page.insert_text((72, 72), f"{text} - page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def signature_data_url(color=(0, 0, 200, 255), fmt="PNG") -> str:
    img = Image.new("RGBA" if fmt == "PNG" else "RGB", (150, 50), color if fmt == "PNG" else color[:3])
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    mime = "image/png" if fmt == "PNG" else "image/jpeg"
    return f"data:{mime};base64," + base64.b64encode(buf.getvalue()).decode("ascii")


class FakeNotifier:
    mode = "fake"

    def __init__(self, error: NotificationError = None):
        self.error = error
        self.sent = []

    def send(self, to, subject, html_body, text_body=None):
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        if self.error is not None:
            raise self.error

    def verify(self):
        return True


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'records.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return RecordStore(session_factory)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(store, notifier, tmp_path):
    return DocumentLifecycle(store, notifier, base_url="http://signing.test", data_dir=str(tmp_path / "files"))
