from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

import auth
import main
from conftest import FakeNotifier, make_pdf, signature_data_url
from errors import NotificationAuthError
from lifecycle import DocumentLifecycle


@pytest.fixture
def app_with(store, tmp_path):
    saved = main.app.state.lifecycle

    def install(notifier):
        main.app.state.lifecycle = DocumentLifecycle(
            store, notifier, base_url="http://signing.test", data_dir=str(tmp_path / "files"))
        return main.app

    yield install
    main.app.state.lifecycle = saved
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(app_with, notifier):
    app = app_with(notifier)
    app.dependency_overrides[auth.require_principal] = lambda: {"email": "owner@example.com"}
    return TestClient(app)


@pytest.fixture
def anon_client(app_with, notifier):
    return TestClient(app_with(notifier))


def _upload(client, pdf=None, email="signer@example.com"):
    return client.post(
        "/upload",
        files={"pdf": ("contract.pdf", pdf or make_pdf(), "application/pdf")},
        data={"email": email},
    )


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["mail_mode"] == "fake"


def test_full_flow(client, notifier):
    r = _upload(client)
    assert r.status_code == 202
    body = r.json()
    assert body["message"] == "PDF prepared and email sent!"
    doc_id = body["id"]
    assert doc_id in notifier.sent[0]["html"]

    r = client.get(f"/pdf/{doc_id}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"] == f"inline; filename={doc_id}.pdf"
    unsigned = r.content

    r = client.post(f"/sign/{doc_id}", json={
        "values": {"FullName": "A", "Date": "2024-01-01"},
        "signatureDataUrl": signature_data_url(),
    })
    assert r.status_code == 200
    assert r.json()["message"] == "Signed and archived"
    assert r.json()["file"].endswith(f"{doc_id}_signed.pdf")

    r = client.get(f"/pdf/{doc_id}")
    assert r.status_code == 200
    assert r.content != unsigned
    assert r.headers["content-disposition"] == f"inline; filename={doc_id}_signed.pdf"

    r = client.get(f"/api/records/{doc_id}")
    assert r.json()["signed"] is True
    assert r.json()["state"] == "finalized"


def test_signature_image_alias(client):
    doc_id = _upload(client).json()["id"]
    r = client.post(f"/sign/{doc_id}", json={"values": {}, "signatureImage": signature_data_url()})
    assert r.status_code == 200


def test_second_sign_is_conflict(client):
    doc_id = _upload(client).json()["id"]
    payload = {"values": {"FullName": "A"}, "signatureDataUrl": signature_data_url()}
    first = client.post(f"/sign/{doc_id}", json=payload)
    assert first.status_code == 200

    again = client.post(f"/sign/{doc_id}", json=payload)
    assert again.status_code == 409
    assert again.json()["error"] == "Document is already signed"
    assert client.get(f"/api/records/{doc_id}").json()["signedFile"] == first.json()["file"]


def test_bad_signature_is_unprocessable(client):
    doc_id = _upload(client).json()["id"]
    r = client.post(f"/sign/{doc_id}", json={"values": {}, "signatureDataUrl": "data:image/png;base64,AAAA"})
    assert r.status_code == 422
    assert client.get(f"/api/records/{doc_id}").json()["signed"] is False


def test_unknown_document(client):
    assert client.get("/pdf/nope").status_code == 404
    r = client.post("/sign/nope", json={"values": {}, "signatureDataUrl": signature_data_url()})
    assert r.status_code == 404


def test_malformed_upload(client, store):
    r = _upload(client, pdf=b"this is not a pdf")
    assert r.status_code == 422
    assert store.list() == []


def test_mail_auth_failure_keeps_document(app_with, store):
    app = app_with(FakeNotifier(error=NotificationAuthError()))
    app.dependency_overrides[auth.require_principal] = lambda: {"email": "owner@example.com"}
    client = TestClient(app)

    r = _upload(client)
    assert r.status_code == 502
    assert "Email authentication failed" in r.json()["message"]
    doc_id = r.json()["id"]

    assert store.find(doc_id).signed is False
    assert client.get(f"/pdf/{doc_id}").status_code == 200


def test_records_listing(client):
    ids = {_upload(client).json()["id"] for _ in range(2)}
    listed = client.get("/api/records").json()
    assert {r["id"] for r in listed} == ids
    assert all(r["state"] == "dispatched" for r in listed)


def test_unauthenticated_request_redirects_to_login(anon_client):
    r = anon_client.get("/pdf/some-id", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/login"


def test_login_returns_to_original_target(anon_client, monkeypatch):
    class _Resp:
        def __init__(self, payload):
            self.status_code = 200
            self.ok = True
            self._payload = payload

        def json(self):
            return self._payload

    monkeypatch.setattr(auth.requests, "post", lambda *a, **kw: _Resp({"access_token": "t"}))
    monkeypatch.setattr(auth.requests, "get", lambda *a, **kw: _Resp(
        {"id": "u1", "displayName": "Owner", "mail": "owner@example.com"}))

    anon_client.get("/sign/abc", follow_redirects=False)

    r = anon_client.get("/auth/login", follow_redirects=False)
    assert r.status_code == 302
    location = urlparse(r.headers["location"])
    assert location.netloc == "login.microsoftonline.com"
    state = parse_qs(location.query)["state"][0]

    r = anon_client.get(f"/auth/callback?code=xyz&state={state}", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/sign/abc"

    assert anon_client.get("/sign/abc", follow_redirects=False).status_code == 200


def test_callback_rejects_wrong_state(anon_client):
    anon_client.get("/auth/login", follow_redirects=False)
    r = anon_client.get("/auth/callback?code=xyz&state=forged", follow_redirects=False)
    assert r.status_code == 401
