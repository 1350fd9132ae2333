# main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import AliasChoices, BaseModel, Field
from starlette.middleware.sessions import SessionMiddleware

import settings
from auth import require_principal, router as auth_router
from db import engine, Base
from errors import SigningError
from lifecycle import DocumentLifecycle, get_lifecycle, state_of
from notifier import build_notifier
from records import RecordStore
from routes_records import router as records_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("main")

VIEWS_DIR = os.path.join(os.path.dirname(__file__), "views")

# Ensure tables exist
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("[startup] BASE_URL=%s  DATA_DIR=%s  mail=%s", settings.BASE_URL, settings.DATA_DIR,
             app.state.lifecycle.notifier.mode)
    if settings.VERIFY_MAIL_ON_STARTUP:
        await run_in_threadpool(app.state.lifecycle.notifier.verify)
    yield


# ---------------- App ----------------
app = FastAPI(title="PDF Signing Backend", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    same_site="lax",
    https_only=settings.HTTPS_ONLY,
)
app.include_router(auth_router)
app.include_router(records_router)
app.state.lifecycle = DocumentLifecycle(RecordStore(), build_notifier())


@app.exception_handler(SigningError)
async def signing_error_handler(request: Request, exc: SigningError):
    if exc.status_code >= 500:
        log.error("[error] %s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ---------------- Schemas ----------------
class SignBody(BaseModel):
    values: Dict[str, Optional[str]] = Field(default_factory=dict)
    signature: str = Field(validation_alias=AliasChoices("signatureDataUrl", "signatureImage", "signature"))


# ---------------- Health ----------------
@app.get("/api/health")
def health(request: Request):
    return {
        "base_url": settings.BASE_URL,
        "mail_mode": request.app.state.lifecycle.notifier.mode,
        "login_configured": bool(settings.AZURE_CLIENT_ID and settings.AZURE_CLIENT_SECRET),
        "api_port": settings.PORT,
    }


# ---------------- Views ----------------
@app.get("/")
def upload_page(user=Depends(require_principal)):
    return FileResponse(os.path.join(VIEWS_DIR, "upload.html"))

@app.get("/sign/{doc_id}")
def sign_page(doc_id: str, user=Depends(require_principal)):
    return FileResponse(os.path.join(VIEWS_DIR, "sign.html"))


# ---------------- Core: Upload + inject fields + dispatch ----------------
@app.post("/upload")
async def upload_pdf(
    pdf: UploadFile = File(...),
    email: str = Form(...),
    user=Depends(require_principal),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    outcome = await lifecycle.create_and_dispatch(await pdf.read(), pdf.filename, email)
    body: Dict[str, Any] = {"id": outcome.record.id, "state": state_of(outcome.record)}
    if outcome.error is not None:
        body["message"] = outcome.error.message
        return JSONResponse(status_code=outcome.error.status_code, content=body)
    body["message"] = "PDF prepared and email sent!"
    return JSONResponse(status_code=202, content=body)


# ---------------- Core: Retrieve ----------------
@app.get("/pdf/{doc_id}")
async def get_pdf(
    doc_id: str,
    user=Depends(require_principal),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    record, path, data = await lifecycle.retrieve(doc_id)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f"inline; filename={os.path.basename(path)}"},
    )


# ---------------- Core: Fill + finalize ----------------
@app.post("/sign/{doc_id}")
async def sign_pdf(
    doc_id: str,
    body: SignBody,
    user=Depends(require_principal),
    lifecycle: DocumentLifecycle = Depends(get_lifecycle),
):
    outcome = await lifecycle.finalize(doc_id, body.values, body.signature)
    return {
        "message": "Signed and archived",
        "file": outcome.record.signed_path,
        "skipped": outcome.skipped,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=settings.PORT)
