# auth.py
"""
Login with the Microsoft identity platform (authorization-code flow) and the
`require_principal` gate used by every document route.

The signed-in principal lives in the session cookie (Starlette SessionMiddleware,
configured in main.py). Unauthenticated requests remember their target in
session["return_to"] and are redirected to /auth/login; the callback sends the
user back there.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

import settings

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SCOPES = "openid profile email User.Read"
GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"
LOGIN_PATH = "/auth/login"


def _authority() -> str:
    return f"https://login.microsoftonline.com/{settings.AZURE_TENANT_ID}/oauth2/v2.0"

def _callback_url() -> str:
    return f"{settings.BASE_URL}/auth/callback"

def _safe_return(target: Optional[str]) -> Optional[str]:
    # only local paths; "//host" would be an open redirect
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return None


# ---------------- gate ----------------
def require_principal(request: Request) -> Dict[str, Any]:
    user = request.session.get("user")
    if user:
        return user
    target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    request.session["return_to"] = target
    raise HTTPException(status_code=302, detail="Login required", headers={"Location": LOGIN_PATH})


# ---------------- routes ----------------
@router.get("/login")
def login(request: Request, returnTo: Optional[str] = None):
    request.session["return_to"] = request.session.get("return_to") or _safe_return(returnTo) or "/"
    state = secrets.token_urlsafe(16)
    request.session["oauth_state"] = state
    params = {
        "client_id": settings.AZURE_CLIENT_ID,
        "response_type": "code",
        "redirect_uri": _callback_url(),
        "response_mode": "query",
        "scope": SCOPES,
        "state": state,
    }
    return RedirectResponse(f"{_authority()}/authorize?{urlencode(params)}", status_code=302)


@router.get("/callback")
def callback(request: Request, code: Optional[str] = None, state: Optional[str] = None,
             error: Optional[str] = None):
    expected = request.session.pop("oauth_state", None)
    if error or not code or not state or state != expected:
        log.warning("[auth] callback rejected error=%s state_ok=%s", error, state == expected)
        raise HTTPException(status_code=401, detail="Login failed")

    try:
        r = requests.post(
            f"{_authority()}/token",
            data={
                "client_id": settings.AZURE_CLIENT_ID,
                "client_secret": settings.AZURE_CLIENT_SECRET,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": _callback_url(),
                "scope": SCOPES,
            },
            timeout=15,
        )
        if r.status_code != 200:
            log.warning("[auth] token exchange failed status=%s", r.status_code)
            raise HTTPException(status_code=401, detail="Login failed")
        token = r.json().get("access_token")
        me = requests.get(GRAPH_ME_URL, headers={"Authorization": f"Bearer {token}"}, timeout=15)
        profile = me.json() if me.ok else {}
    except requests.RequestException as e:
        log.error("[auth] identity provider unreachable: %s", e)
        raise HTTPException(status_code=502, detail="Identity provider unreachable")

    request.session["user"] = {
        "id": profile.get("id"),
        "name": profile.get("displayName"),
        "email": profile.get("mail") or profile.get("userPrincipalName"),
    }
    log.info("[auth] login user=%s", request.session["user"]["email"])
    redirect_url = _safe_return(request.session.pop("return_to", None)) or "/"
    return RedirectResponse(redirect_url, status_code=302)


@router.get("/logout")
def logout(request: Request):
    request.session.clear()
    logout_url = (
        "https://login.microsoftonline.com/common/oauth2/v2.0/logout?"
        + urlencode({"post_logout_redirect_uri": settings.BASE_URL})
    )
    return RedirectResponse(logout_url, status_code=302)
