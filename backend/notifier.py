# notifier.py
"""
Outbound mail for signing links.

Three modes, picked from settings:
- oauth2   : EMAIL_USER + OAUTH_CLIENT_ID/SECRET/REFRESH_TOKEN (Gmail XOAUTH2)
- password : EMAIL_USER + EMAIL_PASS (Gmail app password when 2FA is on)
- disabled : nothing configured; every send fails with NotificationError

One attempt per send, no retry loop.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import requests

import settings
from errors import NotificationAuthError, NotificationError

log = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class SmtpNotifier:
    def __init__(
        self,
        user: str = "",
        password: str = "",
        client_id: str = "",
        client_secret: str = "",
        refresh_token: str = "",
        host: str = "smtp.gmail.com",
        port: int = 465,
        timeout: float = 20,
    ):
        self.user = user
        self.password = password
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.host = host
        self.port = port
        self.timeout = timeout

    @property
    def mode(self) -> str:
        if self.user and self.client_id and self.client_secret and self.refresh_token:
            return "oauth2"
        if self.user and self.password:
            return "password"
        return "disabled"

    # ---------------- HTTP (OAuth2 token) ----------------

    def _access_token(self) -> str:
        try:
            r = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NotificationError(f"OAuth2 token request failed: {e}") from e
        if r.status_code != 200:
            raise NotificationAuthError(f"OAuth2 token refresh rejected ({r.status_code})")
        token = (r.json() or {}).get("access_token")
        if not token:
            raise NotificationAuthError("OAuth2 token response had no access_token")
        return token

    # ---------------- SMTP ----------------

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        smtp.starttls()
        return smtp

    def _login(self, smtp: smtplib.SMTP) -> None:
        if self.mode == "oauth2":
            auth_string = f"user={self.user}\x01auth=Bearer {self._access_token()}\x01\x01"
            smtp.ehlo()
            # second call (with a server challenge) must answer empty to get the error code back
            smtp.auth("XOAUTH2", lambda challenge=None: auth_string if challenge is None else "")
        else:
            smtp.login(self.user, self.password)

    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        if self.mode == "disabled":
            raise NotificationError("Email not configured")

        msg = EmailMessage()
        msg["From"] = self.user
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_body or "Open this message in an HTML capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            with self._connect() as smtp:
                self._login(smtp)
                smtp.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            log.error("[mail] authentication failed code=%s: %s", e.smtp_code, e.smtp_error)
            raise NotificationAuthError() from e
        except smtplib.SMTPResponseException as e:
            log.error("[mail] send failed code=%s: %s", e.smtp_code, e.smtp_error)
            if e.smtp_code == 535:
                raise NotificationAuthError() from e
            raise NotificationError() from e
        except (smtplib.SMTPException, OSError) as e:
            log.error("[mail] send failed: %s", e)
            raise NotificationError() from e
        log.info("[mail] sent to=%s subject=%r", to, subject)

    def verify(self) -> bool:
        """Connect and authenticate once, logging actionable hints on failure."""
        if self.mode == "disabled":
            log.warning("[mail] no email credentials provided in environment; email sending is disabled")
            return False
        try:
            with self._connect() as smtp:
                self._login(smtp)
        except (NotificationError, smtplib.SMTPException, OSError) as e:
            log.error("[mail] transporter verification failed: %s", e)
            log.error(
                "[mail] if you're using Gmail: enable 2FA and create an App Password, or set up OAuth2 "
                "credentials (OAUTH_CLIENT_ID, OAUTH_CLIENT_SECRET, OAUTH_REFRESH_TOKEN)"
            )
            return False
        log.info("[mail] transporter is ready mode=%s", self.mode)
        return True


def build_notifier() -> SmtpNotifier:
    return SmtpNotifier(
        user=settings.EMAIL_USER,
        password=settings.EMAIL_PASS,
        client_id=settings.OAUTH_CLIENT_ID,
        client_secret=settings.OAUTH_CLIENT_SECRET,
        refresh_token=settings.OAUTH_REFRESH_TOKEN,
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        timeout=settings.SMTP_TIMEOUT,
    )
