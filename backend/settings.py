# settings.py
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

load_dotenv(dotenv_path=ENV_PATH, override=False)

def _to_bool(s, default=False):
    if s is None:
        return default
    return str(s).strip().lower() in ("1", "true", "yes", "on")

BASE_URL       = (os.getenv("BASE_URL") or "http://localhost:3000").rstrip("/")
PORT           = int(os.getenv("PORT", "3000"))
SESSION_SECRET = os.getenv("SESSION_SECRET") or "change-me"
HTTPS_ONLY     = _to_bool(os.getenv("HTTPS_ONLY"), False)

# Files live under DATA_DIR/uploads (annotated) and DATA_DIR/signed (finalized)
DATA_DIR       = os.getenv("DATA_DIR") or str(BASE_DIR / "data")
DATABASE_URL   = os.getenv("DATABASE_URL") or f"sqlite:///{os.path.join(DATA_DIR, 'app.db')}"

# Microsoft identity platform (login)
AZURE_CLIENT_ID     = os.getenv("AZURE_CLIENT_ID", "")
AZURE_CLIENT_SECRET = os.getenv("AZURE_CLIENT_SECRET", "")
AZURE_TENANT_ID     = os.getenv("AZURE_TENANT_ID") or "common"

# Outbound mail: OAuth2 (preferred) or app password
EMAIL_USER          = os.getenv("EMAIL_USER", "")
EMAIL_PASS          = os.getenv("EMAIL_PASS", "")
OAUTH_CLIENT_ID     = os.getenv("OAUTH_CLIENT_ID", "")
OAUTH_CLIENT_SECRET = os.getenv("OAUTH_CLIENT_SECRET", "")
OAUTH_REFRESH_TOKEN = os.getenv("OAUTH_REFRESH_TOKEN", "")
SMTP_HOST           = os.getenv("SMTP_HOST") or "smtp.gmail.com"
SMTP_PORT           = int(os.getenv("SMTP_PORT", "465"))
SMTP_TIMEOUT        = float(os.getenv("SMTP_TIMEOUT", "20"))
VERIFY_MAIL_ON_STARTUP = _to_bool(os.getenv("VERIFY_MAIL_ON_STARTUP"), True)
