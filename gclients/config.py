"""
G-Clients Configuration
Database, token, mail and checkout settings
"""

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# MongoDB
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "gclients_db")

# Bearer tokens (HS256)
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRE_HOURS = int(os.getenv("TOKEN_EXPIRE_HOURS", "24"))

# One-time credentials
OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "15"))
RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "60"))
MIN_PASSWORD_LENGTH = 6

# Checkout
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "30"))
CHECKOUT_AUTO_VERIFY = _flag("CHECKOUT_AUTO_VERIFY", "true")

# Links embedded in emails
APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
APP_NAME = os.getenv("APP_NAME", "G-Clients")

# Mail transport
SMTP_ENABLED = _flag("SMTP_ENABLED", "false")
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "no-reply@gclients.local")
SMTP_STARTTLS = _flag("SMTP_STARTTLS", "true")
SMTP_TIMEOUT_SECONDS = 20

# Outbox reconciler period; 0 disables the background loop
OUTBOX_RETRY_INTERVAL_SECONDS = int(os.getenv("OUTBOX_RETRY_INTERVAL_SECONDS", "300"))
# Delivery attempts before an outbox entry is marked dead and no longer retried
MAX_DELIVERY_ATTEMPTS = int(os.getenv("MAX_DELIVERY_ATTEMPTS", "5"))

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
