"""
Environment configuration for the Lunia storefront server.

All settings are read once at import time into module-level constants.
Tests override them with ``unittest.mock.patch``. Missing secrets never
crash the process: the affected feature logs a warning and degrades.
"""

import logging
import os
import secrets
from decimal import Decimal

logger = logging.getLogger("storefront-settings")

STOREFRONT_DATA_DIR = os.environ.get(
    "STOREFRONT_DATA_DIR", os.path.expanduser("~/.lunia")
)

DATABASE_URL = os.environ.get(
    "STOREFRONT_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(STOREFRONT_DATA_DIR, 'storefront.db')}",
)

# Fixed sales tax applied to the post-discount total
TAX_RATE = Decimal("0.08")
CURRENCY = "usd"
ORDER_NUMBER_PREFIX = "LUN"

STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")

RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
EMAIL_FROM = os.environ.get("STOREFRONT_EMAIL_FROM", "Lunia <orders@lunia.shop>")
SITE_URL = os.environ.get("SITE_URL", "http://localhost:5173")

AUTH_TOKEN_TTL_MINUTES = int(os.environ.get("STOREFRONT_AUTH_TOKEN_TTL", "60"))

_auth_secret = os.environ.get("STOREFRONT_AUTH_SECRET")
if not _auth_secret:
    logger.warning(
        "STOREFRONT_AUTH_SECRET is not set; using a per-process secret, "
        "issued tokens will not survive a restart"
    )
    _auth_secret = secrets.token_hex(32)
AUTH_SECRET = _auth_secret
