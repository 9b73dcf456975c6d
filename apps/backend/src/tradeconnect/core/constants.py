"""Global constants for the TradeConnect identity service."""

from __future__ import annotations

SERVICE_NAME = "tradeconnect"
REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_CTX_KEY = "request_id"
DEFAULT_ENV_FILE = ".env"
SECRETS_DIR = "/run/secrets"

JWT_ISSUER = "tradeconnect"
JWT_ACCESS_AUDIENCE = "tradeconnect-app"
JWT_REFRESH_AUDIENCE = "tradeconnect-refresh"

BLACKLIST_KEY_PREFIX = "blacklist"
TWO_FACTOR_CODE_KEY_PREFIX = "2fa:code"

SYSTEM_ACTOR = "system"
SYSTEM_IP_ADDRESS = "127.0.0.1"
