import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class ConfigurationError(Exception):
    """Raised when an environment setting cannot be used."""


def _as_bool(value, default=False):
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _parse_networks(raw):
    """Parse "ethereum=https://...,sepolia=https://..." into an ordered dict."""
    networks = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, url = item.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ConfigurationError(f"NETWORK_RPC_URLS entry {item!r} must look like name=url")
        networks[name.strip().lower()] = url.strip()
    return networks


# Database
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./crefy.db"
SQL_ECHO = _as_bool(os.getenv("SQL_ECHO"))

# Security settings
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = _as_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)  # 1 week
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL") or ""
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD") or ""

# Front end origins
CORS_ORIGINS = [
    origin.strip()
    for origin in (os.getenv("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# Chain access
RPC_URL = os.getenv("RPC_URL") or ""
NETWORK_RPC_URLS = _parse_networks(os.getenv("NETWORK_RPC_URLS"))
RPC_TIMEOUT_SECONDS = _as_int("RPC_TIMEOUT_SECONDS", 10)

# Logging
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE") or ""

if ACCESS_TOKEN_EXPIRE_MINUTES < 1:
    raise ConfigurationError("ACCESS_TOKEN_EXPIRE_MINUTES must be >= 1")
if RPC_TIMEOUT_SECONDS < 1:
    raise ConfigurationError("RPC_TIMEOUT_SECONDS must be >= 1")
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL")
