"""
CryptoWallet Client Configuration
==================================
Central config for the wallet client.
Defaults are overridden by cryptowallet_config.json (next to this file, or
the path in CRYPTOWALLET_CONFIG) and then by environment variables.

For a local backend:  API_BASE_URL = "http://localhost:8080/api"
For the dev server:   API_BASE_URL = "http://127.0.0.1:8000/api"
"""

import os
import json
import logging
from typing import Optional

logger = logging.getLogger("cryptowallet.config")

# ── Default configuration ──────────────────────────────────────────────────────
DEFAULT_API_BASE_URL = "http://localhost:8080/api"

# Plain HTTP in development; set True once the backend has a valid cert.
DEFAULT_VERIFY_SSL = False

_CONFIG_FILE = os.environ.get(
    "CRYPTOWALLET_CONFIG",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "cryptowallet_config.json"),
)

# env var -> (config key, parser)
_ENV_OVERRIDES = {
    "CRYPTOWALLET_API_URL":     ("api_base_url", str),
    "CRYPTOWALLET_TIMEOUT":     ("timeout", float),
    "CRYPTOWALLET_VERIFY_SSL":  ("verify_ssl", lambda v: v.strip().lower() in ("1", "true", "yes")),
    "CRYPTOWALLET_SESSION_DIR": ("session_dir", str),
    "CRYPTOWALLET_LOG_LEVEL":   ("log_level", str),
}


def default_config() -> dict:
    return {
        "api_base_url": DEFAULT_API_BASE_URL,
        "verify_ssl":   DEFAULT_VERIFY_SSL,
        "timeout":      15.0,
        "session_dir":  os.path.join(os.path.expanduser("~"), ".cryptowallet"),
        "page_size":    10,
        "log_level":    "INFO",
        "app_name":     "CryptoWallet",
        "app_version":  "1.0.0",
    }


def load_config(path: Optional[str] = None, environ: Optional[dict] = None) -> dict:
    """Load config: defaults, then the JSON file if present, then env overrides."""
    path    = path or _CONFIG_FILE
    environ = os.environ if environ is None else environ
    cfg     = default_config()

    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                cfg.update(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")

    for var, (key, parse) in _ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None:
            continue
        try:
            cfg[key] = parse(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid {var}={raw!r}")
    return cfg


def save_config(cfg: dict, path: Optional[str] = None):
    """Persist config changes to disk."""
    path = path or _CONFIG_FILE
    with open(path, "w") as f:
        json.dump(cfg, f, indent=2)


# Loaded once at import; entry points and ApiClient read from it
CONFIG = load_config()


def get_api_url(path: str, base: Optional[str] = None) -> str:
    """Build a full API URL from a path fragment."""
    base = (base or CONFIG["api_base_url"]).rstrip("/")
    path = path.lstrip("/")
    return f"{base}/{path}"
