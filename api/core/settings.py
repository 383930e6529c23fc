"""
Environment-driven settings.

Every value is read at call time so tests (and a restarted worker) pick up
changes to `os.environ` without re-importing anything.
"""

from __future__ import annotations

import os

DEFAULT_SERVE_BASE_URL = "http://localhost:8000/serve"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB
DEFAULT_ADDRESS_MAX_ATTEMPTS = 5
DEFAULT_CORS_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")

STORE_BACKENDS = {"postgres", "memory"}


class SettingsError(RuntimeError):
    pass


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def serve_base_url() -> str:
    return _env_str("SERVE_BASE_URL", DEFAULT_SERVE_BASE_URL).rstrip("/")


def max_upload_bytes() -> int:
    """
    Read MAX_UPLOAD_BYTES from env, falling back to a sane default.
    """
    raw = os.environ.get("MAX_UPLOAD_BYTES", "").strip()
    if not raw:
        return DEFAULT_MAX_UPLOAD_BYTES

    try:
        value = int(raw)
    except ValueError as e:
        raise SettingsError("Invalid MAX_UPLOAD_BYTES. It must be an integer.") from e

    if value <= 0:
        raise SettingsError("Invalid MAX_UPLOAD_BYTES. It must be > 0.")

    return value


def address_max_attempts() -> int:
    value = _env_int("ADDRESS_MAX_ATTEMPTS", DEFAULT_ADDRESS_MAX_ATTEMPTS)
    return value if value > 0 else DEFAULT_ADDRESS_MAX_ATTEMPTS


def dataset_store_backend() -> str:
    backend = _env_str("DATASET_STORE", "postgres").lower()
    if backend not in STORE_BACKENDS:
        raise SettingsError(f"Invalid DATASET_STORE '{backend}'. Allowed: {sorted(STORE_BACKENDS)}")
    return backend


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
