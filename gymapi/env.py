from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError

from .constants import LOGGER

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TOKEN_STORE_PATH = ".tokens.json"


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")
    if value <= 0:
        raise RuntimeError(f"{key} must be greater than zero.")
    return value


def load_env(env_path: Path | None = None) -> None:
    path = env_path or Path(__file__).resolve().parent.parent / ".env"
    if not path.exists():
        return
    load_dotenv(path, override=True)


def validate_env() -> None:
    raw_url = os.getenv("GYM_API_BASE_URL", "").strip()
    if not raw_url:
        raise RuntimeError("Missing required environment variable: GYM_API_BASE_URL")
    try:
        AnyHttpUrl(raw_url)
    except ValidationError as error:
        raise RuntimeError(
            "GYM_API_BASE_URL must be a valid http(s) URL (for example: "
            "http://192.168.0.109:3333/)."
        ) from error

    _get_env_float("GYM_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)


def api_base_url() -> str:
    # Relative paths must resolve under the base, so keep exactly one trailing slash.
    return os.getenv("GYM_API_BASE_URL", "").strip().rstrip("/") + "/"


def api_timeout() -> float:
    return _get_env_float("GYM_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)


def token_store_path() -> Path:
    return Path(os.getenv("GYM_TOKEN_STORE_PATH", DEFAULT_TOKEN_STORE_PATH))


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("GYM_API_DEBUG", "0"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
