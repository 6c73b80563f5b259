from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_BACKEND_ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
_DOTENV_LOADED = False


def ensure_backend_env_loaded() -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)
    _DOTENV_LOADED = True


def _to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _to_text(value: str | None, default: str) -> str:
    return (value or default).strip() or default


def _to_log_level(value: str | None, default: str = "INFO") -> str:
    name = (value or "").strip().upper()
    if name and isinstance(logging.getLevelName(name), int):
        return name
    return default


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_token: str
    api_timeout_seconds: int
    report_timezone: str
    org_name: str
    org_tagline: str
    logo_path: str
    log_level: str


def load_settings() -> Settings:
    ensure_backend_env_loaded()
    return Settings(
        api_base_url=_to_text(os.getenv("API_BASE_URL"), "http://localhost:5656/api").rstrip("/"),
        api_token=(os.getenv("API_TOKEN") or "").strip(),
        api_timeout_seconds=max(1, _to_int(os.getenv("API_TIMEOUT_SECONDS"), 20)),
        report_timezone=_to_text(os.getenv("REPORT_TIMEZONE"), "Asia/Kolkata"),
        org_name=_to_text(os.getenv("ORG_NAME"), "ND ENTERPRISE"),
        org_tagline=_to_text(os.getenv("ORG_TAGLINE"), "Workforce Management System"),
        logo_path=(os.getenv("REPORT_LOGO_PATH") or "").strip(),
        log_level=_to_log_level(os.getenv("LOG_LEVEL")),
    )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=_to_log_level(level, settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = load_settings()
