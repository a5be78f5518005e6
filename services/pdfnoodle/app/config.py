from __future__ import annotations

import os
from typing import List

from pydantic import BaseModel, Field

from libs.core.pdfnoodle_client import DEFAULT_API_BASE


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_csv(value: str | None) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Settings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = 60.0
    poll_max_attempts: int = 20
    poll_initial_delay_ms: float = 2000.0
    poll_max_delay_ms: float = 10000.0
    poll_jitter: float = 0.0
    allowed_hosts: List[str] = Field(default_factory=list)
    json_response: bool = False
    handshake_timeout_s: float = 30.0
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])


def load_settings() -> Settings:
    defaults = Settings()
    port = _parse_optional_int(os.getenv("PORT"))
    timeout_s = _parse_optional_float(os.getenv("PDFNOODLE_TIMEOUT_S"))
    max_attempts = _parse_optional_int(os.getenv("PDFNOODLE_POLL_MAX_ATTEMPTS"))
    initial_delay_ms = _parse_optional_float(os.getenv("PDFNOODLE_POLL_INITIAL_DELAY_MS"))
    max_delay_ms = _parse_optional_float(os.getenv("PDFNOODLE_POLL_MAX_DELAY_MS"))
    jitter = _parse_optional_float(os.getenv("PDFNOODLE_POLL_JITTER"))
    handshake_timeout_s = _parse_optional_float(os.getenv("MCP_HANDSHAKE_TIMEOUT_S"))
    api_base = os.getenv("PDFNOODLE_API_BASE", "").strip() or defaults.api_base
    if not api_base.endswith("/"):
        api_base = f"{api_base}/"
    return Settings(
        host=os.getenv("HOST", "").strip() or defaults.host,
        port=port if port is not None and port > 0 else defaults.port,
        api_base=api_base,
        timeout_s=max(1.0, timeout_s) if timeout_s is not None else defaults.timeout_s,
        poll_max_attempts=(
            max(1, max_attempts) if max_attempts is not None else defaults.poll_max_attempts
        ),
        poll_initial_delay_ms=(
            max(0.0, initial_delay_ms)
            if initial_delay_ms is not None
            else defaults.poll_initial_delay_ms
        ),
        poll_max_delay_ms=(
            max(0.0, max_delay_ms) if max_delay_ms is not None else defaults.poll_max_delay_ms
        ),
        poll_jitter=min(1.0, max(0.0, jitter)) if jitter is not None else defaults.poll_jitter,
        allowed_hosts=_parse_csv(os.getenv("MCP_ALLOWED_HOSTS")),
        json_response=_parse_bool(os.getenv("MCP_JSON_RESPONSE"), defaults.json_response),
        handshake_timeout_s=(
            max(1.0, handshake_timeout_s)
            if handshake_timeout_s is not None
            else defaults.handshake_timeout_s
        ),
        cors_allow_origins=(
            _parse_csv(os.getenv("CORS_ALLOW_ORIGINS")) or defaults.cors_allow_origins
        ),
    )
