from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using default {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using default {default}")
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime knobs for the scan service. Built once per app instance."""

    hibp_api_key: str = ""
    breach_provider: str = "auto"  # auto | hibp | local
    correlation_platforms: int = 6
    probe_timeout: float = 5.0
    probe_deadline: float = 8.0
    image_timeout: float = 10.0
    rate_limit_per_minute: int = 30
    metrics_window_seconds: int = 300
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # Load environment variables from .env file
        load_dotenv()

        provider = os.getenv("BREACH_PROVIDER", "auto").strip().lower()
        if provider not in {"auto", "hibp", "local"}:
            logger.warning(f"Unknown BREACH_PROVIDER={provider!r}, using 'auto'")
            provider = "auto"

        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            hibp_api_key=os.getenv("HIBP_API_KEY", "").strip(),
            breach_provider=provider,
            correlation_platforms=_env_int("CORRELATION_PLATFORMS", 6),
            probe_timeout=_env_float("PROBE_TIMEOUT_SECONDS", 5.0),
            probe_deadline=_env_float("PROBE_DEADLINE_SECONDS", 8.0),
            image_timeout=_env_float("IMAGE_TIMEOUT_SECONDS", 10.0),
            rate_limit_per_minute=_env_int("RATE_LIMIT_PER_MINUTE", 30),
            metrics_window_seconds=_env_int("METRICS_WINDOW_SECONDS", 300),
            cors_origins=origins or ["*"],
            host=os.getenv("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def uses_remote_breach_provider(self) -> bool:
        if self.breach_provider == "hibp":
            return True
        if self.breach_provider == "local":
            return False
        return bool(self.hibp_api_key)
