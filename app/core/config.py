from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    stripe_secret_key: str | None = None
    stripe_api_base: str = "https://api.stripe.com"
    payment_webhook_secret: str | None = None
    payment_webhook_tolerance_seconds: int = 300

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _parse_int("PORT", port_raw)
    tolerance = _parse_int(
        "PAYMENT_WEBHOOK_TOLERANCE_SECONDS",
        _getenv("PAYMENT_WEBHOOK_TOLERANCE_SECONDS", "300"),
    )
    if tolerance <= 0:
        raise ValueError(
            f"PAYMENT_WEBHOOK_TOLERANCE_SECONDS must be positive (got {tolerance})"
        )

    stripe_api_base = _getenv("STRIPE_API_BASE", "https://api.stripe.com").rstrip("/")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        stripe_secret_key=_getenv("STRIPE_SECRET_KEY", "") or None,
        stripe_api_base=stripe_api_base,
        payment_webhook_secret=_getenv("PAYMENT_WEBHOOK_SECRET", "") or None,
        payment_webhook_tolerance_seconds=tolerance,
    )


SETTINGS = load_settings()
