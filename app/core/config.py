from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
CompletionPolicyName = Literal["reversible", "monotonic"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    completion_policy: CompletionPolicyName = "reversible"
    submit_timeout_seconds: float = 3.0
    idempotency_window_seconds: int = 600
    activity_timezone: str = "UTC"
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def activity_zone(self) -> ZoneInfo:
        return ZoneInfo(self.activity_timezone)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()
    port_raw = _getenv("PORT", "8000")
    policy_raw = _getenv("COMPLETION_POLICY", "reversible").lower()
    timeout_raw = _getenv("SUBMIT_TIMEOUT_SECONDS", "3.0")
    window_raw = _getenv("IDEMPOTENCY_WINDOW_SECONDS", "600")
    tz_raw = _getenv("ACTIVITY_TIMEZONE", "UTC")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if policy_raw not in ("reversible", "monotonic"):
        raise ValueError(
            f"COMPLETION_POLICY must be reversible|monotonic (got {policy_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        submit_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"SUBMIT_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if submit_timeout <= 0:
        raise ValueError(
            f"SUBMIT_TIMEOUT_SECONDS must be positive (got {timeout_raw!r})"
        )

    try:
        idempotency_window = int(window_raw)
    except ValueError:
        raise ValueError(
            f"IDEMPOTENCY_WINDOW_SECONDS must be an integer (got {window_raw!r})"
        ) from None
    if idempotency_window < 0:
        raise ValueError(
            f"IDEMPOTENCY_WINDOW_SECONDS must be >= 0 (got {window_raw!r})"
        )

    try:
        ZoneInfo(tz_raw)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"ACTIVITY_TIMEZONE must be an IANA zone name (got {tz_raw!r})"
        ) from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None
    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("1", "true", "yes"),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        completion_policy=policy_raw,
        submit_timeout_seconds=submit_timeout,
        idempotency_window_seconds=idempotency_window,
        activity_timezone=tz_raw,
        jwt_public_key=jwt_public_key,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
