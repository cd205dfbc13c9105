from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _load_env() -> None:
    # Centralized dotenv loading; safe if .env missing
    load_dotenv()


def _as_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Core/runtime
    db_path: str
    run_env: str
    log_level: str

    # Release fan-out
    release_concurrency: int
    share_api_url: str | None
    share_api_token: str | None
    http_timeout_seconds: int

    # Deceased confirmation
    default_verification_method: str = "contact_verification"

    # Reconciliation
    reconcile_batch_size: int = 500

    # Logging/tracing
    share_trace: bool = False
    share_log_path: str = "logs/share_calls.jsonl"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_env()
    run_env = os.getenv("RUN_ENV", "local")
    share_api_url = os.getenv("SHARE_API_URL")
    share_api_token = os.getenv("SHARE_API_TOKEN")

    if share_api_url and not share_api_token and run_env.lower() == "production":
        raise RuntimeError("SHARE_API_TOKEN required when SHARE_API_URL is set and RUN_ENV=production")
    return Settings(
        db_path=os.getenv("DB_PATH", "legacy.db"),
        run_env=run_env,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        release_concurrency=max(1, int(os.getenv("RELEASE_CONCURRENCY", "4"))),
        share_api_url=share_api_url,
        share_api_token=share_api_token,
        http_timeout_seconds=int(os.getenv("HTTP_TIMEOUT_SECONDS", "20")),
        default_verification_method=os.getenv("DEFAULT_VERIFICATION_METHOD", "contact_verification"),
        reconcile_batch_size=int(os.getenv("RECONCILE_BATCH_SIZE", "500")),
        share_trace=_as_flag(os.getenv("SHARE_TRACE")),
        share_log_path=os.getenv("SHARE_LOG_PATH", "logs/share_calls.jsonl"),
    )
