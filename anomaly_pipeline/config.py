from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple

from .retry import BackoffSchedule


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v == "" else v


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_list(name: str, default_csv: str = "") -> List[str]:
    raw = _env_str(name, default_csv)
    items = []
    for x in raw.split(","):
        x = x.strip()
        if x:
            items.append(x)
    return items


def _env_backoff_ms(name: str, default_csv: str) -> Tuple[float, ...]:
    """Comma-separated milliseconds -> seconds. Any unparsable entry falls back to the default."""
    try:
        delays = tuple(float(x) / 1000.0 for x in _env_list(name, default_csv))
    except ValueError:
        delays = ()
    if not delays or any(d < 0 for d in delays):
        delays = tuple(float(x) / 1000.0 for x in default_csv.split(","))
    return delays


@dataclass(frozen=True)
class Config:
    # downstream endpoints
    scoring_url: str
    notify_url: str  # empty -> relay disabled

    # retry policies
    scoring_retry: BackoffSchedule
    notify_retry: BackoffSchedule

    # alerting
    alert_cooldown_s: float

    # batch processing
    max_concurrency: int
    http_timeout_s: float

    # storage / logs
    db_path: str  # empty -> in-memory suppression store
    log_level: str

    @property
    def relay_enabled(self) -> bool:
        return bool(self.notify_url)


def load_config() -> Config:
    return Config(
        scoring_url=_env_str("SCORING_URL", "http://127.0.0.1:5001/score"),
        notify_url=_env_str("NOTIFY_URL", ""),
        scoring_retry=BackoffSchedule(
            delays_s=_env_backoff_ms("SCORING_BACKOFF_MS", "50,100,500,1000"),
            max_attempts=max(1, _env_int("SCORING_MAX_ATTEMPTS", 4)),
        ),
        notify_retry=BackoffSchedule(
            delays_s=_env_backoff_ms("NOTIFY_BACKOFF_MS", "250,500,1000,2000"),
            max_attempts=max(1, _env_int("NOTIFY_MAX_ATTEMPTS", 5)),
        ),
        alert_cooldown_s=max(0.0, _env_float("ALERT_COOLDOWN_SECONDS", 3600.0)),
        max_concurrency=max(1, _env_int("MAX_CONCURRENCY", 8)),
        http_timeout_s=_env_float("HTTP_TIMEOUT", 10.0),
        db_path=_env_str("DB_PATH", ""),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )
