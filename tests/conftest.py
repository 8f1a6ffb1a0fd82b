from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from anomaly_pipeline.config import Config
from anomaly_pipeline.retry import BackoffSchedule

SCORING_URL = "http://scoring.test/score"


def _make_cfg(**overrides: Any) -> Config:
    base: Dict[str, Any] = dict(
        scoring_url=SCORING_URL,
        notify_url="",
        scoring_retry=BackoffSchedule(delays_s=(0.05, 0.1, 0.5, 1.0), max_attempts=4),
        notify_retry=BackoffSchedule(delays_s=(0.25, 0.5, 1.0, 2.0), max_attempts=5),
        alert_cooldown_s=3600.0,
        max_concurrency=4,
        http_timeout_s=1.0,
        db_path="",
        log_level="INFO",
    )
    base.update(overrides)
    return Config(**base)


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff tests run instantly."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def make_cfg() -> Callable[..., Config]:
    return _make_cfg


@pytest.fixture
def cfg() -> Config:
    return _make_cfg()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def telemetry() -> Callable[..., bytes]:
    """JSON message in the generator's PascalCase shape."""

    def _msg(device: str, month: int, temp: float, humidity: float, water: float, cluster: int) -> bytes:
        return json.dumps(
            {
                "DeviceId": device,
                "Month": month,
                "Temperature": temp,
                "Humidity": humidity,
                "WaterLevel": water,
                "ClusterId": cluster,
            }
        ).encode("utf-8")

    return _msg


def verdict_body(flags: List[bool], losses: List[float] = None) -> Dict[str, Any]:
    losses = losses if losses is not None else [0.1 * (i + 1) for i in range(len(flags))]
    return {"loss_mae": losses, "anomaly_std": flags}


@pytest.fixture
def scoring_http() -> Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]:
    """AsyncClient whose requests are answered by the given handler (sync or async)."""

    def _client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client


@pytest.fixture
def vector_of() -> Callable[[httpx.Request], List[float]]:
    def _vec(request: httpx.Request) -> List[float]:
        return json.loads(request.content)

    return _vec


@pytest.fixture
def verdict_json() -> Callable[..., Dict[str, Any]]:
    return verdict_body
