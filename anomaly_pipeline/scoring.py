from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from .config import Config
from .errors import ScoringError
from .metrics import Metrics
from .models import AggregateStats, ScoringResponse, ScoringVerdict
from .retry import BackoffSchedule, retry_async

logger = logging.getLogger(__name__)


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _is_transient(e: Exception) -> bool:
    return isinstance(e, ScoringError) and e.transient


class ScoringClient:
    """
    Posts one aggregate to the scoring endpoint and parses the verdict.

    The httpx client is injected by whoever composes the pipeline; use
    from_config() to get a client that owns its own connection pool.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        schedule: BackoffSchedule,
        metrics: Optional[Metrics] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.url = url
        self.schedule = schedule
        self.metrics = metrics
        self._sleep = sleep
        self._owns_client = False

    @classmethod
    def from_config(cls, cfg: Config, metrics: Optional[Metrics] = None) -> "ScoringClient":
        client = httpx.AsyncClient(timeout=cfg.http_timeout_s, headers={"Accept": "application/json"})
        sc = cls(client, cfg.scoring_url, cfg.scoring_retry, metrics=metrics)
        sc._owns_client = True
        return sc

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def score(self, aggregate: AggregateStats) -> ScoringVerdict:
        return await retry_async(
            lambda: self._post_once(aggregate),
            self.schedule,
            retry_on=_is_transient,
            sleep=self._sleep,
            label=f"scoring {aggregate.key}",
        )

    async def _post_once(self, aggregate: AggregateStats) -> ScoringVerdict:
        t0 = time.perf_counter()
        try:
            resp = await self.client.post(self.url, json=aggregate.as_vector())
        except httpx.TimeoutException as e:
            raise ScoringError(f"scoring request timed out: {e!r}", transient=True) from e
        except httpx.TransportError as e:
            raise ScoringError(f"scoring endpoint unreachable: {e!r}", transient=True) from e
        finally:
            if self.metrics is not None:
                self.metrics.observe("scoring", (time.perf_counter() - t0) * 1000.0)

        if resp.status_code >= 300:
            raise ScoringError(
                f"scoring endpoint returned HTTP {resp.status_code}",
                transient=is_transient_status(resp.status_code),
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise ScoringError(f"scoring response is not JSON: {e}", transient=False) from e

        try:
            parsed = ScoringResponse.model_validate(body)
        except ValidationError as e:
            raise ScoringError(f"scoring response has unexpected shape: {e.error_count()} error(s)", transient=False) from e

        verdict = parsed.to_verdict()  # ProtocolError on length mismatch
        logger.debug("scored %s: anomaly=%s max_loss=%.4f", aggregate.key, verdict.is_anomaly, verdict.max_loss)
        return verdict
