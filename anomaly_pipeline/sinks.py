from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx

from .config import Config
from .errors import NotificationError
from .models import AlertEvent
from .retry import BackoffSchedule, retry_async

logger = logging.getLogger(__name__)


class AlertSink:
    async def emit(self, event: AlertEvent) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class LoggingAlertSink(AlertSink):
    async def emit(self, event: AlertEvent) -> None:
        logger.warning(
            "Anomaly detected within the following device: '%s' (cluster=%s month=%s max_loss=%.4f)",
            event.device_id, event.cluster_id, event.month, event.max_loss,
        )


class CollectingAlertSink(AlertSink):
    def __init__(self) -> None:
        self.events: List[AlertEvent] = []

    async def emit(self, event: AlertEvent) -> None:
        self.events.append(event)


class FanOutAlertSink(AlertSink):
    """Emits to every sink in order; the first failure propagates."""

    def __init__(self, sinks: Sequence[AlertSink]):
        self.sinks = list(sinks)

    async def emit(self, event: AlertEvent) -> None:
        for s in self.sinks:
            await s.emit(event)

    async def aclose(self) -> None:
        for s in self.sinks:
            await s.aclose()


class _RelayRetryable(Exception):
    pass


class RelayAlertSink(AlertSink):
    """
    Forwards alert events to a notification relay (e.g. a mail/chat workflow).
    Uses its own, gentler backoff schedule than the scoring client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        schedule: BackoffSchedule,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.url = url
        self.schedule = schedule
        self._sleep = sleep
        self._owns_client = False

    @classmethod
    def from_config(cls, cfg: Config) -> "RelayAlertSink":
        client = httpx.AsyncClient(timeout=cfg.http_timeout_s, headers={"Accept": "application/json"})
        sink = cls(client, cfg.notify_url, cfg.notify_retry)
        sink._owns_client = True
        return sink

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _post_once(self, event: AlertEvent) -> None:
        try:
            resp = await self.client.post(self.url, json=event.to_dict())
        except httpx.TransportError as e:
            raise _RelayRetryable(repr(e)) from e
        if resp.status_code >= 500 or resp.status_code == 429:
            raise _RelayRetryable(f"HTTP {resp.status_code}")
        if resp.status_code >= 300:
            raise NotificationError(f"relay rejected alert for {event.device_id}: HTTP {resp.status_code}")

    async def emit(self, event: AlertEvent) -> None:
        try:
            await retry_async(
                lambda: self._post_once(event),
                self.schedule,
                retry_on=lambda e: isinstance(e, _RelayRetryable),
                sleep=self._sleep,
                label=f"relay alert {event.device_id}",
            )
        except _RelayRetryable as e:
            raise NotificationError(
                f"relay unavailable after {self.schedule.max_attempts} attempts for {event.device_id}: {e}"
            ) from e


def build_sink(cfg: Config, extra: Optional[Sequence[AlertSink]] = None) -> AlertSink:
    sinks: List[AlertSink] = [LoggingAlertSink()]
    if cfg.relay_enabled:
        sinks.append(RelayAlertSink.from_config(cfg))
    sinks.extend(extra or [])
    return FanOutAlertSink(sinks)
