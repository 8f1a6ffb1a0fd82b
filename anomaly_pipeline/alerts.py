from __future__ import annotations

import asyncio
import functools
import logging
from typing import Optional

from .errors import PipelineError
from .metrics import Metrics
from .models import AlertAction, AlertEvent, AlertSuppressionRecord, GroupKey, ScoringVerdict
from .sinks import AlertSink
from .store import SuppressionStore

logger = logging.getLogger(__name__)


def _report_detached(event: AlertEvent, commit: "asyncio.Future[None]") -> None:
    """Surface the result of a commit whose caller was cancelled; nobody else awaits it."""
    if commit.cancelled():
        return
    e = commit.exception()
    if e is None:
        return
    kind = e.kind.value if isinstance(e, PipelineError) else type(e).__name__
    logger.warning("alert commit for device %s failed after cancellation: %s: %s", event.device_id, kind, e)


class AlertDecider:
    """
    Turns a verdict into an alert, at most once per device per cooldown window.

    No lock is taken: two concurrent decisions for the same device may both see
    no record and both raise. A duplicate alert is acceptable, a missed one is not.
    """

    def __init__(
        self,
        store: SuppressionStore,
        sink: AlertSink,
        cooldown_s: float,
        metrics: Optional[Metrics] = None,
    ):
        self.store = store
        self.sink = sink
        self.cooldown_s = float(cooldown_s)
        self.metrics = metrics if metrics is not None else Metrics()

    def in_cooldown(self, record: Optional[AlertSuppressionRecord], now: float) -> bool:
        return record is not None and (now - record.last_alerted_at) < self.cooldown_s

    async def decide(self, key: GroupKey, verdict: ScoringVerdict, now: float) -> AlertAction:
        if not verdict.is_anomaly:
            return AlertAction.NONE

        record = await self.store.get(key.device_id)
        if self.in_cooldown(record, now):
            logger.info(
                "alert for %s suppressed: last alerted %.0fs ago (cooldown %.0fs)",
                key, now - record.last_alerted_at, self.cooldown_s,
            )
            return AlertAction.NONE

        event = AlertEvent(
            device_id=key.device_id,
            cluster_id=key.cluster_id,
            month=key.time_bucket,
            loss_mae=verdict.loss_mae,
            max_loss=verdict.max_loss,
            raised_at=now,
        )
        # emit + write run to completion even if the batch is cancelled meanwhile
        commit = asyncio.ensure_future(self._raise(event, now))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            commit.add_done_callback(functools.partial(_report_detached, event))
            raise
        return AlertAction.RAISE

    async def _raise(self, event: AlertEvent, now: float) -> None:
        # emit before write: a failed emit leaves no record, so the next batch retries it.
        # A failed write comes after emit and count, so the alert is out and counted
        # while the group still reports StoreError and is not in alerts_raised.
        await self.sink.emit(event)
        self.metrics.incr_anomaly(event.cluster_id)
        await self.store.put(AlertSuppressionRecord(event.device_id, now))
