from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence, Union

from .aggregator import Aggregator
from .alerts import AlertDecider
from .decoder import RawMessage, decode, split_envelope
from .errors import BatchEnvelopeError, DecodeError, ErrorKind, PipelineError
from .metrics import Metrics
from .models import AggregateStats, AlertAction, BatchOutcome, GroupFailure
from .scoring import ScoringClient

logger = logging.getLogger(__name__)

GroupResult = Union[AlertAction, GroupFailure]


class BatchCoordinator:
    """
    decode -> aggregate -> (score -> decide) per group.

    Failures are collected, never raised: one bad device must not stop alerting
    for the other devices in the same batch. Only an unusable batch envelope
    raises (BatchEnvelopeError), and it does so before any group is attempted.
    """

    def __init__(
        self,
        scorer: ScoringClient,
        decider: AlertDecider,
        max_concurrency: int = 8,
        metrics: Optional[Metrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.scorer = scorer
        self.decider = decider
        self.max_concurrency = max(1, int(max_concurrency))
        self.metrics = metrics if metrics is not None else decider.metrics
        self.clock = clock

    async def process_body(self, body: Union[bytes, str], now: Optional[float] = None) -> BatchOutcome:
        return await self.process_batch(split_envelope(body), now=now)

    async def process_batch(self, raw_messages: Sequence[RawMessage], now: Optional[float] = None) -> BatchOutcome:
        if not isinstance(raw_messages, (list, tuple)):
            raise BatchEnvelopeError(f"batch must be a list of messages, got {type(raw_messages).__name__}")
        for i, m in enumerate(raw_messages):
            if not isinstance(m, (bytes, bytearray, str)):
                raise BatchEnvelopeError(f"message {i} is {type(m).__name__}, expected bytes or str")

        t0 = time.perf_counter()
        now = self.clock() if now is None else float(now)
        outcome = BatchOutcome()

        agg = Aggregator()
        for item in decode(raw_messages):
            if isinstance(item, DecodeError):
                logger.info("skipping malformed message %d: %s", item.index, item.reason)
                outcome.failures.append(GroupFailure(None, item.kind, item.reason, index=item.index))
            else:
                agg.add(item)
                outcome.decoded_records += 1

        groups = list(agg.results().values())
        outcome.total_groups = len(groups)

        sem = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(*(self._run_group(sem, stats, now) for stats in groups))

        for res in results:
            if isinstance(res, GroupFailure):
                outcome.failures.append(res)
            else:
                outcome.succeeded_groups += 1
                if res is AlertAction.RAISE:
                    outcome.alerts_raised += 1

        self._record(outcome, (time.perf_counter() - t0) * 1000.0)
        return outcome

    async def _run_group(self, sem: asyncio.Semaphore, stats: AggregateStats, now: float) -> GroupResult:
        async with sem:
            try:
                verdict = await self.scorer.score(stats)
                return await self.decider.decide(stats.key, verdict, now)
            except PipelineError as e:
                logger.warning("group %s failed: %s: %s", stats.key, e.kind.value, e)
                return GroupFailure(stats.key, e.kind, str(e))
            except Exception as e:
                logger.exception("group %s failed unexpectedly", stats.key)
                return GroupFailure(stats.key, ErrorKind.UNEXPECTED, repr(e))

    def _record(self, outcome: BatchOutcome, duration_ms: float) -> None:
        self.metrics.observe("batch", duration_ms)
        self.metrics.batches["processed"] += 1
        if not outcome.ok:
            self.metrics.batches["with_failures"] += 1

        level = logging.INFO if outcome.ok else logging.WARNING
        logger.log(
            level,
            "batch done in %.1fms: records=%d groups=%d succeeded=%d failures=%d (decode=%d) alerts=%d",
            duration_ms,
            outcome.decoded_records,
            outcome.total_groups,
            outcome.succeeded_groups,
            len(outcome.failures),
            len(outcome.decode_failures),
            outcome.alerts_raised,
        )
