from __future__ import annotations

import logging
from typing import Optional

import httpx

from .alerts import AlertDecider
from .config import Config
from .coordinator import BatchCoordinator
from .metrics import Metrics
from .scoring import ScoringClient
from .sinks import AlertSink, build_sink
from .store import SuppressionStore, build_store

logger = logging.getLogger(__name__)


class Pipeline:
    """
    Composition root: owns the scoring client, the alert sink and the
    suppression store, and wires them into a BatchCoordinator.

    Collaborators can be passed in (tests, embedding); anything not passed is
    built from the config and closed by close().
    """

    def __init__(
        self,
        cfg: Config,
        scoring_http: Optional[httpx.AsyncClient] = None,
        store: Optional[SuppressionStore] = None,
        sink: Optional[AlertSink] = None,
    ):
        self.cfg = cfg
        self.metrics = Metrics()
        if scoring_http is not None:
            self.scorer = ScoringClient(scoring_http, cfg.scoring_url, cfg.scoring_retry, metrics=self.metrics)
        else:
            self.scorer = ScoringClient.from_config(cfg, metrics=self.metrics)
        self.store = store if store is not None else build_store(cfg.db_path)
        self.sink = sink if sink is not None else build_sink(cfg)
        self.decider = AlertDecider(self.store, self.sink, cfg.alert_cooldown_s, metrics=self.metrics)
        self.coordinator = BatchCoordinator(self.scorer, self.decider, cfg.max_concurrency, metrics=self.metrics)

    async def open(self) -> None:
        await self.store.open()
        logger.info(
            "pipeline ready: scoring=%s relay=%s store=%s cooldown=%.0fs concurrency=%d",
            self.cfg.scoring_url,
            self.cfg.notify_url or "-",
            self.cfg.db_path or "memory",
            self.cfg.alert_cooldown_s,
            self.cfg.max_concurrency,
        )

    async def close(self) -> None:
        await self.scorer.aclose()
        await self.sink.aclose()
        await self.store.close()

    async def __aenter__(self) -> "Pipeline":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
