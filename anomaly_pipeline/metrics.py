from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class EWMA:
    alpha: float = 0.2
    value_ms: float = 0.0
    initialized: bool = False

    def update(self, sample_ms: float) -> float:
        if sample_ms < 0:
            sample_ms = 0.0
        if not self.initialized:
            self.value_ms = sample_ms
            self.initialized = True
        else:
            self.value_ms = self.alpha * sample_ms + (1.0 - self.alpha) * self.value_ms
        return self.value_ms


@dataclass
class Metrics:
    """
    Process-local counters. Mutated only from the event loop thread, so no lock.
    Anomaly counts are kept per cluster and exported as Anomalies{clusterId}.
    """

    started_ts: float = field(default_factory=time.time)
    anomalies: Counter = field(default_factory=Counter)
    batches: Counter = field(default_factory=Counter)
    ewma: Dict[str, EWMA] = field(default_factory=lambda: {
        "scoring": EWMA(),
        "batch": EWMA(),
    })

    def incr_anomaly(self, cluster_id: int) -> None:
        self.anomalies[int(cluster_id)] += 1

    def anomaly_count(self, cluster_id: int) -> int:
        return int(self.anomalies.get(int(cluster_id), 0))

    def observe(self, name: str, duration_ms: float) -> None:
        self.ewma.setdefault(name, EWMA()).update(duration_ms)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "started_ts": self.started_ts,
            "anomalies": {f"Anomalies{{{cid}}}": n for cid, n in sorted(self.anomalies.items())},
            "batches": dict(self.batches),
            "avg_ms": {k: float(v.value_ms) for k, v in self.ewma.items()},
        }
