from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable

from .models import AggregateStats, GroupKey, TelemetryRecord


def _step(mean: float, x: float, n: int) -> float:
    # both terms are scaled by 1/n first so finite inputs never overflow
    return mean + (x / n - mean / n)


@dataclass
class RunningMean:
    count: int = 0
    temperature: float = 0.0
    humidity: float = 0.0
    water_level: float = 0.0

    def add(self, r: TelemetryRecord) -> None:
        self.count += 1
        n = self.count
        self.temperature = _step(self.temperature, r.temperature, n)
        self.humidity = _step(self.humidity, r.humidity, n)
        self.water_level = _step(self.water_level, r.water_level, n)

    def finalize(self, key: GroupKey) -> AggregateStats:
        return AggregateStats(
            key=key,
            count=self.count,
            mean_temperature=self.temperature,
            mean_humidity=self.humidity,
            mean_water_level=self.water_level,
        )


class Aggregator:
    """
    Single-pass grouping by (device, cluster, time bucket).
    A key exists only once a record contributed to it, so count is never 0.
    """

    def __init__(self) -> None:
        self._means: Dict[GroupKey, RunningMean] = {}

    def add(self, record: TelemetryRecord) -> None:
        key = record.key
        acc = self._means.get(key)
        if acc is None:
            acc = self._means[key] = RunningMean()
        acc.add(record)

    def __len__(self) -> int:
        return len(self._means)

    def results(self) -> Dict[GroupKey, AggregateStats]:
        return {k: self._means[k].finalize(k) for k in sorted(self._means)}


def aggregate(records: Iterable[TelemetryRecord]) -> Dict[GroupKey, AggregateStats]:
    agg = Aggregator()
    for r in records:
        agg.add(r)
    return agg.results()
