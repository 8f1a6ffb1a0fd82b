"""Tests for per-group aggregation"""
import math
import random

import pytest

from anomaly_pipeline.aggregator import Aggregator, aggregate
from anomaly_pipeline.models import GroupKey, TelemetryRecord


def _rec(device="D1", month=6, temp=20.0, hum=40.0, water=1.0, cluster=3):
    return TelemetryRecord(device, month, temp, hum, water, cluster)


def test_means_per_group():
    out = aggregate([
        _rec(temp=10.0, hum=30.0, water=1.0),
        _rec(temp=20.0, hum=50.0, water=3.0),
        _rec(device="D2", temp=5.0),
    ])

    d1 = out[GroupKey("D1", 3, 6)]
    assert d1.count == 2
    assert d1.mean_temperature == pytest.approx(15.0)
    assert d1.mean_humidity == pytest.approx(40.0)
    assert d1.mean_water_level == pytest.approx(2.0)
    assert out[GroupKey("D2", 3, 6)].count == 1


def test_same_device_different_cluster_or_month_is_a_different_group():
    out = aggregate([_rec(), _rec(cluster=4), _rec(month=7)])

    assert set(out) == {GroupKey("D1", 3, 6), GroupKey("D1", 4, 6), GroupKey("D1", 3, 7)}
    assert all(stats.count == 1 for stats in out.values())


def test_aggregation_is_order_independent():
    rng = random.Random(1234)
    records = [
        _rec(device=f"D{rng.randint(0, 4)}", month=rng.randint(1, 3), temp=rng.uniform(-10, 40),
             hum=rng.uniform(0, 100), water=rng.uniform(0, 5), cluster=rng.randint(0, 2))
        for _ in range(500)
    ]
    shuffled = list(records)
    rng.shuffle(shuffled)

    a = aggregate(records)
    b = aggregate(shuffled)

    assert list(a) == list(b)
    for key in a:
        assert a[key].count == b[key].count
        assert a[key].mean_temperature == pytest.approx(b[key].mean_temperature)
        assert a[key].mean_humidity == pytest.approx(b[key].mean_humidity)
        assert a[key].mean_water_level == pytest.approx(b[key].mean_water_level)


def test_results_sorted_and_no_empty_groups():
    agg = Aggregator()
    assert agg.results() == {}
    assert len(agg) == 0

    agg.add(_rec(device="B"))
    agg.add(_rec(device="A"))

    assert len(agg) == 2
    assert [k.device_id for k in agg.results()] == ["A", "B"]


def test_scoring_vector_order():
    stats = aggregate([_rec(month=6, temp=21.0, hum=41.0, water=1.5, cluster=3)])[GroupKey("D1", 3, 6)]

    assert stats.as_vector() == [3.0, 6.0, 21.0, 41.0, 1.5]


def test_huge_finite_readings_keep_a_finite_mean():
    out = aggregate([_rec(temp=1.7e308, hum=-1.7e308), _rec(temp=1.7e308, hum=1.7e308)])

    stats = out[GroupKey("D1", 3, 6)]
    assert math.isfinite(stats.mean_temperature)
    assert stats.mean_temperature == pytest.approx(1.7e308)
    assert stats.mean_humidity == pytest.approx(0.0)
