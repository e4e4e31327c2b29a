import math

import pytest

from polyarb import metrics
from polyarb.metrics import Counter, CounterVec, Gauge, Histogram, exponential_buckets


def test_exponential_buckets_match_documented_size_buckets():
    assert exponential_buckets(10, 2, 10) == [10, 20, 40, 80, 160, 320, 640, 1280, 2560, 5120]


def test_exponential_buckets_each_bound_is_factor_times_previous():
    buckets = exponential_buckets(1.5, 3, 6)
    assert len(buckets) == 6
    assert buckets[0] == 1.5
    for lower, upper in zip(buckets, buckets[1:]):
        assert upper == pytest.approx(lower * 3)


@pytest.mark.parametrize("start, factor, count", [(10, 2, 0), (0, 2, 5), (-1, 2, 5), (10, 1, 5)])
def test_exponential_buckets_rejects_bad_arguments(start, factor, count):
    with pytest.raises(ValueError):
        exponential_buckets(start, factor, count)


def test_counter_increments():
    counter = Counter("c")
    counter.inc()
    counter.inc(2.5)
    assert counter.value == 3.5


def test_counter_cannot_decrease():
    counter = Counter("c")
    with pytest.raises(ValueError):
        counter.inc(-1)
    assert counter.value == 0.0


def test_gauge_set_replaces_value():
    gauge = Gauge("g")
    gauge.set(7.25)
    gauge.set(3)
    assert gauge.value == 3.0


def test_histogram_cumulative_counts():
    hist = Histogram("h", buckets=[1, 2, 4])
    for value in (0.5, 1, 3, 10):
        hist.observe(value)
    counts = hist.bucket_counts()
    assert list(counts) == [1.0, 2.0, 4.0, math.inf]
    assert counts[1.0] == 2
    assert counts[2.0] == 2
    assert counts[4.0] == 3
    assert counts[math.inf] == hist.count == 4
    assert hist.sum == pytest.approx(0.5 + 1 + 3 + 10)


def test_histogram_cumulative_counts_never_decrease():
    hist = Histogram("h")
    for value in (0.001, 0.3, 0.3, 7, 100):
        hist.observe(value)
    counts = list(hist.bucket_counts().values())
    assert counts == sorted(counts)
    assert counts[-1] == 5


def test_histogram_rejects_unsorted_buckets():
    with pytest.raises(ValueError):
        Histogram("h", buckets=[2, 1])


def test_counter_vec_returns_same_child_for_same_labels():
    vec = CounterVec("v", "help", ["reason"])
    vec.labels("invalid_price").inc()
    vec.labels("invalid_price").inc()
    vec.labels("invalid_size").inc()
    assert vec.labels("invalid_price").value == 2.0
    assert vec.labels("invalid_size").value == 1.0


def test_counter_vec_rejects_wrong_label_count():
    vec = CounterVec("v", "help", ["reason"])
    with pytest.raises(ValueError):
        vec.labels()
    with pytest.raises(ValueError):
        vec.labels("a", "b")


def test_detected_counter_name_and_increment():
    assert metrics.OPPORTUNITIES_DETECTED_TOTAL.name == "polymarket_arb_opportunities_detected_total"
    counter = Counter(metrics.OPPORTUNITIES_DETECTED_TOTAL.name)
    counter.inc()
    assert counter.value == 1.0
    counter.inc()
    assert counter.value == 2.0


def test_module_size_histogram_uses_exponential_buckets_and_records():
    hist = metrics.OPPORTUNITY_SIZE_USD
    before = hist.bucket_counts()
    assert list(before) == [10.0, 20.0, 40.0, 80.0, 160.0, 320.0, 640.0, 1280.0, 2560.0, 5120.0, math.inf]
    hist.observe(100.0)
    after = hist.bucket_counts()
    assert after[80.0] == before[80.0]
    assert after[160.0] == before[160.0] + 1
    assert after[math.inf] == before[math.inf] + 1


def test_module_detection_duration_histogram_uses_default_buckets():
    counts = metrics.DETECTION_DURATION_SECONDS.bucket_counts()
    assert list(counts) == [*metrics.DEF_BUCKETS, math.inf]


def test_circuit_breaker_gauge_name_and_state():
    assert metrics.CIRCUIT_BREAKER_ENABLED.name == "polymarket_circuit_breaker_enabled"
    gauge = Gauge(metrics.CIRCUIT_BREAKER_ENABLED.name)
    gauge.set(0)
    assert gauge.value == 0.0
    gauge.set(1)
    assert gauge.value == 1.0