import random

import pytest

from lidview.psquare import PSquare


def test_estimate_is_zero_before_five_values():
    estimator = PSquare(0.5)
    for value in (7.0, 3.0, 9.0):
        estimator.add(value)
    assert estimator.quantile() == 0.0
    assert estimator.count == 3


def test_five_values_give_middle_of_sorted_values():
    estimator = PSquare(0.5)
    for value in (5, 1, 4, 2, 3):
        estimator.add(value)
    assert estimator.quantile() == 3


def test_median_of_uniform_stream():
    rng = random.Random(42)
    estimator = PSquare(0.5)
    for _ in range(20000):
        estimator.add(rng.random())
    assert 0.45 < estimator.quantile() < 0.55


def test_high_quantile_above_median():
    rng = random.Random(7)
    data = [rng.random() for _ in range(20000)]
    median = PSquare(0.5)
    high = PSquare(0.99)
    for value in data:
        median.add(value)
        high.add(value)
    assert high.quantile() > median.quantile()
    assert high.quantile() > 0.9


@pytest.mark.parametrize("q", [0.1, 0.5, 0.9, 0.99])
def test_estimate_stays_within_data_range(q):
    rng = random.Random(123)
    data = [rng.gauss(100.0, 15.0) for _ in range(5000)]
    estimator = PSquare(q)
    for value in data:
        estimator.add(value)
    assert min(data) <= estimator.quantile() <= max(data)
    assert estimator.count == len(data)


def test_constant_stream_estimates_constant():
    estimator = PSquare(0.99)
    for _ in range(1000):
        estimator.add(4.25)
    assert estimator.quantile() == 4.25