import pytest

from price_tracker.scoring import (
    calculate_price_stats,
    get_average_price,
    get_highest_price,
    get_lowest_price,
)
from price_tracker.storage.models import PricePoint


def test_single_observation_is_lowest_highest_and_average():
    stats = calculate_price_stats([42.5])

    assert stats.lowest == 42.5
    assert stats.highest == 42.5
    assert stats.average == 42.5


def test_stats_after_appending_observation():
    stats = calculate_price_stats([100, 90, 95])

    assert stats.lowest == 90
    assert stats.highest == 100
    assert stats.average == 95


def test_accepts_price_points():
    history = [PricePoint(price=10.0), PricePoint(price=30.0)]

    assert get_lowest_price(history) == 10.0
    assert get_highest_price(history) == 30.0
    assert get_average_price(history) == 20.0


@pytest.mark.parametrize(
    "history",
    [
        [19.99],
        [5, 5, 5, 5],
        [100, 1, 50, 75.25, 3.33],
        [0.005, 0.005],
        [1e12, 1e12 + 0.01, 1e12 + 0.02],
        [9.99] * 1000 + [0.01],
    ],
)
def test_average_lies_between_lowest_and_highest(history):
    stats = calculate_price_stats(history)

    assert stats.lowest <= stats.average <= stats.highest
    assert stats.lowest == min(history)
    assert stats.highest == max(history)


def test_average_is_rounded_to_cents():
    assert get_average_price([10, 10, 10.01]) == 10.0
    assert get_average_price([1, 2]) == 1.5
    assert get_average_price([0.1, 0.2]) == 0.15


def test_empty_history_is_rejected():
    with pytest.raises(ValueError):
        calculate_price_stats([])
