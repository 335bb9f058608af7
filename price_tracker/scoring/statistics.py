"""Price history statistics.

Aggregates are always recomputed from the complete history. The average is
accumulated with ``math.fsum`` and rounded to cents (2 decimal places);
lowest and highest are returned exactly as observed.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Union

from ..storage.models import PricePoint

AVERAGE_PRECISION = 2

HistoryItem = Union[PricePoint, float, int]


@dataclass(frozen=True)
class PriceStats:
    """Aggregates over a price history."""

    lowest: float
    highest: float
    average: float


def _prices(history: Iterable[HistoryItem]) -> List[float]:
    prices = [
        float(item.price) if isinstance(item, PricePoint) else float(item)
        for item in history
    ]
    if not prices:
        raise ValueError("Price history is empty")
    return prices


def get_lowest_price(history: Iterable[HistoryItem]) -> float:
    return min(_prices(history))


def get_highest_price(history: Iterable[HistoryItem]) -> float:
    return max(_prices(history))


def get_average_price(history: Iterable[HistoryItem]) -> float:
    return _average(_prices(history))


def _average(prices: List[float]) -> float:
    average = round(math.fsum(prices) / len(prices), AVERAGE_PRECISION)
    # Rounding must not push the mean outside the observed range
    return min(max(average, min(prices)), max(prices))


def calculate_price_stats(history: Iterable[HistoryItem]) -> PriceStats:
    """Compute lowest, highest and average price of a history.

    Args:
        history: Full ordered history, new observation already appended

    Returns:
        PriceStats for the history

    Raises:
        ValueError: If the history is empty
    """
    prices = _prices(history)
    return PriceStats(
        lowest=min(prices),
        highest=max(prices),
        average=_average(prices),
    )
