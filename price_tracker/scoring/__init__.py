"""Price statistics and notification classification"""

from .statistics import (
    PriceStats,
    calculate_price_stats,
    get_average_price,
    get_highest_price,
    get_lowest_price,
)
from .notification import NotificationClassifier, NotificationType, classify_notification

__all__ = [
    "PriceStats",
    "calculate_price_stats",
    "get_average_price",
    "get_highest_price",
    "get_lowest_price",
    "NotificationClassifier",
    "NotificationType",
    "classify_notification",
]
