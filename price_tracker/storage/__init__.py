"""Data storage and persistence layer"""

from .models import (
    PriceHistoryEntry,
    PricePoint,
    ProductRecord,
    ScrapedProduct,
    Subscriber,
    SubscriberEntry,
    TrackedProduct,
)
from .database import Database

__all__ = [
    "PriceHistoryEntry",
    "PricePoint",
    "ProductRecord",
    "ScrapedProduct",
    "Subscriber",
    "SubscriberEntry",
    "TrackedProduct",
    "Database",
]
