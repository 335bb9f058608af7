"""Classification of product changes into notification kinds."""

from enum import Enum
from typing import Optional

from ..storage.models import ProductRecord, ScrapedProduct
from .statistics import get_lowest_price

DEFAULT_DISCOUNT_THRESHOLD = 40.0


class NotificationType(str, Enum):
    NONE = "none"
    WELCOME = "welcome"  # sent on subscription, never by the classifier
    PRICE_DROP = "price_drop"
    LOWEST_EVER = "lowest_ever"
    BACK_IN_STOCK = "back_in_stock"
    THRESHOLD_MET = "threshold_met"


class NotificationClassifier:
    """Decide which notification, if any, a fresh observation warrants.

    Precedence when several conditions hold:
    LOWEST_EVER > BACK_IN_STOCK > THRESHOLD_MET > PRICE_DROP.

    Output depends only on the stored record and the new observation.
    """

    def __init__(self, discount_threshold: float = DEFAULT_DISCOUNT_THRESHOLD):
        """Initialize classifier.

        Args:
            discount_threshold: Discount percentage that triggers THRESHOLD_MET
        """
        self.discount_threshold = discount_threshold

    def classify(self, previous: ProductRecord, current: ScrapedProduct) -> NotificationType:
        """Classify the change from ``previous`` to ``current``.

        Args:
            previous: Stored record before this run's update
            current: Freshly extracted product state

        Returns:
            Notification kind, NONE if nothing subscriber-relevant changed
        """
        previous_price = previous.last_price
        new_price = current.current_price

        dropped = previous_price is not None and new_price < previous_price

        if dropped and self._is_lowest_ever(previous, new_price):
            return NotificationType.LOWEST_EVER

        if previous.is_out_of_stock and not current.is_out_of_stock:
            return NotificationType.BACK_IN_STOCK

        if self._target_reached(previous, previous_price, new_price):
            return NotificationType.THRESHOLD_MET

        if self._discount_crossed(previous.discount_rate, current.discount_rate):
            return NotificationType.THRESHOLD_MET

        if dropped:
            return NotificationType.PRICE_DROP

        return NotificationType.NONE

    @staticmethod
    def _is_lowest_ever(previous: ProductRecord, new_price: float) -> bool:
        if previous.price_history:
            lowest = get_lowest_price(previous.price_history)
        else:
            lowest = previous.lowest_price

        return lowest is not None and new_price <= lowest

    @staticmethod
    def _target_reached(
        previous: ProductRecord, previous_price: Optional[float], new_price: float
    ) -> bool:
        """True if the price crossed any subscriber's target on this run."""
        for user in previous.users:
            if user.target_price is None:
                continue
            was_above = previous_price is None or previous_price > user.target_price
            if was_above and new_price <= user.target_price:
                return True
        return False

    def _discount_crossed(
        self, previous_rate: Optional[float], current_rate: Optional[float]
    ) -> bool:
        if current_rate is None or current_rate < self.discount_threshold:
            return False
        return previous_rate is None or previous_rate < self.discount_threshold


def classify_notification(
    previous: ProductRecord,
    current: ScrapedProduct,
    discount_threshold: float = DEFAULT_DISCOUNT_THRESHOLD,
) -> NotificationType:
    """Classify with a one-off classifier."""
    return NotificationClassifier(discount_threshold).classify(previous, current)
