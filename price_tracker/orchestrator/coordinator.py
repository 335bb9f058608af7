"""Batch price refresh for all tracked products."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from loguru import logger

from ..agents.amazon_product import AmazonProductAgent
from ..agents.base_agent import BaseAgent
from ..alerts.email import EmailNotifier, ProductInfo
from ..scoring.notification import (
    DEFAULT_DISCOUNT_THRESHOLD,
    NotificationClassifier,
    NotificationType,
)
from ..scoring.statistics import calculate_price_stats
from ..storage.database import Database
from ..storage.models import PricePoint, ProductRecord, ScrapedProduct
from ..utils.config import Config, Settings

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 10


class RefreshError(Exception):
    """The refresh run as a whole failed."""


class ProductStatus(str, Enum):
    PENDING = "pending"
    EXTRACTED = "extracted"
    PERSISTED = "persisted"
    CLASSIFIED = "classified"
    NOTIFIED = "notified"
    SKIPPED_NOTIFY = "skipped_notify"
    EXTRACT_FAILED = "extract_failed"
    PERSIST_FAILED = "persist_failed"
    NOTIFY_FAILED = "notify_failed"
    UNEXPECTED_ERROR = "unexpected_error"

    @property
    def failed(self) -> bool:
        return self in FAILED_STATUSES


FAILED_STATUSES = frozenset(
    {
        ProductStatus.EXTRACT_FAILED,
        ProductStatus.PERSIST_FAILED,
        ProductStatus.NOTIFY_FAILED,
        ProductStatus.UNEXPECTED_ERROR,
    }
)


@dataclass
class ProductOutcome:
    """Where a single product ended up in this run."""

    url: str
    status: ProductStatus = ProductStatus.PENDING
    notification: NotificationType = NotificationType.NONE
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Result of one refresh run."""

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    outcomes: List[ProductOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status.failed)

    @property
    def succeeded(self) -> int:
        return self.processed - self.failed

    @property
    def notifications_sent(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ProductStatus.NOTIFIED)

    @property
    def statuses(self) -> Dict[str, ProductStatus]:
        """Final status of each product keyed by URL."""
        return {o.url: o.status for o in self.outcomes}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "notifications_sent": self.notifications_sent,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcomes": {
                o.url: {
                    "status": o.status.value,
                    "notification": o.notification.value,
                    "error": o.error,
                }
                for o in self.outcomes
            },
        }


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive groups of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class RefreshCoordinator:
    """Refreshes prices of all tracked products and notifies subscribers.

    Products are processed in groups of ``chunk_size``. Groups run one after
    another; the members of a group run concurrently. A failure on one
    product is recorded in the summary and never affects the others.
    """

    def __init__(
        self,
        store: Database,
        extractor: BaseAgent,
        notifier: EmailNotifier,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        discount_threshold: float = DEFAULT_DISCOUNT_THRESHOLD,
    ):
        """Initialize refresh coordinator.

        Args:
            store: Product store
            extractor: Agent fetching current product state
            notifier: Renders and sends subscriber emails
            chunk_size: Maximum number of products processed concurrently
            discount_threshold: Discount percentage that triggers THRESHOLD_MET
        """
        if chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")

        self.store = store
        self.extractor = extractor
        self.notifier = notifier
        self.chunk_size = chunk_size
        self.classifier = NotificationClassifier(discount_threshold)

    async def run(self) -> RunSummary:
        """Run one refresh over every tracked product.

        Returns:
            Summary of the run

        Raises:
            RefreshError: If the tracked products could not be loaded
        """
        summary = RunSummary()
        products = self._load_products()

        groups = chunked(products, self.chunk_size)
        logger.info(
            f"Refreshing {len(products)} products in {len(groups)} groups of up to {self.chunk_size}"
        )

        for index, group in enumerate(groups, start=1):
            outcomes = await asyncio.gather(
                *[self._process_product(product) for product in group],
                return_exceptions=True,
            )

            for product, outcome in zip(group, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Unexpected error refreshing {product.url}: {outcome}")
                    outcome = ProductOutcome(
                        url=product.url,
                        status=ProductStatus.UNEXPECTED_ERROR,
                        error=str(outcome),
                    )
                summary.outcomes.append(outcome)

            logger.debug(f"Completed group {index}/{len(groups)}")

        summary.finished_at = datetime.utcnow()
        duration = (summary.finished_at - summary.started_at).total_seconds()
        logger.info(
            f"Refresh completed in {duration:.1f}s: {summary.succeeded} succeeded, "
            f"{summary.failed} failed, {summary.notifications_sent} notifications sent"
        )
        return summary

    def _load_products(self) -> List[ProductRecord]:
        try:
            products = self.store.get_all_products()
        except Exception as e:
            raise RefreshError(f"Failed to get all products: {e}") from e

        if products is None:
            raise RefreshError("Failed to get all products: no products fetched")

        if not isinstance(products, (list, tuple)):
            raise RefreshError(
                f"Failed to get all products: expected a list, got {type(products).__name__}"
            )

        invalid = [p for p in products if not isinstance(p, ProductRecord)]
        if invalid:
            raise RefreshError(
                f"Failed to get all products: {len(invalid)} entries are not products"
            )

        return list(products)

    async def _process_product(self, previous: ProductRecord) -> ProductOutcome:
        """Extract, persist, classify and notify for a single product."""
        outcome = ProductOutcome(url=previous.url)

        # Extract
        try:
            scraped = await self.extractor.fetch_product(previous.url)
        except Exception as e:
            return self._fail(outcome, ProductStatus.EXTRACT_FAILED, e)

        if scraped is None:
            return self._fail(outcome, ProductStatus.EXTRACT_FAILED, "no usable result")
        outcome.status = ProductStatus.EXTRACTED

        # Persist
        try:
            record = self._build_record(previous, scraped)
            updated = self.store.upsert_product(previous.url, record)
        except Exception as e:
            return self._fail(outcome, ProductStatus.PERSIST_FAILED, e)

        if updated is None:
            return self._fail(outcome, ProductStatus.PERSIST_FAILED, "store returned nothing")
        outcome.status = ProductStatus.PERSISTED

        # Classify
        outcome.notification = self.classifier.classify(previous, scraped)
        outcome.status = ProductStatus.CLASSIFIED

        # Notify
        if outcome.notification == NotificationType.NONE or not updated.users:
            outcome.status = ProductStatus.SKIPPED_NOTIFY
            return outcome

        try:
            content = self.notifier.render(self._product_info(updated), outcome.notification)
            sent = await self.notifier.send(content, updated.subscriber_emails)
        except Exception as e:
            return self._fail(outcome, ProductStatus.NOTIFY_FAILED, e)

        if not sent:
            return self._fail(outcome, ProductStatus.NOTIFY_FAILED, "send failed")

        outcome.status = ProductStatus.NOTIFIED
        logger.info(
            f"Sent {outcome.notification.value} notification for {updated.url} "
            f"to {len(updated.users)} subscribers"
        )
        return outcome

    async def track(
        self, url: str, email: str, target_price: Optional[float] = None
    ) -> ProductRecord:
        """Subscribe ``email`` to a product, tracking it first if needed.

        A new subscriber gets a welcome email; delivery failure is logged
        and does not undo the subscription.

        Raises:
            ValueError: If an untracked product could not be extracted
        """
        product = self.store.get_product(url)

        if product is None:
            scraped = await self.extractor.fetch_product(url)
            if scraped is None:
                raise ValueError(f"Could not extract product at {url}")
            product = self.store.upsert_product(
                url, self._build_record(ProductRecord(url=url), scraped)
            )
            logger.info(f"Started tracking {url}")

        added = self.store.add_subscriber(url, email, target_price)
        if added:
            content = self.notifier.render(self._product_info(product), NotificationType.WELCOME)
            if not await self.notifier.send(content, [email]):
                logger.warning(f"Welcome email to {email} was not delivered")

        return self.store.get_product(url)

    @staticmethod
    def _product_info(record: ProductRecord) -> ProductInfo:
        return ProductInfo(
            title=record.title,
            url=record.url,
            current_price=record.current_price,
            currency=record.currency,
        )

    @staticmethod
    def _build_record(previous: ProductRecord, scraped: ScrapedProduct) -> ProductRecord:
        """Merge a fresh observation into the stored record."""
        history = [
            *previous.price_history,
            PricePoint(price=scraped.current_price, observed_at=scraped.scraped_at),
        ]
        stats = calculate_price_stats(history)

        return ProductRecord(
            **scraped.model_dump(exclude={"url", "scraped_at"}),
            url=previous.url,
            price_history=history,
            lowest_price=stats.lowest,
            highest_price=stats.highest,
            average_price=stats.average,
            users=previous.users,
        )

    @staticmethod
    def _fail(outcome: ProductOutcome, status: ProductStatus, error) -> ProductOutcome:
        logger.warning(f"Refresh of {outcome.url} failed at {status.value}: {error}")
        outcome.status = status
        outcome.error = str(error)
        return outcome


def build_coordinator(config: Config, settings: Settings) -> RefreshCoordinator:
    """Wire a coordinator from configuration.

    The caller owns the returned coordinator's store and should close it.
    """
    store = Database(config.database.url, echo=config.database.echo)
    extractor = AmazonProductAgent(config.scraping.model_dump())
    notifier = EmailNotifier(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        from_email=settings.email_from,
    )

    return RefreshCoordinator(
        store,
        extractor,
        notifier,
        chunk_size=config.refresh.chunk_size,
        discount_threshold=config.notifications.discount_threshold,
    )
