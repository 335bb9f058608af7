import asyncio
from typing import Dict, List, Optional, Union

import pytest

from price_tracker.alerts.email import EmailContent, EmailNotifier
from price_tracker.scoring.statistics import calculate_price_stats
from price_tracker.storage import Database
from price_tracker.storage.models import PricePoint, ProductRecord, ScrapedProduct


class FakeExtractor:
    """Returns canned results per URL and records concurrency."""

    source_name = "fake"

    def __init__(self, results: Dict[str, Union[ScrapedProduct, Exception, None]], delay: float = 0):
        self.results = results
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_product(self, url: str) -> Optional[ScrapedProduct]:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            result = self.results.get(url)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


class FakeNotifier(EmailNotifier):
    """Renders real emails but records sends instead of delivering them."""

    def __init__(self, succeed: bool = True):
        super().__init__("smtp.test", 587, "alerts@test", "secret")
        self.succeed = succeed
        self.sent: List[tuple] = []

    async def send(self, content: EmailContent, recipients: List[str]) -> bool:
        self.sent.append((content.subject, list(recipients)))
        return self.succeed


def scraped(url: str, price: float, **kwargs) -> ScrapedProduct:
    kwargs.setdefault("title", f"Product at {url}")
    return ScrapedProduct(url=url, current_price=price, **kwargs)


def seed_product(
    db: Database,
    url: str,
    prices: List[float],
    emails: Optional[List[str]] = None,
    **kwargs,
) -> ProductRecord:
    """Store a product as if previous runs had observed ``prices``."""
    stats = calculate_price_stats(prices)
    kwargs.setdefault("title", f"Product at {url}")
    record = ProductRecord(
        url=url,
        current_price=prices[-1],
        price_history=[PricePoint(price=p) for p in prices],
        lowest_price=stats.lowest,
        highest_price=stats.highest,
        average_price=stats.average,
        **kwargs,
    )
    db.upsert_product(url, record)
    for email in emails or []:
        db.add_subscriber(url, email)
    return db.get_product(url)


@pytest.fixture
def db():
    database = Database("sqlite:///:memory:")
    yield database
    database.close()
