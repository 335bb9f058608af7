"""Database operations and management"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import (
    Base,
    PriceHistoryEntry,
    ProductRecord,
    SubscriberEntry,
    TrackedProduct,
)

# Columns copied verbatim from a ProductRecord onto the stored row
RECORD_FIELDS = (
    "title",
    "currency",
    "image",
    "category",
    "description",
    "current_price",
    "original_price",
    "discount_rate",
    "reviews_count",
    "stars",
    "is_out_of_stock",
    "lowest_price",
    "highest_price",
    "average_price",
)


class Database:
    """Product store backed by SQLAlchemy."""

    def __init__(self, db_url: str = "sqlite:///data/db/products.db", echo: bool = False):
        self.db_url = db_url
        self.engine = create_engine(db_url, echo=echo, **self._engine_options(db_url))
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Database initialized: {db_url}")

    @staticmethod
    def _engine_options(db_url: str) -> dict:
        url = make_url(db_url)
        if url.get_backend_name() != "sqlite":
            return {}

        options = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # Share the one in-memory database across threads
            options["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return options

    @contextmanager
    def session(self):
        """Context manager for database sessions"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def close(self):
        """Release pooled connections."""
        self.engine.dispose()

    def get_all_products(self) -> list[ProductRecord]:
        """Read every tracked product, in insertion order."""
        with self.session() as session:
            products = session.query(TrackedProduct).order_by(TrackedProduct.id).all()
            return [ProductRecord.model_validate(p) for p in products]

    def get_product(self, url: str) -> Optional[ProductRecord]:
        """Get a single tracked product by URL"""
        with self.session() as session:
            product = self._find_by_url(session, url)
            if product is None:
                return None
            return ProductRecord.model_validate(product)

    def count_products(self) -> int:
        """Count tracked products"""
        with self.session() as session:
            return session.query(TrackedProduct).count()

    def upsert_product(self, url: str, record: ProductRecord) -> ProductRecord:
        """
        Create or replace the stored state of the product at ``url``.

        Descriptive fields, aggregates and price history are taken from
        ``record``. Subscribers are left as stored.
        """
        with self.session() as session:
            product = self._find_by_url(session, url)

            if product is None:
                product = TrackedProduct(url=url)
                session.add(product)
                logger.debug(f"Creating tracked product: {url}")

            for field in RECORD_FIELDS:
                setattr(product, field, getattr(record, field))
            product.updated_at = datetime.utcnow()

            self._sync_history(product, record)

            session.flush()
            return ProductRecord.model_validate(product)

    def add_subscriber(self, url: str, email: str, target_price: Optional[float] = None) -> bool:
        """Subscribe ``email`` to the product at ``url``.

        Returns:
            False if the email was already subscribed
        """
        with self.session() as session:
            product = self._find_by_url(session, url)
            if product is None:
                raise LookupError(f"Product not tracked: {url}")

            for user in product.users:
                if user.email == email:
                    if target_price is not None:
                        user.target_price = target_price
                    return False

            product.users.append(SubscriberEntry(email=email, target_price=target_price))
            logger.info(f"Subscribed {email} to {url}")
            return True

    def _find_by_url(self, session: Session, url: str) -> Optional[TrackedProduct]:
        return session.query(TrackedProduct).filter(TrackedProduct.url == url).first()

    def _sync_history(self, product: TrackedProduct, record: ProductRecord):
        """Bring the stored history in line with the record's history.

        An extension of the stored history only appends the new tail.
        Anything else replaces the history wholesale.
        """
        stored = product.price_history
        incoming = record.price_history

        is_extension = len(incoming) >= len(stored) and all(
            entry.price == point.price and entry.observed_at == point.observed_at
            for entry, point in zip(stored, incoming)
        )

        if is_extension:
            start = len(stored)
        else:
            product.price_history.clear()
            start = 0

        for position, point in enumerate(incoming[start:], start=start):
            product.price_history.append(
                PriceHistoryEntry(
                    position=position,
                    price=point.price,
                    observed_at=point.observed_at,
                )
            )
