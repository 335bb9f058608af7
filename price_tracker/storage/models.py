"""Database models for Price Tracker."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


# ============================================================================
# Pydantic Models (for data transfer)
# ============================================================================


class ScrapedProduct(BaseModel):
    """Product state observed on a single fetch of its page."""

    url: str
    title: str
    currency: str = "$"
    image: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    current_price: float
    original_price: Optional[float] = None
    discount_rate: Optional[float] = None  # percent, e.g. 25.0

    reviews_count: Optional[int] = None
    stars: Optional[float] = None
    is_out_of_stock: bool = False

    scraped_at: datetime = Field(default_factory=datetime.utcnow)


class PricePoint(BaseModel):
    """One entry of a product's price history."""

    model_config = ConfigDict(from_attributes=True)

    price: float
    observed_at: datetime = Field(default_factory=datetime.utcnow)


class Subscriber(BaseModel):
    """A user subscribed to a tracked product."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    email: str
    target_price: Optional[float] = None


class ProductRecord(BaseModel):
    """Full stored state of a tracked product."""

    model_config = ConfigDict(from_attributes=True)

    url: str
    title: str = ""
    currency: str = "$"
    image: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    current_price: Optional[float] = None
    original_price: Optional[float] = None
    discount_rate: Optional[float] = None
    reviews_count: Optional[int] = None
    stars: Optional[float] = None
    is_out_of_stock: bool = False

    price_history: list[PricePoint] = Field(default_factory=list)
    lowest_price: Optional[float] = None
    highest_price: Optional[float] = None
    average_price: Optional[float] = None

    users: list[Subscriber] = Field(default_factory=list)

    @property
    def last_price(self) -> Optional[float]:
        """Most recently recorded price, if any."""
        if self.current_price is not None:
            return self.current_price
        if self.price_history:
            return self.price_history[-1].price
        return None

    @property
    def subscriber_emails(self) -> list[str]:
        return [user.email for user in self.users]


# ============================================================================
# SQLAlchemy Models (for database)
# ============================================================================


class TrackedProduct(Base):
    """A marketplace product being monitored, keyed by its URL."""

    __tablename__ = "tracked_products"

    id = Column(Integer, primary_key=True)
    url = Column(String, unique=True, index=True, nullable=False)

    # Descriptive data (pass-through from the extractor)
    title = Column(String, nullable=False, default="")
    currency = Column(String, default="$")
    image = Column(String)
    category = Column(String)
    description = Column(Text)

    current_price = Column(Float)
    original_price = Column(Float)
    discount_rate = Column(Float)
    reviews_count = Column(Integer)
    stars = Column(Float)
    is_out_of_stock = Column(Boolean, default=False)

    # Aggregates, recomputed from the full price history
    lowest_price = Column(Float)
    highest_price = Column(Float)
    average_price = Column(Float)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    price_history = relationship(
        "PriceHistoryEntry",
        back_populates="product",
        order_by="PriceHistoryEntry.position",
        cascade="all, delete-orphan",
    )
    users = relationship(
        "SubscriberEntry",
        back_populates="product",
        order_by="SubscriberEntry.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<TrackedProduct(id={self.id}, url='{self.url}', price={self.current_price})>"


class PriceHistoryEntry(Base):
    """Observed price of a product at a point in time."""

    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("tracked_products.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)  # insertion order
    price = Column(Float, nullable=False)
    observed_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("TrackedProduct", back_populates="price_history")

    def __repr__(self):
        return f"<PriceHistoryEntry(product_id={self.product_id}, price={self.price})>"


class SubscriberEntry(Base):
    """Email subscription to a tracked product."""

    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("tracked_products.id"), index=True, nullable=False)
    email = Column(String, nullable=False)
    target_price = Column(Float)
    subscribed_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("TrackedProduct", back_populates="users")

    __table_args__ = (UniqueConstraint("product_id", "email", name="uq_product_subscriber"),)

    def __repr__(self):
        return f"<SubscriberEntry(email='{self.email}', product_id={self.product_id})>"
