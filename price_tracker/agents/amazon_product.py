"""Amazon product page agent."""

import json
import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from ..storage.models import ScrapedProduct
from .base_agent import BaseAgent

CURRENT_PRICE_SELECTORS = [
    ".priceToPay span.a-offscreen",
    "#corePrice_feature_div span.a-offscreen",
    "#price_inside_buybox",
    ".a-button-selected .a-color-base",
]

ORIGINAL_PRICE_SELECTORS = [
    "#priceblock_ourprice",
    ".a-price.a-text-price span.a-offscreen",
    "#listPrice",
    "#priceblock_dealprice",
    ".a-size-base.a-color-price",
]

UNAVAILABLE_TEXT = "currently unavailable"


class AmazonProductAgent(BaseAgent):
    """Extracts price and listing details from Amazon product pages.

    Data available:
    - Current and list price, discount percentage
    - Availability
    - Title, main image, category breadcrumb, feature bullets
    - Star rating and review count
    """

    @property
    def source_name(self) -> str:
        return "amazon"

    async def fetch_product(self, url: str) -> Optional[ScrapedProduct]:
        """Fetch and parse an Amazon product page.

        Args:
            url: Product page URL

        Returns:
            Scraped product, or None on network or parse failure
        """
        try:
            async with self.get_http_client() as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            return None

        product = parse_product_page(response.text, url)
        if product is None:
            logger.warning(f"No price found on page: {url}")
        return product


def parse_product_page(html: str, url: str) -> Optional[ScrapedProduct]:
    """Parse an Amazon product page.

    Args:
        html: Page HTML
        url: Canonical product URL

    Returns:
        Scraped product, or None if the page carries no current price
    """
    soup = BeautifulSoup(html, "html.parser")

    availability = _text(soup, "#availability span").lower()
    out_of_stock = UNAVAILABLE_TEXT in availability

    listed_price = _first_price(soup, ORIGINAL_PRICE_SELECTORS)
    current_price = _first_price(soup, CURRENT_PRICE_SELECTORS)
    if current_price is None:
        current_price = _whole_fraction_price(soup)
    # Unavailable listings often show only the list price
    if current_price is None and out_of_stock:
        current_price = listed_price
    if current_price is None:
        return None

    original_price = listed_price or current_price

    return ScrapedProduct(
        url=url,
        title=_text(soup, "#productTitle"),
        currency=_text(soup, ".a-price-symbol")[:1] or "$",
        image=_parse_image(soup),
        category=_parse_category(soup),
        description=_parse_description(soup),
        current_price=current_price,
        original_price=original_price,
        discount_rate=_parse_discount(_text(soup, ".savingsPercentage")),
        reviews_count=_parse_reviews(_text(soup, "#acrCustomerReviewText")),
        stars=_parse_rating(_attr(soup, "#acrPopover", "title")),
        is_out_of_stock=out_of_stock,
    )


def _text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    return element.get_text(strip=True) if element else ""


def _attr(soup: BeautifulSoup, selector: str, name: str) -> str:
    element = soup.select_one(selector)
    if element is None:
        return ""
    return element.get(name) or ""


def _parse_price(price_str: Optional[str]) -> Optional[float]:
    """Parse a price string such as ``$1,299.99``."""
    if not price_str:
        return None

    numbers = re.findall(r"\d+(?:\.\d+)?", price_str.replace(",", ""))
    if not numbers:
        return None
    return float(numbers[0])


def _first_price(soup: BeautifulSoup, selectors: list[str]) -> Optional[float]:
    for selector in selectors:
        price = _parse_price(_text(soup, selector))
        if price is not None:
            return price
    return None


def _whole_fraction_price(soup: BeautifulSoup) -> Optional[float]:
    """Price split across ``a-price-whole`` and ``a-price-fraction`` spans."""
    whole = _text(soup, ".priceToPay span.a-price-whole").replace(",", "").rstrip(".")
    if not whole.isdigit():
        return None
    fraction = _text(soup, ".priceToPay span.a-price-fraction")
    if fraction.isdigit():
        return float(f"{whole}.{fraction}")
    return float(whole)


def _parse_discount(discount_str: str) -> Optional[float]:
    """Parse ``-25%`` into ``25.0``."""
    numbers = re.findall(r"\d+(?:\.\d+)?", discount_str)
    return float(numbers[0]) if numbers else None


def _parse_rating(rating_str: str) -> Optional[float]:
    """Parse ``4.5 out of 5 stars``."""
    numbers = re.findall(r"\d+(?:\.\d+)?", rating_str)
    return float(numbers[0]) if numbers else None


def _parse_reviews(reviews_str: str) -> Optional[int]:
    """Parse ``1,234 ratings``."""
    numbers = re.findall(r"\d+", reviews_str.replace(",", ""))
    return int(numbers[0]) if numbers else None


def _parse_image(soup: BeautifulSoup) -> Optional[str]:
    for selector in ("#imgBlkFront", "#landingImage"):
        dynamic = _attr(soup, selector, "data-a-dynamic-image")
        if dynamic:
            try:
                urls = list(json.loads(dynamic))
            except ValueError:
                continue
            if urls:
                return urls[0]

    return _attr(soup, "#landingImage", "src") or None


def _parse_category(soup: BeautifulSoup) -> Optional[str]:
    crumbs = soup.select("#wayfinding-breadcrumbs_feature_div ul li a")
    if not crumbs:
        return None
    return crumbs[-1].get_text(strip=True) or None


def _parse_description(soup: BeautifulSoup) -> Optional[str]:
    bullets = [
        span.get_text(strip=True)
        for span in soup.select("#feature-bullets li span.a-list-item")
    ]
    text = "\n".join(b for b in bullets if b)
    return text or None
