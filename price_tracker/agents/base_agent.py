"""Base agent class for all price extraction agents"""

import random
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..storage.models import ScrapedProduct

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
]


class BaseAgent(ABC):
    """Abstract base class for price extraction agents.

    Agents hold no per-request state, so one instance may serve many
    concurrent ``fetch_product`` calls.
    """

    def __init__(self, config: Optional[dict] = None):
        config = config or {}
        self.config = config
        self.timeout = config.get("timeout", 30.0)
        self.user_agents = config.get("user_agents") or DEFAULT_USER_AGENTS

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier for this data source"""
        pass

    @abstractmethod
    async def fetch_product(self, url: str) -> Optional[ScrapedProduct]:
        """Fetch the current state of the product page at ``url``.

        Returns None if the page could not be fetched or parsed.
        """
        pass

    def get_http_client(self) -> httpx.AsyncClient:
        """Get configured HTTP client"""
        return httpx.AsyncClient(
            timeout=self.timeout, headers=self._get_headers(), follow_redirects=True
        )

    def _get_headers(self) -> dict:
        """Default browser-like headers"""
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
            "User-Agent": random.choice(self.user_agents),
        }
