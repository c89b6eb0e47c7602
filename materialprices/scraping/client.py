"""Retailer price fetching through the scraping proxy."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Iterable
from urllib.parse import urlparse

import httpx

from materialprices.scraping.models import Material, RetailerQuote
from materialprices.scraping.retailers import BROWSER_HEADERS, RetailerDescriptor, parse_price
from materialprices.scraping.settings import ScraperSettings, new_session_id
from materialprices.utils.dates import utcnow
from materialprices.utils.rate_limit import RateLimiter
from materialprices.utils.retry import RETRY_EXCEPTIONS, retry_async

logger = logging.getLogger(__name__)


class RetailerClient:
    def __init__(
        self,
        settings: ScraperSettings,
        *,
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.settings = settings
        self._session = session or httpx.AsyncClient(
            proxy=settings.proxy.url(new_session_id()),
            timeout=settings.request_timeout,
            headers=BROWSER_HEADERS,
            follow_redirects=True,
        )
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retries = retries
        self._retry_delay = retry_delay
        self._semaphores: dict[str, asyncio.Semaphore] = defaultdict(
            lambda: asyncio.Semaphore(settings.concurrency_per_retailer)
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def fetch_quote(self, material: Material, retailer: RetailerDescriptor) -> RetailerQuote | None:
        """Fetch one quote; every failure comes back as None."""
        if not material.name or not material.name.strip():
            logger.warning("Skipping material %s for %s: empty name", material.id, retailer.label)
            return None
        url = retailer.search_url(material)
        try:
            content = await self._get_text(url)
        except (httpx.HTTPError, *RETRY_EXCEPTIONS) as exc:
            logger.warning("Error fetching %s for %s: %s", retailer.label, material.name, exc)
            return None

        try:
            price = parse_price(retailer.extract_price(content, material))
            in_stock = retailer.extract_in_stock(content)
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning("Extraction failed for %s at %s: %s", material.name, retailer.label, exc)
            return None
        if price is None:
            logger.debug("No quote for %s at %s", material.name, retailer.label)
            return None
        return RetailerQuote(
            material_id=material.id,
            retailer=retailer.label,
            price=price,
            timestamp=utcnow(),
            in_stock=in_stock,
            url=url,
        )

    async def fetch_all(
        self, materials: Iterable[Material], retailers: Iterable[RetailerDescriptor]
    ) -> list[RetailerQuote]:
        """Fetch every (material, retailer) pair; pairs without a quote are dropped."""
        materials = list(materials)
        pairs = [(material, retailer) for retailer in retailers for material in materials]
        results = await asyncio.gather(*(self._fetch_guarded(m, r) for m, r in pairs))
        quotes = [quote for quote in results if quote is not None]
        logger.info("Collected %s quotes from %s requests", len(quotes), len(pairs))
        return quotes

    async def _fetch_guarded(self, material: Material, retailer: RetailerDescriptor) -> RetailerQuote | None:
        async with self._semaphores[retailer.key]:
            try:
                return await self.fetch_quote(material, retailer)
            except Exception:
                logger.exception("Unexpected error fetching %s for %s", retailer.label, material.name)
                return None

    async def _get_text(self, url: str) -> str:
        await self._rate_limiter.wait_for_host(urlparse(url).netloc)
        response = await retry_async(self._session.get, attempts=self._retries, base_delay=self._retry_delay)(url)
        response.raise_for_status()
        return response.text
