"""Retailer descriptors and price extraction."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterator
from urllib.parse import quote

from materialprices.scraping.models import Material

logger = logging.getLogger(__name__)

JSON_LD_RE = re.compile(
    r"<script[^>]+type=[\"']application/ld\+json[\"'][^>]*>(.*?)</script>",
    re.IGNORECASE | re.DOTALL,
)
ITEMPROP_PRICE_RE = re.compile(
    r"itemprop=[\"']price[\"'][^>]*?content=[\"']\$?([\d,]+(?:\.\d+)?)[\"']",
    re.IGNORECASE,
)
DOLLAR_RE = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)")

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Upgrade-Insecure-Requests": "1",
}


def parse_price(value: Any) -> Decimal | None:
    """Coerce a scraped value to a positive finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    raw = str(value).strip().replace(",", "").lstrip("$")
    if not raw:
        return None
    try:
        price = Decimal(raw)
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def _json_ld_nodes(content: str) -> Iterator[dict[str, Any]]:
    for block in JSON_LD_RE.findall(content):
        try:
            data = json.loads(block.strip())
        except json.JSONDecodeError:
            continue
        stack = [data]
        while stack:
            node = stack.pop(0)
            if isinstance(node, list):
                stack.extend(node)
            elif isinstance(node, dict):
                yield node
                stack.extend(v for k, v in node.items() if k in {"@graph", "offers", "itemListElement", "item"})


def _is_type(node: dict[str, Any], name: str) -> bool:
    kind = node.get("@type")
    if isinstance(kind, list):
        return name in kind
    return kind == name


def json_ld_price(content: str) -> Decimal | None:
    """First offer price from JSON-LD product markup."""
    for node in _json_ld_nodes(content):
        if _is_type(node, "Offer") or _is_type(node, "AggregateOffer"):
            price = parse_price(node.get("price")) or parse_price(node.get("lowPrice"))
            if price is not None:
                return price
    return None


def json_ld_in_stock(content: str) -> bool:
    for node in _json_ld_nodes(content):
        availability = node.get("availability")
        if isinstance(availability, str):
            return not availability.rstrip("/").endswith(("OutOfStock", "SoldOut", "Discontinued"))
    return True


def itemprop_price(content: str) -> Decimal | None:
    match = ITEMPROP_PRICE_RE.search(content)
    return parse_price(match.group(1)) if match else None


def first_dollar_amount(content: str) -> Decimal | None:
    for match in DOLLAR_RE.finditer(content):
        price = parse_price(match.group(1))
        if price is not None:
            return price
    return None


def extract_price(content: str, material: Material) -> Decimal | None:
    """Structured markup first, the first dollar amount on the page last."""
    for extractor in (json_ld_price, itemprop_price, first_dollar_amount):
        price = extractor(content)
        if price is not None:
            logger.debug("Extracted %s for %s via %s", price, material.name, extractor.__name__)
            return price
    return None


def structured_price(content: str, material: Material) -> Decimal | None:
    """Only trust structured markup; pages without it yield no quote."""
    return json_ld_price(content) or itemprop_price(content)


@dataclass(frozen=True, slots=True)
class RetailerDescriptor:
    key: str
    label: str
    url_template: str
    extract_price: Callable[[str, Material], Decimal | None] = extract_price
    extract_in_stock: Callable[[str], bool] = json_ld_in_stock

    def search_url(self, material: Material) -> str:
        return self.url_template.format(query=quote(material.name, safe=""))


RETAILERS: dict[str, RetailerDescriptor] = {
    "home_depot": RetailerDescriptor(
        key="home_depot",
        label="Home Depot",
        url_template="https://www.homedepot.com/s/{query}",
    ),
    "lowes": RetailerDescriptor(
        key="lowes",
        label="Lowe's",
        url_template="https://www.lowes.com/search?searchTerm={query}",
        extract_price=structured_price,
    ),
    "menards": RetailerDescriptor(
        key="menards",
        label="Menards",
        url_template="https://www.menards.com/main/search.html?search={query}",
    ),
}


def resolve_retailers(keys: tuple[str, ...] | list[str]) -> list[RetailerDescriptor]:
    return [RETAILERS[key] for key in keys]
