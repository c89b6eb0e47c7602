"""Reduce raw retailer quotes to one canonical price per material."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from materialprices.scraping.models import CanonicalPrice, RetailerQuote
from materialprices.utils.dates import utcnow

CENTS = Decimal("0.01")


def round_price(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero (10.005 -> 10.01)."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def mean_price(prices: Iterable[Decimal]) -> Decimal:
    values = list(prices)
    if not values:
        raise ValueError("mean of empty price list")
    return round_price(sum(values, Decimal(0)) / len(values))


def aggregate(quotes: Iterable[RetailerQuote], *, now: datetime | None = None) -> list[CanonicalPrice]:
    grouped: dict[int, list[Decimal]] = defaultdict(list)
    for quote in quotes:
        grouped[quote.material_id].append(Decimal(str(quote.price)))
    timestamp = now or utcnow()
    return [
        CanonicalPrice(material_id=material_id, price=mean_price(prices), timestamp=timestamp)
        for material_id, prices in grouped.items()
    ]
