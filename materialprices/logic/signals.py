"""Price movement signals."""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from typing import Iterable, Mapping

from materialprices.scraping.models import CanonicalPrice, ChangeEvent

logger = logging.getLogger(__name__)

CHANGE_THRESHOLD = float(os.environ.get("CHANGE_THRESHOLD", 0.15))


def relative_change(new: Decimal | None, old: Decimal | None) -> Decimal | None:
    if new is None or old is None or old == 0:
        return None
    return abs(Decimal(new) - Decimal(old)) / Decimal(old)


def is_significant(change: Decimal | None, threshold: float = CHANGE_THRESHOLD) -> bool:
    if change is None:
        return False
    return change > Decimal(str(threshold))


def detect_changes(
    new_prices: Iterable[CanonicalPrice],
    prior_prices: Mapping[int, Decimal | None],
    *,
    threshold: float = CHANGE_THRESHOLD,
) -> list[ChangeEvent]:
    events: list[ChangeEvent] = []
    for item in new_prices:
        prior = prior_prices.get(item.material_id)
        change = relative_change(item.price, prior)
        if not is_significant(change, threshold):
            continue
        event = ChangeEvent(
            material_id=item.material_id,
            old_price=Decimal(prior),
            new_price=item.price,
            percent_change=change,
        )
        logger.warning(
            "Significant price change for material %s: %s -> %s (%.1f%%)",
            item.material_id,
            event.old_price,
            event.new_price,
            float(change) * 100,
        )
        events.append(event)
    return events
