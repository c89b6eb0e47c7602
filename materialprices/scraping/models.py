"""Data models shared by the price update pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

AVERAGE_SOURCE = "Average"

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"


@dataclass(slots=True)
class Material:
    id: int
    name: str
    category: str
    unit: str | None = None
    price: Decimal | None = None
    source: str | None = None
    location: str | None = None
    last_updated: datetime | None = None


@dataclass(slots=True)
class RetailerQuote:
    """One price reading for one material from one retailer."""

    material_id: int
    retailer: str
    price: Decimal
    timestamp: datetime
    in_stock: bool = True
    url: str | None = None


@dataclass(slots=True)
class CanonicalPrice:
    material_id: int
    price: Decimal
    timestamp: datetime
    source: str = AVERAGE_SOURCE


@dataclass(slots=True)
class ChangeEvent:
    material_id: int
    old_price: Decimal
    new_price: Decimal
    percent_change: Decimal


@dataclass(slots=True)
class RunRecord:
    id: int
    status: str
    started_at: datetime | str | None
    completed_at: datetime | str | None = None
    materials_updated: int = 0
    errors: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in {RUN_COMPLETED, RUN_FAILED}
