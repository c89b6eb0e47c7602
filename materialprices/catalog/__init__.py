"""Material catalog access and seeding."""

from __future__ import annotations

import logging
import pathlib
from decimal import Decimal
from typing import Any

import yaml
from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from materialprices.db.session import transaction
from materialprices.scraping.models import Material

logger = logging.getLogger(__name__)

MATERIALS_PATH = pathlib.Path(__file__).with_name("materials.yml")
DEFAULT_SOURCE = "default"


def load_default_materials(limit: int | None = None) -> list[dict[str, Any]]:
    data = yaml.safe_load(MATERIALS_PATH.read_text())
    materials = [
        {
            "category": item["category"],
            "name": item["name"],
            "unit": item["unit"],
            "price": Decimal(str(item["price"])),
        }
        for item in data
    ]
    if limit:
        return materials[:limit]
    return materials


def seed_catalog(engine: Engine, materials: list[dict[str, Any]] | None = None) -> int:
    """Insert default materials, leaving existing names untouched."""
    materials = load_default_materials() if materials is None else materials
    inserted = 0
    with transaction(engine) as conn:
        for material in materials:
            result = conn.execute(
                text(
                    """
                    INSERT INTO material_prices (category, name, unit, price, source)
                    VALUES (:category, :name, :unit, :price, :source)
                    ON CONFLICT (name) DO NOTHING
                    """
                ),
                {
                    "category": material["category"],
                    "name": material["name"],
                    "unit": material["unit"],
                    "price": float(material["price"]),
                    "source": DEFAULT_SOURCE,
                },
            )
            inserted += max(result.rowcount, 0)
    logger.info("Seeded %s materials", inserted)
    return inserted


def list_materials(engine: Engine) -> list[Material]:
    query = text(
        """
        SELECT id, name, category, unit, price, source, location, last_updated
        FROM material_prices
        ORDER BY id
        """
    )
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [
        Material(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            unit=row["unit"],
            price=to_decimal(row["price"]),
            source=row["source"],
            location=row["location"],
            last_updated=row["last_updated"],
        )
        for row in rows
    ]


def to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
