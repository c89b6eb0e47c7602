"""Transactional persistence of canonical prices."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text

from materialprices.db.session import transaction
from materialprices.scraping.models import CanonicalPrice, RetailerQuote

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    pass


class PriceWriter:
    """Applies one run's prices in a single transaction.

    Each canonical price updates the material row, appends a history entry
    and upserts the material's ``Average`` retailer row. Per-retailer quotes
    passed alongside are upserted in the same transaction.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def apply_prices(
        self, prices: Sequence[CanonicalPrice], quotes: Iterable[RetailerQuote] = ()
    ) -> int:
        try:
            with transaction(self.engine) as conn:
                for item in prices:
                    self._update_material(conn, item)
                    self._append_history(conn, item)
                    self._upsert_retailer_price(
                        conn,
                        material_id=item.material_id,
                        retailer=item.source,
                        price=item.price,
                        url=None,
                        in_stock=True,
                        scraped_at=item.timestamp,
                    )
                for quote in quotes:
                    self._upsert_retailer_price(
                        conn,
                        material_id=quote.material_id,
                        retailer=quote.retailer,
                        price=quote.price,
                        url=quote.url,
                        in_stock=quote.in_stock,
                        scraped_at=quote.timestamp,
                    )
        except SQLAlchemyError as exc:
            logger.error("Price update rolled back: %s", exc)
            raise PersistenceError(f"Failed to apply {len(prices)} prices: {exc}") from exc
        logger.info("Updated %s prices successfully", len(prices))
        return len(prices)

    def _update_material(self, conn: Connection, item: CanonicalPrice) -> None:
        conn.execute(
            text(
                """
                UPDATE material_prices
                SET price = :price, source = :source, last_updated = :ts
                WHERE id = :id
                """
            ),
            {"price": float(item.price), "source": item.source, "ts": item.timestamp, "id": item.material_id},
        )

    def _append_history(self, conn: Connection, item: CanonicalPrice) -> None:
        conn.execute(
            text(
                """
                INSERT INTO price_history (material_id, price, source, recorded_at)
                VALUES (:material_id, :price, :source, :recorded_at)
                """
            ),
            {
                "material_id": item.material_id,
                "price": float(item.price),
                "source": item.source,
                "recorded_at": item.timestamp,
            },
        )

    def _upsert_retailer_price(self, conn: Connection, **values) -> None:
        values["price"] = float(values["price"])
        conn.execute(
            text(
                """
                INSERT INTO retailer_prices (material_id, retailer, price, url, in_stock, last_scraped)
                VALUES (:material_id, :retailer, :price, :url, :in_stock, :scraped_at)
                ON CONFLICT (material_id, retailer) DO UPDATE SET
                  price = EXCLUDED.price,
                  url = EXCLUDED.url,
                  in_stock = EXCLUDED.in_stock,
                  last_scraped = EXCLUDED.last_scraped
                """
            ),
            values,
        )
