from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from materialprices.logic.persist import PersistenceError, PriceWriter
from materialprices.scraping.models import CanonicalPrice, RetailerQuote

NOW = datetime(2026, 10, 1, 2, 0)


def canonical(material_id, price):
    return CanonicalPrice(material_id=material_id, price=Decimal(price), timestamp=NOW)


def count(engine, sql, **params):
    with engine.connect() as conn:
        return conn.execute(text(sql), params).scalar_one()


def test_apply_prices_updates_material_history_and_average(seeded_engine):
    writer = PriceWriter(seeded_engine)
    assert writer.apply_prices([canonical(1, "6.05")]) == 1
    with seeded_engine.connect() as conn:
        price, source = conn.execute(text("SELECT price, source FROM material_prices WHERE id = 1")).one()
        history = conn.execute(text("SELECT price, source FROM price_history WHERE material_id = 1")).all()
        retailer = conn.execute(text("SELECT retailer, price FROM retailer_prices WHERE material_id = 1")).all()
    assert Decimal(str(price)) == Decimal("6.05")
    assert source == "Average"
    assert [(Decimal(str(p)), s) for p, s in history] == [(Decimal("6.05"), "Average")]
    assert [(r, Decimal(str(p))) for r, p in retailer] == [("Average", Decimal("6.05"))]


def test_apply_twice_upserts_average_and_appends_history(seeded_engine):
    writer = PriceWriter(seeded_engine)
    writer.apply_prices([canonical(1, "6.05")])
    writer.apply_prices([canonical(1, "6.05")])
    assert count(seeded_engine, "SELECT COUNT(*) FROM retailer_prices WHERE material_id = 1 AND retailer = 'Average'") == 1
    assert count(seeded_engine, "SELECT COUNT(*) FROM price_history WHERE material_id = 1") == 2


def test_retailer_quotes_are_upserted(seeded_engine):
    writer = PriceWriter(seeded_engine)
    quotes = [
        RetailerQuote(1, "Home Depot", Decimal("6.00"), NOW, in_stock=True, url="https://www.homedepot.com/s/2x4x8%20Stud"),
        RetailerQuote(1, "Menards", Decimal("6.10"), NOW, in_stock=False),
    ]
    writer.apply_prices([canonical(1, "6.05")], quotes)
    writer.apply_prices([canonical(1, "6.20")], [RetailerQuote(1, "Menards", Decimal("6.20"), NOW)])
    with seeded_engine.connect() as conn:
        rows = conn.execute(
            text("SELECT retailer, price, in_stock, url FROM retailer_prices WHERE material_id = 1 ORDER BY retailer")
        ).all()
    assert [(r[0], Decimal(str(r[1]))) for r in rows] == [
        ("Average", Decimal("6.2")),
        ("Home Depot", Decimal("6.0")),
        ("Menards", Decimal("6.2")),
    ]
    assert bool(rows[1].in_stock) is True
    assert rows[1].url.startswith("https://www.homedepot.com/")
    assert bool(rows[2].in_stock) is True


class FailingHistoryWriter(PriceWriter):
    def __init__(self, engine, fail_on):
        super().__init__(engine)
        self.fail_on = fail_on
        self.calls = 0

    def _append_history(self, conn, item):
        self.calls += 1
        if self.calls == self.fail_on:
            raise OperationalError("INSERT INTO price_history", {}, Exception("disk I/O error"))
        super()._append_history(conn, item)


def test_failure_rolls_back_whole_batch(engine):
    with engine.begin() as conn:
        for idx in range(1, 6):
            conn.execute(
                text("INSERT INTO material_prices (id, category, name, unit, price) VALUES (:id, 'Lumber', :name, 'each', 10.0)"),
                {"id": idx, "name": f"Board {idx}"},
            )
    writer = FailingHistoryWriter(engine, fail_on=3)
    with pytest.raises(PersistenceError) as excinfo:
        writer.apply_prices([canonical(idx, "12.50") for idx in range(1, 6)])
    assert "disk I/O error" in str(excinfo.value)
    with engine.connect() as conn:
        prices = conn.execute(text("SELECT price FROM material_prices ORDER BY id")).scalars().all()
    assert [Decimal(str(p)) for p in prices] == [Decimal("10")] * 5
    assert count(engine, "SELECT COUNT(*) FROM price_history") == 0
    assert count(engine, "SELECT COUNT(*) FROM retailer_prices") == 0
