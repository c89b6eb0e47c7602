from datetime import datetime
from decimal import Decimal

import pytest

from materialprices.logic.aggregate import aggregate, mean_price, round_price
from materialprices.scraping.models import RetailerQuote

NOW = datetime(2026, 10, 1, 2, 0)


def quote(material_id, price, retailer="Home Depot"):
    return RetailerQuote(material_id=material_id, retailer=retailer, price=Decimal(price), timestamp=NOW)


def test_aggregate_mean():
    result = aggregate([quote(1, "10.00"), quote(1, "12.00", "Lowe's"), quote(1, "11.00", "Menards")], now=NOW)
    assert len(result) == 1
    assert result[0].material_id == 1
    assert result[0].price == Decimal("11.00")
    assert result[0].source == "Average"
    assert result[0].timestamp == NOW


def test_aggregate_rounds_half_up():
    result = aggregate([quote(1, "10.00"), quote(1, "10.01", "Lowe's")])
    assert result[0].price == Decimal("10.01")


def test_aggregate_float_prices_round_half_up():
    quotes = [
        RetailerQuote(material_id=1, retailer="Home Depot", price=10.00, timestamp=NOW),
        RetailerQuote(material_id=1, retailer="Lowe's", price=10.01, timestamp=NOW),
    ]
    assert aggregate(quotes)[0].price == Decimal("10.01")


def test_aggregate_groups_by_material():
    result = aggregate([quote(1, "5.00"), quote(2, "8.00"), quote(1, "7.00", "Lowe's")])
    by_id = {item.material_id: item.price for item in result}
    assert by_id == {1: Decimal("6.00"), 2: Decimal("8.00")}


def test_material_without_quotes_is_absent():
    result = aggregate([quote(1, "5.00")])
    assert [item.material_id for item in result] == [1]
    assert aggregate([]) == []


def test_round_price():
    assert round_price(Decimal("2.345")) == Decimal("2.35")
    assert round_price(Decimal("2.344")) == Decimal("2.34")
    assert mean_price([Decimal("1"), Decimal("2")]) == Decimal("1.50")
    with pytest.raises(ValueError):
        mean_price([])
