from decimal import Decimal

from materialprices.email.render import render_changes
from materialprices.scraping.models import ChangeEvent, Material


def test_render_changes():
    events = [
        ChangeEvent(material_id=1, old_price=Decimal("100.00"), new_price=Decimal("120.00"), percent_change=Decimal("0.2")),
        ChangeEvent(material_id=2, old_price=Decimal("1250.00"), new_price=Decimal("1000.00"), percent_change=Decimal("0.2")),
    ]
    materials = {1: Material(id=1, name="Architectural Shingles", category="Roofing")}
    subject, html = render_changes(events, materials, status_url="https://prices.example.com/status")
    assert subject.startswith("Material price changes")
    assert "Architectural Shingles" in html
    assert "$120.00" in html
    assert "+20.0%" in html
    assert "Material 2" in html
    assert "$1,250.00" in html
    assert "-20.0%" in html
    assert "https://prices.example.com/status" in html
