"""Change notification rendering."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping

from jinja2 import Environment, FileSystemLoader, select_autoescape

from materialprices.scraping.models import ChangeEvent, Material
from materialprices.utils.dates import format_date, today_in_tz

TEMPLATE_DIR = Path(__file__).parent
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",)),
)


def render_changes(
    events: Iterable[ChangeEvent],
    materials: Mapping[int, Material],
    *,
    status_url: str | None = None,
) -> tuple[str, str]:
    rows = []
    for event in events:
        material = materials.get(event.material_id)
        rows.append(
            {
                "name": material.name if material else f"Material {event.material_id}",
                "category": material.category if material else "-",
                "old_price": _format_currency(event.old_price),
                "new_price": _format_currency(event.new_price),
                "delta_pct": _format_delta(event),
            }
        )
    subject = f"Material price changes: {format_date(today_in_tz())}"
    context: dict[str, Any] = {
        "subject": subject,
        "intro": f"{len(rows)} materials moved beyond the alert threshold in the latest update.",
        "changes": rows,
        "status_url": status_url,
    }
    html = ENV.get_template("template.html").render(**context)
    return subject, html


def _format_currency(value: Decimal) -> str:
    return f"${value:,.2f}"


def _format_delta(event: ChangeEvent) -> str:
    sign = "+" if event.new_price >= event.old_price else "-"
    return f"{sign}{float(event.percent_change) * 100:.1f}%"
