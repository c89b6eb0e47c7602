"""Price update run orchestration."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable

import httpx
from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from materialprices.catalog import list_materials
from materialprices.db.session import create_engine_from_env
from materialprices.email.render import render_changes
from materialprices.logic.aggregate import aggregate
from materialprices.logic.persist import PriceWriter
from materialprices.logic.runs import RunInProgressError, complete_run, fail_run, get_run, start_run
from materialprices.logic.signals import detect_changes
from materialprices.scraping.client import RetailerClient
from materialprices.scraping.models import ChangeEvent, Material, RunRecord
from materialprices.scraping.retailers import resolve_retailers
from materialprices.scraping.settings import ConfigurationError, ScraperSettings
from materialprices.utils.esp import EmailMessage, EmailProvider

logger = logging.getLogger(__name__)


class PriceUpdateRunner:
    """Fetch, aggregate, persist and compare prices for the whole catalog."""

    def __init__(
        self,
        engine: Engine,
        *,
        settings: ScraperSettings | None = None,
        client: RetailerClient | None = None,
        writer: PriceWriter | None = None,
        email_provider: EmailProvider | None = None,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self._client = client
        self.writer = writer or PriceWriter(engine)
        self.email_provider = email_provider or EmailProvider()

    async def run(self, run_id: int | None = None) -> RunRecord:
        if run_id is None:
            run_id = start_run(self.engine)
        try:
            updated = await self._execute()
        except Exception as exc:
            logger.exception("Price update run %s failed", run_id)
            fail_run(self.engine, run_id, str(exc) or exc.__class__.__name__)
        else:
            complete_run(self.engine, run_id, updated)
        return get_run(self.engine, run_id)

    async def _execute(self) -> int:
        if self.settings is None:
            self.settings = ScraperSettings.from_env()
        self.settings.validate()
        materials = await asyncio.get_running_loop().run_in_executor(None, list_materials, self.engine)
        if not materials:
            raise ConfigurationError("Material catalog is empty")
        retailers = resolve_retailers(self.settings.retailers)
        prior_prices = {m.id: m.price for m in materials}

        client = self._client or RetailerClient(self.settings)
        try:
            quotes = await client.fetch_all(materials, retailers)
        finally:
            if self._client is None:
                await client.close()

        canonical = aggregate(quotes)
        logger.info("Aggregated %s quotes into %s prices", len(quotes), len(canonical))
        await asyncio.get_running_loop().run_in_executor(
            None, self.writer.apply_prices, canonical, quotes
        )

        events = detect_changes(canonical, prior_prices, threshold=self.settings.change_threshold)
        if events:
            await self._notify(events, {m.id: m for m in materials})
        return len(canonical)

    async def _notify(self, events: list[ChangeEvent], materials: dict[int, Material]) -> None:
        recipient = os.environ.get("CHANGE_ALERT_RECIPIENT")
        if not recipient:
            return
        try:
            subject, html = render_changes(events, materials)
            await self.email_provider.send(EmailMessage(to=recipient, subject=subject, html=html))
        except httpx.HTTPError as exc:
            logger.warning("Change notification to %s failed: %s", recipient, exc)
        except Exception:
            # prices are already committed at this point
            logger.exception("Could not build change notification for %s", recipient)


def trigger_price_update(engine: Engine, dispatch: Callable[[int], object]) -> int:
    """Record a new run and hand it to ``dispatch`` without waiting for it."""
    run_id = start_run(engine)
    try:
        dispatch(run_id)
    except Exception as exc:
        fail_run(engine, run_id, f"Dispatch failed: {exc}")
        raise
    return run_id


async def run_price_update(run_id: int | None = None) -> RunRecord | None:
    load_dotenv()
    engine = create_engine_from_env()
    try:
        return await PriceUpdateRunner(engine).run(run_id)
    except RunInProgressError as exc:
        logger.warning("Skipping scheduled price update: %s", exc)
        return None
    finally:
        engine.dispose()


if __name__ == "__main__":
    asyncio.run(run_price_update())
