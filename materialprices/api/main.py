"""FastAPI application for the material catalog, overrides and price runs."""

from __future__ import annotations

import hmac
import logging
import os
from dataclasses import asdict
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import text
from sqlalchemy.engine import Engine

from materialprices.db.session import create_engine_from_env, transaction
from materialprices.jobs.price_update import trigger_price_update
from materialprices.logic.runs import RunInProgressError, get_run, recent_runs
from materialprices.utils.dates import utcnow

logger = logging.getLogger(__name__)

app = FastAPI(title="Material Prices API")


class CustomPriceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    material_id: int = Field(alias="materialId")
    custom_price: Decimal = Field(alias="customPrice", ge=0)
    notes: str | None = None


class BatchMaterial(BaseModel):
    category: str
    name: str = Field(min_length=1)
    unit: str
    price: Decimal = Field(ge=0)
    source: str | None = None


class BatchUpdateRequest(BaseModel):
    materials: list[BatchMaterial]


class PriceAlertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    material_id: int = Field(alias="materialId")
    price_threshold: Decimal = Field(alias="priceThreshold", gt=0)
    alert_type: Literal["above", "below"] = Field(alias="alertType")


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_engine_from_env()


def get_dispatcher() -> Callable[[int], object]:
    from materialprices.jobs.celery_app import dispatch_price_update

    return dispatch_price_update


def require_admin(authorization: str | None = Header(default=None)) -> None:
    admin_key = os.environ.get("ADMIN_KEY")
    if not admin_key or not authorization or not hmac.compare_digest(authorization, f"Bearer {admin_key}"):
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.get("/api/materials")
async def list_materials(
    category: str | None = None,
    user_id: str = Header(default="default", alias="user-id"),
    engine: Engine = Depends(get_engine),
) -> list[dict[str, Any]]:
    query = """
        SELECT mp.*, ucp.custom_price, ucp.user_id
        FROM material_prices mp
        LEFT JOIN user_custom_prices ucp ON mp.id = ucp.material_id AND ucp.user_id = :user_id
    """
    params: dict[str, Any] = {"user_id": user_id}
    if category:
        query += " WHERE mp.category = :category"
        params["category"] = category
    query += " ORDER BY mp.category, mp.name"
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(text(query), params).mappings()]


@app.post("/api/materials/custom-price")
async def update_custom_price(payload: CustomPriceRequest, engine: Engine = Depends(get_engine)) -> JSONResponse:
    with transaction(engine) as conn:
        exists = conn.execute(
            text("SELECT 1 FROM material_prices WHERE id = :id"), {"id": payload.material_id}
        ).scalar_one_or_none()
        if not exists:
            raise HTTPException(status_code=404, detail="Material not found")
        conn.execute(
            text(
                """
                INSERT INTO user_custom_prices (user_id, material_id, custom_price, notes, created_at)
                VALUES (:user_id, :material_id, :custom_price, :notes, :created_at)
                ON CONFLICT (user_id, material_id) DO UPDATE SET
                  custom_price = EXCLUDED.custom_price,
                  notes = EXCLUDED.notes,
                  created_at = EXCLUDED.created_at
                """
            ),
            {
                "user_id": payload.user_id,
                "material_id": payload.material_id,
                "custom_price": float(payload.custom_price),
                "notes": payload.notes,
                "created_at": utcnow(),
            },
        )
    return JSONResponse({"success": True})


@app.get("/api/materials/search")
async def search_materials(q: str = Query(..., min_length=1), engine: Engine = Depends(get_engine)) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT * FROM material_prices
                WHERE LOWER(name) LIKE LOWER(:pattern)
                ORDER BY name
                LIMIT 20
                """
            ),
            {"pattern": f"%{q}%"},
        ).mappings()
        return [dict(row) for row in rows]


@app.get("/api/materials/{material_id}/history")
async def price_history(material_id: int, engine: Engine = Depends(get_engine)) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT price, source, recorded_at
                FROM price_history
                WHERE material_id = :id
                ORDER BY recorded_at DESC, id DESC
                LIMIT 30
                """
            ),
            {"id": material_id},
        ).mappings()
        return [dict(row) for row in rows]


@app.get("/api/materials/{material_id}/retailer-prices")
async def retailer_prices(material_id: int, engine: Engine = Depends(get_engine)) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT retailer, price, url, in_stock, last_scraped
                FROM retailer_prices
                WHERE material_id = :id
                ORDER BY price ASC
                """
            ),
            {"id": material_id},
        ).mappings()
        return [dict(row) for row in rows]


@app.post("/api/materials/batch-update")
async def batch_update(payload: BatchUpdateRequest, engine: Engine = Depends(get_engine)) -> JSONResponse:
    now = utcnow()
    with transaction(engine) as conn:
        for material in payload.materials:
            material_id = conn.execute(
                text(
                    """
                    INSERT INTO material_prices (category, name, unit, price, source, last_updated)
                    VALUES (:category, :name, :unit, :price, :source, :ts)
                    ON CONFLICT (name) DO UPDATE SET
                      price = EXCLUDED.price,
                      source = COALESCE(EXCLUDED.source, material_prices.source),
                      last_updated = EXCLUDED.last_updated
                    RETURNING id
                    """
                ),
                {
                    "category": material.category,
                    "name": material.name,
                    "unit": material.unit,
                    "price": float(material.price),
                    "source": material.source,
                    "ts": now,
                },
            ).scalar_one()
            conn.execute(
                text(
                    """
                    INSERT INTO price_history (material_id, price, source, recorded_at)
                    VALUES (:material_id, :price, :source, :ts)
                    """
                ),
                {"material_id": material_id, "price": float(material.price), "source": material.source, "ts": now},
            )
    return JSONResponse({"success": True, "updated": len(payload.materials)})


@app.get("/api/price-alerts")
async def price_alerts(engine: Engine = Depends(get_engine)) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT pa.*, mp.name AS material_name, mp.category
                FROM price_alerts pa
                JOIN material_prices mp ON pa.material_id = mp.id
                WHERE pa.notified = :notified
                ORDER BY pa.created_at DESC, pa.id DESC
                LIMIT 50
                """
            ),
            {"notified": False},
        ).mappings()
        return [dict(row) for row in rows]


@app.post("/api/price-alerts", status_code=201)
async def create_price_alert(payload: PriceAlertRequest, engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    with transaction(engine) as conn:
        exists = conn.execute(
            text("SELECT 1 FROM material_prices WHERE id = :id"), {"id": payload.material_id}
        ).scalar_one_or_none()
        if not exists:
            raise HTTPException(status_code=404, detail="Material not found")
        alert_id = conn.execute(
            text(
                """
                INSERT INTO price_alerts (material_id, price_threshold, alert_type, notified, created_at)
                VALUES (:material_id, :threshold, :alert_type, :notified, :created_at)
                RETURNING id
                """
            ),
            {
                "material_id": payload.material_id,
                "threshold": float(payload.price_threshold),
                "alert_type": payload.alert_type,
                "notified": False,
                "created_at": utcnow(),
            },
        ).scalar_one()
    return {"id": alert_id}


@app.post("/api/admin/scrape-prices", dependencies=[Depends(require_admin)], status_code=202)
async def scrape_prices(
    engine: Engine = Depends(get_engine),
    dispatch: Callable[[int], object] = Depends(get_dispatcher),
) -> dict[str, Any]:
    try:
        run_id = trigger_price_update(engine, dispatch)
    except RunInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info("Manual price update %s dispatched", run_id)
    return {"message": "Price scraping started", "scrapingId": run_id}


@app.get("/api/admin/scraping-status")
async def scraping_status(engine: Engine = Depends(get_engine)) -> list[dict[str, Any]]:
    return [asdict(run) for run in recent_runs(engine, limit=10)]


@app.get("/api/admin/scraping-status/{run_id}")
async def scraping_run(run_id: int, engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    run = get_run(engine, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return asdict(run)


@app.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "healthy", "timestamp": utcnow()}
