import pytest
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.pool import StaticPool

from materialprices.scraping.settings import ProxyConfig, ScraperSettings

metadata = MetaData()

material_prices = Table(
    "material_prices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("category", String(100), nullable=False),
    Column("name", String(200), nullable=False, unique=True),
    Column("unit", String(50), nullable=False),
    Column("price", Numeric(10, 2), server_default="0"),
    Column("source", String(100)),
    Column("location", String(100), server_default="National Average"),
    Column("last_updated", DateTime, server_default=func.current_timestamp()),
)

user_custom_prices = Table(
    "user_custom_prices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(100), nullable=False),
    Column("material_id", Integer, ForeignKey("material_prices.id")),
    Column("custom_price", Numeric(10, 2)),
    Column("notes", Text),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    UniqueConstraint("user_id", "material_id"),
)

price_history = Table(
    "price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("material_id", Integer, ForeignKey("material_prices.id")),
    Column("price", Numeric(10, 2)),
    Column("source", String(100)),
    Column("recorded_at", DateTime, server_default=func.current_timestamp()),
)

scraping_logs = Table(
    "scraping_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("status", String(50)),
    Column("started_at", DateTime),
    Column("completed_at", DateTime),
    Column("materials_updated", Integer, server_default="0"),
    Column("errors", Text),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

retailer_prices = Table(
    "retailer_prices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("material_id", Integer, ForeignKey("material_prices.id")),
    Column("retailer", String(100)),
    Column("price", Numeric(10, 2)),
    Column("url", Text),
    Column("in_stock", Boolean, server_default="1"),
    Column("last_scraped", DateTime, server_default=func.current_timestamp()),
    UniqueConstraint("material_id", "retailer"),
)

price_alerts = Table(
    "price_alerts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("material_id", Integer, ForeignKey("material_prices.id")),
    Column("price_threshold", Numeric(10, 2)),
    Column("alert_type", String(20)),
    Column("notified", Boolean, server_default="0"),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seeded_engine(engine):
    with engine.begin() as conn:
        conn.execute(material_prices.insert(), [
            {"category": "Lumber", "name": "2x4x8 Stud", "unit": "each", "price": 5.98, "source": "default"},
            {"category": "Concrete", "name": "80lb Concrete Bag", "unit": "bag", "price": 8.99, "source": "default"},
            {"category": "Drywall", "name": "1/2\" Drywall 4x8", "unit": "sheet", "price": 100.0, "source": "default"},
        ])
    return engine


@pytest.fixture()
def settings():
    return ScraperSettings(
        change_threshold=0.15,
        proxy=ProxyConfig(username="user", password="secret"),
        retailers=("home_depot", "lowes", "menards"),
        concurrency_per_retailer=2,
        request_timeout=5.0,
    )
