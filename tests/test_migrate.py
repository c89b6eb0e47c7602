from sqlalchemy import create_engine, inspect

from materialprices.db.migrate import SCHEMA_PATH, _load_statements, run_migrations


def test_schema_statements():
    statements = list(_load_statements(SCHEMA_PATH.read_text()))
    assert len(statements) == 7
    assert all(stmt.rstrip().endswith(";") for stmt in statements)
    tables = [stmt.split()[5] for stmt in statements if stmt.startswith("CREATE TABLE")]
    assert tables == [
        "material_prices",
        "user_custom_prices",
        "price_history",
        "scraping_logs",
        "retailer_prices",
        "price_alerts",
    ]


def test_run_migrations_applies_statements():
    engine = create_engine("sqlite://", future=True)
    schema = """
    -- runs table
    CREATE TABLE runs (id INTEGER PRIMARY KEY, status TEXT);
    CREATE INDEX idx_runs_status
      ON runs (status);
    """
    assert run_migrations(engine, schema) == 2
    assert "runs" in inspect(engine).get_table_names()
