"""Create the schema and seed the default material catalog."""

from __future__ import annotations

from dotenv import load_dotenv

from materialprices.catalog import seed_catalog
from materialprices.db.migrate import run_migrations
from materialprices.db.session import create_engine_from_env


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    run_migrations(engine)
    inserted = seed_catalog(engine)
    print(f"Seed complete: {inserted} materials inserted")


if __name__ == "__main__":
    main()
