#!/usr/bin/env python3
"""Initialize (and migrate) the recipe database; optionally reset or seed it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipe_store.config import get_store_config
from recipe_store.db.database import Database
from recipe_store.seed import seed_database


def main():
    parser = argparse.ArgumentParser(description="Initialize the recipe database")
    parser.add_argument("--db-path", type=str, help="Override database path")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate every table")
    parser.add_argument("--seed", action="store_true", help="Insert default templates and sample recipes")
    parser.add_argument("--seed-yaml", type=str, help="YAML file with templates/recipes to insert")
    args = parser.parse_args()

    logging.basicConfig(
        level=get_store_config().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(_run(args)))


async def _run(args: argparse.Namespace) -> int:
    db = Database(path=args.db_path)
    try:
        report = await db.init()
        print(f"Database initialized at: {db.path}")
        print(f"Migrations {report.summary()}")
        if report.deferred_indexes:
            print(f"  Indexes deferred during schema creation: {', '.join(report.deferred_indexes)}")

        if args.reset:
            await db.reset()
            print("All tables dropped and recreated.")

        if args.seed:
            templates, recipes = await seed_database(db)
            print(f"  Seeded {templates} templates and {recipes} recipes")

        if args.seed_yaml:
            await _seed_yaml(db, Path(args.seed_yaml))
    finally:
        await db.close()
    print("Done.")
    return 0 if report.ok else 1


async def _seed_yaml(db: Database, path: Path):
    import yaml
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    templates, recipes = await seed_database(
        db,
        templates=data.get("templates", []),
        recipes=data.get("recipes", []),
    )
    print(f"  Seeded {templates} templates and {recipes} recipes from {path}")


if __name__ == "__main__":
    main()
