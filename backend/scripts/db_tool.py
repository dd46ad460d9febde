from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from bemestar.settings import load_env  # noqa: E402

load_env()

from bemestar.data.seed import apply_seed, wipe  # noqa: E402
from bemestar.db import db_connection  # noqa: E402
from bemestar.db import migrations  # noqa: E402


def migrate_up() -> None:
    with db_connection() as conn:
        applied = migrations.migrate_up(conn)
    if applied:
        print(f"Applied migrations: {', '.join(applied)}")
    else:
        print("Database already up to date.")


def migrate_down() -> None:
    with db_connection() as conn:
        version = migrations.migrate_down(conn)
    if version is None:
        print("No migrations to roll back.")
    else:
        print(f"Rolled back migration {version}.")


def seed_data(force: bool = False) -> None:
    with db_connection() as conn:
        counts = apply_seed(conn, force=force)
    if counts is None:
        print("Seed skipped: profiles already exist. Use --force to reseed.")
        return
    print("Seeded " + ", ".join(f"{table}={count}" for table, count in counts.items()))


def wipe_data() -> None:
    with db_connection() as conn:
        wipe(conn)
    print("All data removed (schema kept).")


def main() -> None:
    parser = argparse.ArgumentParser(description="DB migration and seed tool")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate-up", help="apply migrations")
    sub.add_parser("migrate-down", help="rollback last migration")
    seed_parser = sub.add_parser("seed", help="seed demo data")
    seed_parser.add_argument("--force", action="store_true", help="wipe data before seeding")
    sub.add_parser("wipe", help="delete all rows, keep the schema")

    args = parser.parse_args()
    if args.command == "migrate-up":
        migrate_up()
    elif args.command == "migrate-down":
        migrate_down()
    elif args.command == "seed":
        seed_data(force=args.force)
    elif args.command == "wipe":
        wipe_data()


if __name__ == "__main__":
    main()
