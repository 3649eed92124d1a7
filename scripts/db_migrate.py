from __future__ import annotations

import argparse
import os
from datetime import datetime, timezone
from pathlib import Path

import psycopg

from livetrans.config import Settings


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply livetrans SQL migrations to PostgreSQL.")
    parser.add_argument(
        "--migrations-dir",
        default="infra/migrations",
        help="Directory containing *.sql migrations (default: infra/migrations)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override database url (otherwise uses livetrans Settings.database_url)",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Only list applied and pending migrations",
    )
    return parser.parse_args()


def _ensure_migrations_table(conn: psycopg.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          name TEXT PRIMARY KEY,
          applied_at TIMESTAMPTZ NOT NULL
        )
        """,
    )


def _applied(conn: psycopg.Connection) -> set[str]:
    _ensure_migrations_table(conn)
    rows = conn.execute("SELECT name FROM schema_migrations").fetchall()
    return {str(r[0]) for r in rows}


def _split_statements(sql: str) -> list[str]:
    # Migrations must not contain ";" inside string literals.
    lines = [ln for ln in sql.splitlines() if not ln.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def _apply_one(conn: psycopg.Connection, name: str, sql: str) -> None:
    for statement in _split_statements(sql):
        conn.execute(statement)
    conn.execute(
        "INSERT INTO schema_migrations (name, applied_at) VALUES (%s, %s)",
        (name, datetime.now(tz=timezone.utc)),
    )


def main() -> None:
    args = _parse_args()
    settings = Settings()
    migrations_dir = Path(args.migrations_dir).resolve()
    if not migrations_dir.exists():
        raise SystemExit(f"migrations dir not found: {migrations_dir}")

    database_url = args.database_url or os.environ.get("DATABASE_URL") or settings.database_url
    sql_files = sorted(p for p in migrations_dir.glob("*.sql") if p.is_file())
    if not sql_files:
        raise SystemExit(f"no .sql migrations found in {migrations_dir}")

    with psycopg.connect(database_url, autocommit=False) as conn:
        already = _applied(conn)
        conn.commit()
        pending = [p for p in sql_files if p.name not in already]
        if args.status:
            for path in sql_files:
                print(f"{'pending' if path in pending else 'applied':8} {path.name}")
            return
        for path in pending:
            _apply_one(conn, path.name, path.read_text(encoding="utf-8"))
            conn.commit()
            print(f"applied {path.name}")
        if not pending:
            print("schema up to date")


if __name__ == "__main__":
    main()

