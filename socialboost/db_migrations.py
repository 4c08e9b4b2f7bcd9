"""Forward-only schema upgrades for databases created by older releases.

`create_all` only creates missing tables, so columns added to existing tables
are backfilled here. Each migration runs in the same transaction that records
it in `schema_migrations`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine


MigrationFn = Callable[[Connection], None]


def _columns(conn: Connection, table: str) -> set[str] | None:
    inspector = inspect(conn)
    if table not in inspector.get_table_names():
        return None
    return {col["name"] for col in inspector.get_columns(table)}


def _add_missing(conn: Connection, table: str, ddl: dict[str, str]) -> None:
    existing = _columns(conn, table)
    if existing is None:
        return
    for column, column_type in ddl.items():
        if column not in existing:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}"))


def _users_billing_columns(conn: Connection) -> None:
    _add_missing(
        conn,
        "users",
        {
            "stripe_customer_id": "VARCHAR(255)",
            "stripe_subscription_id": "VARCHAR(255)",
            "billing_version": "INTEGER DEFAULT 0",
        },
    )
    if _columns(conn, "users") is not None:
        conn.execute(text("UPDATE users SET billing_version = 0 WHERE billing_version IS NULL"))
        conn.execute(text("UPDATE users SET monthly_posts_used = 0 WHERE monthly_posts_used IS NULL"))


def _business_profiles_social_columns(conn: Connection) -> None:
    _add_missing(
        conn,
        "business_profiles",
        {
            "social_access_token": "TEXT",
            "social_user_id": "VARCHAR(120)",
        },
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20261001_users_billing_columns", _users_billing_columns),
    ("20261017_business_profiles_social_columns", _business_profiles_social_columns),
]


def run_migrations(engine: Engine) -> list[str]:
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version VARCHAR(64) PRIMARY KEY, applied_at TIMESTAMP NOT NULL)"
            )
        )
        done = {row[0] for row in conn.execute(text("SELECT version FROM schema_migrations"))}

    applied: list[str] = []
    for version, migration_fn in MIGRATIONS:
        if version in done:
            continue
        with engine.begin() as conn:
            migration_fn(conn)
            conn.execute(
                text("INSERT INTO schema_migrations(version, applied_at) VALUES (:v, :ts)"),
                {"v": version, "ts": datetime.now(timezone.utc)},
            )
        applied.append(version)
    return applied
