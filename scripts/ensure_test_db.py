from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import make_url

from revealcards.core.config import get_settings

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_database_name(db_name: str) -> None:
    if "test" not in db_name.lower():
        raise RuntimeError(f"Refusing to create '{db_name}': the name must contain 'test'.")
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'; use [A-Za-z0-9_] only.")


async def ensure_database(database_url: str) -> bool:
    """Create the database named in ``database_url``; return False if it already existed."""
    parsed = make_url(database_url)
    if parsed.get_backend_name() != "postgresql":
        raise RuntimeError("Only PostgreSQL URLs are supported.")
    db_name = (parsed.database or "").strip()
    if not db_name or parsed.username is None:
        raise RuntimeError("The URL needs a database name and a username.")
    _check_database_name(db_name)

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


def main() -> int:
    database_url = get_settings().database_url
    created = asyncio.run(ensure_database(database_url))
    print(f"ensure_test_db: {'created' if created else 'exists'} db={make_url(database_url).database}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
