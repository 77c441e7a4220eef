import os
from typing import Optional

from psycopg_pool import ConnectionPool

from drivecrm import config

_pool: Optional[ConnectionPool] = None


def get_pool() -> ConnectionPool:
    """Process-wide pool, opened on first use. libpq reads PG* env vars."""
    global _pool
    if _pool is None:
        _pool = ConnectionPool(
            conninfo="",
            kwargs=dict(
                host=os.getenv("PGHOST", "postgres"),
                dbname=os.getenv("PGDATABASE", "postgres"),
                user=os.getenv("PGUSER", "drivecrm"),
                password=os.getenv("PGPASSWORD"),
                sslmode=os.getenv("PGSSLMODE", "prefer"),
                connect_timeout=5,
            ),
            max_size=config.DB_POOL_MAX,
            timeout=10,
            open=True,
        )
    return _pool


def close_pool() -> None:
    global _pool
    if _pool is not None:
        _pool.close()
        _pool = None
