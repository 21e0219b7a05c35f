import json
from typing import Optional

import asyncpg
from loguru import logger

from placeflow.config import settings

pool: Optional[asyncpg.Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    # jsonb columns round-trip as Python dicts/lists
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )
    await conn.set_type_codec(
        "json", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


async def init_pool() -> asyncpg.Pool:
    global pool
    if pool is None:
        pool = await asyncpg.create_pool(
            host=settings.database_host,
            port=settings.database_port,
            database=settings.database_name,
            user=settings.database_user,
            password=settings.database_password,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
            init=_init_connection,
            ssl="disable",
        )
        logger.debug(
            f"Database pool ready ({settings.database_host}:{settings.database_port}/{settings.database_name})"
        )
    return pool


async def close_pool():
    global pool
    if pool:
        await pool.close()
        pool = None
