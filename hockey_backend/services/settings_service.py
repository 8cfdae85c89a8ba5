"""
Runtime switches (demo mode, email and SMS kill switches) stored in the
``settings`` table.

Lookup order is database row, Redis copy, environment variable, default.
Redis is only used when REDIS_HOST is set; it lets a second API instance see
a toggled switch without querying the table on every notification.
"""

import os
import logging
from typing import Optional
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv
from hockey_backend.database.models import Setting

load_dotenv()

logger = logging.getLogger(__name__)

DEMO_MODE_KEY = "demo_mode"
TRUTHY = ("true", "1", "yes")

REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
CACHE_TTL_SECONDS = 60
REDIS_KEY_PREFIX = "settings:"

_redis_client: Optional[Redis] = None


def _is_truthy(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def get_bool_env(key: str, default: bool = True) -> bool:
    """Read a boolean flag from the environment ("true", "1" or "yes" mean on)."""
    value = os.getenv(key)
    return default if value is None else _is_truthy(value)


async def _discard_client() -> None:
    global _redis_client
    stale, _redis_client = _redis_client, None
    try:
        await stale.aclose()
    except Exception as e:
        logger.debug(f"Ignoring error while closing Redis client: {e}")


async def get_redis_client() -> Optional[Redis]:
    """
    Shared Redis client, or None when REDIS_HOST is unset or the server is down.

    A client that stops answering PING is dropped and reconnected on the next call.
    """
    global _redis_client

    if not REDIS_HOST:
        return None

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis stopped answering, reconnecting: {e}")
            await _discard_client()

    address = f"{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"
    client = Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Settings cache unavailable at {address}: {e}")
        return None

    logger.info(f"Settings cache connected at {address}")
    _redis_client = client
    return client


async def close_redis_connection() -> None:
    if _redis_client is not None:
        await _discard_client()


async def _read_cache(key: str) -> Optional[str]:
    try:
        client = await get_redis_client()
        return None if client is None else await client.get(REDIS_KEY_PREFIX + key)
    except Exception as e:
        logger.warning(f"Settings cache read of {key} failed: {e}")
        return None


async def _write_cache(key: str, value: Optional[str]) -> None:
    try:
        client = await get_redis_client()
        if client is None:
            return
        if value is None:
            await client.delete(REDIS_KEY_PREFIX + key)
        else:
            await client.setex(REDIS_KEY_PREFIX + key, CACHE_TTL_SECONDS, value)
    except Exception as e:
        logger.warning(f"Settings cache write of {key} failed: {e}")


async def _find(session: AsyncSession, key: str) -> Optional[Setting]:
    result = await session.execute(select(Setting).where(Setting.key == key))
    return result.scalar_one_or_none()


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """Stored value for ``key``, or None when there is no row."""
    setting = await _find(session, key)
    return setting.value if setting else None


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """Insert or overwrite ``key`` and push the new value to the cache."""
    setting = await _find(session, key)
    if setting is None:
        session.add(Setting(key=key, value=value))
    else:
        setting.value = value
    await session.flush()
    await _write_cache(key, value)


async def get_setting_with_fallback(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
    fallback_to_cache: bool = True,
) -> Optional[str]:
    """
    Resolve ``key`` from the database, then the cache, then ``env_var``.

    A value found in the database refreshes the cached copy. A database error
    is logged and treated as "no row" so notifications keep flowing.
    """
    if session is not None:
        try:
            stored = await get_setting(session, key)
        except Exception as e:
            logger.warning(f"Could not read setting {key} from database: {e}")
            stored = None
        if stored is not None:
            await _write_cache(key, stored)
            return stored

    if fallback_to_cache:
        cached = await _read_cache(key)
        if cached is not None:
            return cached

    if env_var and os.getenv(env_var) is not None:
        return os.getenv(env_var)

    return default


async def get_bool_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: bool = True,
) -> bool:
    value = await get_setting_with_fallback(session, key, env_var)
    return default if value is None else _is_truthy(value)


async def is_demo_mode(session: Optional[AsyncSession] = None) -> bool:
    """True when outgoing email and SMS are captured for the demo inbox instead of sent."""
    return await get_bool_setting(session, DEMO_MODE_KEY, env_var="DEMO_MODE", default=False)
