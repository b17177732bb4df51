from arq.connections import ArqRedis, RedisSettings, create_pool

from lukaut.config import get_config


def get_redis_settings() -> RedisSettings:
    """Get arq Redis settings from REDIS_URL."""
    return RedisSettings.from_dsn(get_config().redis_url)


async def get_queue() -> ArqRedis:
    """Create a connection pool to the Redis queue."""
    return await create_pool(get_redis_settings())
