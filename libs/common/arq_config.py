"""arq connection settings derived from ``REDIS_URL``."""

from arq.connections import RedisSettings

from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    return RedisSettings.from_dsn(get_settings().REDIS_URL)
