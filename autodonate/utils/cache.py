import redis

from autodonate.config import REDIS_URL
from autodonate.utils.logger import get_logger

logger = get_logger(__name__)

_client = None


def r():
    global _client
    if _client is None:
        _client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return _client


def campaign_progress_key(campaign_id: str) -> str:
    return f"campaign:{campaign_id}:progress:v1"


def invalidate_campaign_progress(campaign_id: str) -> None:
    """Drop the cached progress document; a cache outage is never fatal."""
    try:
        r().delete(campaign_progress_key(campaign_id))
    except redis.RedisError as e:
        logger.warning(f"cache invalidation failed for campaign {campaign_id}: {e}")
