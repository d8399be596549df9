# storefront/services/offer_session_store.py
import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, OFFER_SESSION_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class OfferSessionStore:
    """
    Zakonczone (zaakceptowane lub odrzucone) oferty dla sesji koszyka.
    Zbior w redisie z TTL - po wygasnieciu oferty moga wrocic.
    """

    def __init__(self, url: str | None = None, ttl: int = OFFER_SESSION_TTL_SECONDS, client=None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl

    @staticmethod
    def _key(session_key: str) -> str:
        return f"checkout:{session_key}:completed_offers"

    @redis_retry()
    def completed_offer_ids(self, session_key: str) -> set[str]:
        return set(self.redis.smembers(self._key(session_key)))

    @redis_retry()
    def mark_completed(self, session_key: str, offer_id: str):
        key = self._key(session_key)
        logger.info(f"Offer {offer_id} completed for {key}")
        # SADD jest idempotentny, drugi raz ten sam id nic nie zmienia
        pipe = self.redis.pipeline()
        pipe.sadd(key, offer_id)
        pipe.expire(key, self.ttl)
        pipe.execute()
