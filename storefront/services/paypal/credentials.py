# storefront/services/paypal/credentials.py
import redis
import requests

from storefront.services.paypal.environment import PaypalEnvironment
from storefront.utils.retry import http_retry, redis_retry
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# token odswiezamy troche przed wygasnieciem
EXPIRY_MARGIN_SECONDS = 60


class PaypalPartnerRestCredentials:
    """Token OAuth partnera PayPal, trzymany w redisie do wygasniecia."""

    def __init__(self, environment: PaypalEnvironment, redis_client=None, timeout: int = 10):
        self.environment = environment
        self.redis = redis_client or redis.Redis.from_url(REDIS_URL, decode_responses=True)
        self.timeout = timeout

    @property
    def cache_key(self) -> str:
        return f"paypal:{self.environment.name}:partner_access_token"

    def auth_token(self) -> str:
        token = self._cached_token()
        if not token:
            token = self._refresh()
        return f"Bearer {token}"

    @redis_retry()
    def _cached_token(self) -> str | None:
        return self.redis.get(self.cache_key)

    def _refresh(self) -> str:
        data = self._fetch_token()
        token = data["access_token"]
        ttl = max(int(data.get("expires_in", 0)) - EXPIRY_MARGIN_SECONDS, 1)
        self._store(token, ttl)
        return token

    @redis_retry()
    def _store(self, token: str, ttl: int):
        self.redis.set(self.cache_key, token, ex=ttl)

    @http_retry()
    def _fetch_token(self) -> dict:
        url = f"{self.environment.base_url}/v1/oauth2/token"
        logger.info(f"Fetching PayPal partner access token from {url}")
        resp = requests.post(
            url,
            auth=(self.environment.client_id, self.environment.client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()
