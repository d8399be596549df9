# storefront/services/order_client.py
import requests
from requests import RequestException

from storefront.errors import OrderCreationError
from storefront.utils.settings import ORDER_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class OrderCreationClient:
    """
    Klient serwisu tworzacego zamowienia.
    Bez retry - platnosc wysylamy dokladnie raz.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 30):
        self.base_url = (base_url or ORDER_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    def start_order_creation(self, payload: dict) -> dict:
        url = f"{self.base_url}/orders"
        logger.info(f"OrderCreationClient POST {url} ({len(payload.get('lineItems', []))} line items)")

        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except (RequestException, ValueError) as e:
            logger.error(f"Order creation failed: {e}")
            raise OrderCreationError(str(e)) from e
