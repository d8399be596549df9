# storefront/services/paypal_carrier_mapper.py
import json
import os

from storefront.utils.settings import PAYPAL_CARRIERS_PATH
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class PaypalCarrierMapper:
    """Nazwa przewoznika wpisana przez sprzedawce -> kod przewoznika PayPal."""

    def __init__(self, path: str | None = None):
        self.path = path or PAYPAL_CARRIERS_PATH
        self.carrier_mapping = self._load_carrier_mapping()

    def lookup(self, carrier_name) -> str | None:
        if not isinstance(carrier_name, str) or not carrier_name.strip():
            return None

        normalized_name = carrier_name.strip().casefold()
        for key, value in self.carrier_mapping.items():
            if key.casefold() == normalized_name:
                return value
        return None

    def _load_carrier_mapping(self) -> dict:
        if not os.path.exists(self.path):
            logger.error(f"PayPal carriers config not found at {self.path}")
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                mapping = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load PayPal carriers config: {e}")
            return {}

        if not isinstance(mapping, dict):
            logger.error(f"Invalid PayPal carriers config format at {self.path}")
            return {}

        return mapping
