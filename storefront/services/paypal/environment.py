# storefront/services/paypal/environment.py
from dataclasses import dataclass

from storefront.utils import settings

SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"
LIVE_BASE_URL = "https://api-m.paypal.com"


@dataclass(frozen=True)
class PaypalEnvironment:
    name: str  # sandbox | live
    base_url: str
    client_id: str
    client_secret: str
    partner_email: str = ""
    bn_code: str = ""
    brand_name: str = "Storefront"

    @property
    def is_live(self) -> bool:
        return self.name == "live"

    @classmethod
    def from_settings(cls) -> "PaypalEnvironment":
        """Wybor sandbox/live raz przy starcie - dalej przekazywany jako wartosc."""
        name = settings.PAYPAL_ENVIRONMENT
        if name not in ("sandbox", "live"):
            raise ValueError(f"Unknown PAYPAL_ENVIRONMENT: {name}")
        return cls(
            name=name,
            base_url=LIVE_BASE_URL if name == "live" else SANDBOX_BASE_URL,
            client_id=settings.PAYPAL_PARTNER_CLIENT_ID,
            client_secret=settings.PAYPAL_PARTNER_CLIENT_SECRET,
            partner_email=settings.PAYPAL_PARTNER_EMAIL,
            bn_code=settings.PAYPAL_BN_CODE,
            brand_name=settings.PAYPAL_BRAND_NAME,
        )
