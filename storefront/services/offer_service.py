# storefront/services/offer_service.py
from dataclasses import dataclass
from typing import Optional

from storefront.domain.cart_state import CartState
from storefront.domain.offers import CheckoutStatus, OfferFlow
from storefront.services.offer_session_store import OfferSessionStore
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OfferStep:
    status: CheckoutStatus
    cart: CartState
    offer_id: Optional[str] = None
    offer_type: Optional[str] = None
    description: Optional[str] = None
    price_if_accepted: Optional[int] = None


class OfferService:
    """
    Use case: oferty po kliknieciu "zaplac".
    Kazde wywolanie odtwarza OfferFlow z koszyka i zakonczonych ofert z redisa.
    """

    def __init__(self, store: OfferSessionStore):
        self.store = store

    def _start(self, session_key: str, cart: CartState, user_id: str | None) -> OfferFlow:
        flow = OfferFlow(cart, self.store.completed_offer_ids(session_key), user_id=user_id)
        flow.start_offering()
        return flow

    def next_offer(self, session_key: str, cart: CartState, user_id: str | None = None) -> OfferStep:
        return self._step(self._start(session_key, cart, user_id))

    def respond(
        self,
        session_key: str,
        cart: CartState,
        offer_id: str,
        accept: bool,
        user_id: str | None = None,
    ) -> OfferStep:
        flow = self._start(session_key, cart, user_id)
        current = flow.current_offer
        if current is None or current.id != offer_id:
            raise ValueError(f"Offer {offer_id} is not currently offered")

        if accept:
            flow.accept()
        else:
            flow.decline()
        self.store.mark_completed(session_key, offer_id)
        logger.info(f"Offer {offer_id} {'accepted' if accept else 'declined'} ({session_key})")
        return self._step(flow)

    @staticmethod
    def _step(flow: OfferFlow) -> OfferStep:
        offer = flow.current_offer
        if offer is None:
            return OfferStep(status=flow.status, cart=flow.cart)

        description = offer.cross_sell.description if offer.type == "cross-sell" else offer.upsell.description
        price_if_accepted = sum(p.price for p in flow.products_if_accepted or [])
        return OfferStep(
            status=flow.status,
            cart=flow.cart,
            offer_id=offer.id,
            offer_type=offer.type,
            description=description,
            price_if_accepted=price_if_accepted,
        )
