# storefront/domain/offers.py
"""
Oferty po dodaniu do koszyka (cross-sell / upsell) i stany checkoutu.

    input -> offering -> validate -> finished
                   \\         \\         \\-> cancel -> input
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Union

from storefront.domain.cart_state import (
    AcceptedOffer,
    CartItem,
    CartState,
    CrossSell,
    ProductOption,
    Upsell,
    find_cart_item,
)
from storefront.domain.pricing import CheckoutProduct, checkout_products
from storefront.errors import InvalidOfferTransition


class CheckoutStatus(Enum):
    INPUT = "input"
    OFFERING = "offering"
    VALIDATE = "validate"
    FINISHED = "finished"
    CANCEL = "cancel"


TRANSITIONS: Dict[CheckoutStatus, Set[CheckoutStatus]] = {
    CheckoutStatus.INPUT: {CheckoutStatus.OFFERING, CheckoutStatus.CANCEL},
    CheckoutStatus.OFFERING: {CheckoutStatus.VALIDATE, CheckoutStatus.CANCEL},
    CheckoutStatus.VALIDATE: {CheckoutStatus.FINISHED, CheckoutStatus.CANCEL},
    CheckoutStatus.FINISHED: {CheckoutStatus.CANCEL},
    CheckoutStatus.CANCEL: {CheckoutStatus.INPUT},
}


@dataclass
class OfferedCrossSell:
    cross_sell: CrossSell
    type: str = "cross-sell"

    @property
    def id(self) -> str:
        return self.cross_sell.id


@dataclass
class OfferedUpsell:
    upsell: Upsell
    item: CartItem
    offered_option: ProductOption
    type: str = "upsell"

    @property
    def id(self) -> str:
        return self.upsell.id


Offer = Union[OfferedCrossSell, OfferedUpsell]


def eligible_offers(cart: CartState, completed_offer_ids: Set[str]) -> List[Offer]:
    """Cross-selle (bez duplikatow), potem upselle. Pomija zakonczone i te juz w koszyku."""
    offers: List[Offer] = []

    seen = set()
    for item in cart.items:
        for cross_sell in item.product.cross_sells:
            if cross_sell.id in seen:
                continue
            seen.add(cross_sell.id)
            if cross_sell.id in completed_offer_ids:
                continue
            offered = cross_sell.offered_product
            if find_cart_item(cart, offered.product.permalink, offered.option_id):
                continue
            offers.append(OfferedCrossSell(cross_sell))

    for item in cart.items:
        upsell = item.product.upsell
        if upsell is None or upsell.id in completed_offer_ids:
            continue
        current_option = item.product.find_option(item.option_id)
        if current_option is None:
            continue
        offered_option = item.product.find_option(current_option.upsell_offered_variant_id)
        if offered_option is None:
            continue
        if find_cart_item(cart, item.product.permalink, offered_option.id):
            continue
        offers.append(OfferedUpsell(upsell, item, offered_option))

    return offers


class OfferFlow:
    """
    Jawna maszyna stanow checkoutu.

    Po wejsciu w offering wylicza kolejke ofert. Dla biezacej oferty od razu
    (synchronicznie) liczy produkty koszyka "po akceptacji", zeby formularz
    platnosci mial gotowa cene zanim kupujacy kliknie.
    """

    def __init__(
        self,
        cart: CartState,
        completed_offer_ids: Optional[Set[str]] = None,
        user_id: Optional[str] = None,
    ):
        self.cart = cart
        self.completed_offer_ids = completed_offer_ids if completed_offer_ids is not None else set()
        self.user_id = user_id
        self.status = CheckoutStatus.INPUT
        self.offers: List[Offer] = []
        self.products_if_accepted: Optional[List[CheckoutProduct]] = None

    @property
    def current_offer(self) -> Optional[Offer]:
        return self.offers[0] if self.offers else None

    def _transition(self, target: CheckoutStatus):
        if target not in TRANSITIONS[self.status]:
            raise InvalidOfferTransition(self.status, target)
        self.status = target

    def start_offering(self) -> Optional[Offer]:
        self._transition(CheckoutStatus.OFFERING)
        self.offers = eligible_offers(self.cart, self.completed_offer_ids)
        if not self.offers:
            self._transition(CheckoutStatus.VALIDATE)
        self._precompute()
        return self.current_offer

    def _precompute(self):
        if self.current_offer is None:
            self.products_if_accepted = None
            return
        self.products_if_accepted = checkout_products(self.cart_if_accepted(), self.user_id)

    def cart_if_accepted(self) -> CartState:
        offer = self.current_offer
        if isinstance(offer, OfferedCrossSell):
            return self._cart_with_cross_sell(offer.cross_sell)
        if isinstance(offer, OfferedUpsell):
            return self._cart_with_upsell(offer)
        return self.cart

    def _cart_with_cross_sell(self, cross_sell: CrossSell) -> CartState:
        originals = [
            item for item in self.cart.items
            if any(cs.id == cross_sell.id for cs in item.product.cross_sells)
        ]
        if not originals:
            return self.cart
        original = originals[0]

        if cross_sell.replace_selected_products:
            original_ids = {id(item) for item in originals}
            items = [item for item in self.cart.items if id(item) not in original_ids]
        else:
            items = list(self.cart.items)

        offered = cross_sell.offered_product
        fields = dict(offered)
        fields.update(
            product=offered.product.model_copy(update={"cross_sells": []}),
            quantity=1,
            url_parameters=dict(original.url_parameters),
            referrer=original.referrer,
            recommender_model_name=None,
            pay_in_installments=original.pay_in_installments,
            accepted_offer=AcceptedOffer(
                id=cross_sell.id,
                original_product_id=original.product.id,
                discount=cross_sell.discount,
            ),
        )
        items.append(CartItem(**fields))
        return self.cart.model_copy(update={"items": items})

    def _cart_with_upsell(self, offer: OfferedUpsell) -> CartState:
        item = offer.item
        upgraded = item.model_copy(
            update={
                "option_id": offer.offered_option.id,
                "price": item.product.price_cents + offer.offered_option.price_difference_cents,
                "accepted_offer": AcceptedOffer(
                    id=offer.upsell.id,
                    original_product_id=item.product.id,
                    original_variant_id=item.option_id,
                    discount=offer.upsell.discount,
                ),
            }
        )
        items = [i for i in self.cart.items if i is not item]
        items.append(upgraded)
        return self.cart.model_copy(update={"items": items})

    def complete_offer(self):
        offer = self.current_offer
        if offer is None:
            return
        self.completed_offer_ids.add(offer.id)
        if len(self.offers) == 1:
            self._transition(CheckoutStatus.VALIDATE)
        self.offers = self.offers[1:]
        self._precompute()

    def accept(self) -> CartState:
        if self.current_offer is not None:
            self.cart = self.cart_if_accepted()
            self.complete_offer()
        return self.cart

    def decline(self) -> CartState:
        self.complete_offer()
        return self.cart

    def finish(self):
        self._transition(CheckoutStatus.FINISHED)

    def cancel(self):
        self._transition(CheckoutStatus.CANCEL)
        self.offers = []
        self.products_if_accepted = None

    def reset(self):
        self._transition(CheckoutStatus.INPUT)
