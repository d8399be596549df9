# storefront/domain/pricing.py
from dataclasses import dataclass
from math import floor
from typing import Any, List, Optional

from storefront.domain.cart_state import CartItem, CartState, FixedDiscount

DISCOUNT_CODE = "code"
DISCOUNT_OFFER = "offer"
DISCOUNT_PPP = "ppp"


@dataclass(frozen=True)
class AppliedDiscount:
    type: str  # code | offer | ppp
    value: Any  # Discount albo wspolczynnik ppp
    code: Optional[str] = None


@dataclass(frozen=True)
class DiscountedPrice:
    price: int
    discount: Optional[AppliedDiscount] = None


@dataclass(frozen=True)
class CheckoutProduct:
    """Podsumowanie pozycji potrzebne formularzowi platnosci."""

    permalink: str
    name: str
    creator_id: str
    quantity: int
    price: int
    require_shipping: bool
    require_payment: bool
    has_free_trial: bool
    has_tipping_enabled: bool
    pay_in_installments: bool
    test_purchase: bool
    native_type: str
    can_gift: bool
    recommended_by: Optional[str] = None


def apply_discount(cents: int, discount) -> int:
    if isinstance(discount, FixedDiscount):
        return max(cents - discount.cents, 0)
    return floor(cents * (100 - discount.percents) / 100)


def _best_code_discount(cart: CartState, item: CartItem):
    best = None
    for discount_code in cart.discount_codes:
        discount = discount_code.products.get(item.product.permalink)
        if discount is None:
            continue
        price = apply_discount(item.price, discount)
        if best is None or price < best[0]:
            best = (price, AppliedDiscount(DISCOUNT_CODE, discount, discount_code.code))
    return best


def get_discounted_price(cart: CartState, item: CartItem) -> DiscountedPrice:
    """
    Cena pozycji (za cala ilosc) po rabacie.

    Kolejnosc: kod rabatowy > rabat z zaakceptowanej oferty > PPP.
    Stosowany jest co najwyzej jeden rabat.
    """
    code = _best_code_discount(cart, item)
    if code:
        unit_price, applied = code
        return DiscountedPrice(unit_price * item.quantity, applied)

    offer_discount = item.accepted_offer.discount if item.accepted_offer else None
    if offer_discount is not None:
        unit_price = apply_discount(item.price, offer_discount)
        return DiscountedPrice(unit_price * item.quantity, AppliedDiscount(DISCOUNT_OFFER, offer_discount))

    ppp = item.product.ppp_details
    if ppp and not cart.reject_ppp_discount and item.price != 0:
        unit_price = floor(item.price * ppp.factor)
        return DiscountedPrice(unit_price * item.quantity, AppliedDiscount(DISCOUNT_PPP, ppp.factor))

    return DiscountedPrice(item.price * item.quantity)


def convert_to_usd(item: CartItem, cents: int) -> int:
    rate = item.product.exchange_rate
    if not rate:
        return cents
    return round(cents / rate)


def checkout_products(cart: CartState, user_id: Optional[str] = None) -> List[CheckoutProduct]:
    products = []
    for item in cart.items:
        price = get_discounted_price(cart, item).price
        products.append(
            CheckoutProduct(
                permalink=item.product.permalink,
                name=item.product.name,
                creator_id=item.product.creator.id,
                quantity=item.quantity,
                price=convert_to_usd(item, price),
                require_shipping=item.product.require_shipping,
                require_payment=item.product.free_trial is not None and price > 0,
                has_free_trial=item.product.free_trial is not None,
                has_tipping_enabled=item.product.has_tipping_enabled,
                pay_in_installments=item.pay_in_installments,
                test_purchase=user_id is not None and item.product.creator.id == user_id,
                native_type=item.product.native_type,
                can_gift=item.product.can_gift,
                recommended_by=item.recommended_by,
            )
        )
    return products
