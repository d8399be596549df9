# storefront/services/checkout_service.py
import json
from dataclasses import dataclass, field
from math import floor
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from storefront.domain.cart_state import CartItem, CartState, DiscountCode, cart_item_uid
from storefront.domain.pricing import DISCOUNT_CODE, DISCOUNT_PPP, get_discounted_price
from storefront.domain.schemas import BuyerInfo, FixedTip, PercentageTip
from storefront.errors import OrderCreationError
from storefront.services.order_client import OrderCreationClient
from storefront.utils.settings import LIBRARY_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# czesc ceny pobierana od razu za zamowienia typu commission
COMMISSION_DEPOSIT_PROPORTION = 0.5

REDIRECT_CONTENT_PAGE = "content-page"
REDIRECT_LIBRARY_PAGE = "library-page"
VIEW_RECEIPT = "receipt"
VIEW_TEMPORARY_LIBRARY = "temporary-library"


def first_installment_price_cents(total_cents: int, number_of_installments: int) -> int:
    # pierwsza rata bierze reszte z dzielenia
    return total_cents // number_of_installments + total_cents % number_of_installments


def compute_tip(buyer: BuyerInfo, item: CartItem, price_cents: int) -> Optional[int]:
    if not item.product.has_tipping_enabled or buyer.tip is None:
        return None
    if isinstance(buyer.tip, PercentageTip):
        return round(price_cents * buyer.tip.percentage / 100)
    if isinstance(buyer.tip, FixedTip):
        return buyer.tip.amount_cents
    return None


def requires_reusable_payment_method(cart: CartState) -> bool:
    return any(
        item.recurrence is not None
        or item.pay_in_installments
        or item.product.is_preorder
        or item.product.free_trial is not None
        for item in cart.items
    )


def build_line_item(cart: CartState, item: CartItem, buyer: BuyerInfo, is_multi_buy: bool) -> Dict[str, Any]:
    discounted = get_discounted_price(cart, item)
    price_total = discounted.price
    installment_plan = item.product.installment_plan if item.pay_in_installments else None

    charge_now = price_total
    if item.product.native_type == "commission":
        charge_now = floor(price_total * COMMISSION_DEPOSIT_PROPORTION)
    elif installment_plan:
        charge_now = first_installment_price_cents(price_total, installment_plan.number_of_installments)

    # przy ratach napiwek liczony od pelnej ceny
    tip_cents = compute_tip(buyer, item, price_total if installment_plan else charge_now)
    discount = discounted.discount

    return {
        "permalink": item.product.permalink,
        "uid": cart_item_uid(item),
        "isMultiBuy": is_multi_buy,
        "isPreorder": item.product.is_preorder,
        "isRental": item.rent,
        "perceivedPriceCents": charge_now + (tip_cents or 0),
        "priceCents": item.price * item.quantity + (tip_cents or 0),
        "tipCents": tip_cents,
        "quantity": item.quantity,
        "priceRangeUnit": None,
        "recurrence": item.recurrence,
        "perceivedFreeTrialDuration": item.product.free_trial.duration if item.product.free_trial else None,
        "variants": [item.option_id] if item.option_id else [],
        "callStartTime": item.call_start_time,
        "payInInstallments": item.pay_in_installments,
        "discountCode": discount.code if discount and discount.type == DISCOUNT_CODE else None,
        "isPppDiscounted": (
            item.product.ppp_details is not None
            and not cart.reject_ppp_discount
            and discount is not None
            and discount.type == DISCOUNT_PPP
            and item.price != 0
        ),
        "acceptedOffer": item.accepted_offer.model_dump() if item.accepted_offer else None,
        "bundleProducts": [
            {
                "productId": bundle_product.product_id,
                "quantity": bundle_product.quantity,
                "variantId": bundle_product.variant_id,
            }
            for bundle_product in item.product.bundle_products
        ],
        "recommendedBy": item.recommended_by,
        "recommenderModelName": item.recommender_model_name,
        "affiliateId": item.affiliate_id,
        "urlParameters": json.dumps(item.url_parameters),
        "referrer": item.referrer,
    }


def build_line_items(cart: CartState, buyer: BuyerInfo) -> List[Dict[str, Any]]:
    is_multi_buy = requires_reusable_payment_method(cart)
    return [build_line_item(cart, item, buyer, is_multi_buy) for item in cart.items]


def build_order_request(cart: CartState, buyer: BuyerInfo) -> Dict[str, Any]:
    gift = cart.gift
    gift_info = None
    if gift:
        gift_info = (
            {"giftNote": gift.note, "gifteeId": gift.id}
            if gift.type == "anonymous"
            else {"giftNote": gift.note, "gifteeEmail": gift.email}
        )

    return {
        "email": buyer.email,
        "fullName": buyer.full_name,
        "zipCode": buyer.zip_code,
        "state": buyer.state,
        "paymentMethod": buyer.payment_method,
        "taxCountryElection": buyer.country,
        "vatId": buyer.vat_id,
        "giftInfo": gift_info,
        "recaptchaResponse": buyer.recaptcha_response,
        "lineItems": build_line_items(cart, buyer),
    }


def _with_query(url: str, params: List[tuple]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + params
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass
class CheckoutOutcome:
    results: List[Dict[str, Any]]
    cart: CartState
    redirect_to: Optional[str] = None
    redirect_url: Optional[str] = None
    view: Optional[str] = None
    can_buyer_sign_up: bool = False
    failed_items: List[CartItem] = field(default_factory=list)


class CheckoutService:
    """
    Use case: zlozenie zamowienia z koszyka.
    Pozycje, ktore sie nie udaly, wracaja do koszyka.
    """

    def __init__(self, order_client: OrderCreationClient, library_url: str | None = None):
        self.order_client = order_client
        self.library_url = library_url or LIBRARY_URL

    def submit(self, cart: CartState, buyer: BuyerInfo, signed_in: bool = False) -> CheckoutOutcome:
        payload = build_order_request(cart, buyer)
        response = self.order_client.start_order_creation(payload)

        line_items = response.get("lineItems") or {}
        items_by_uid = {cart_item_uid(item): item for item in cart.items}

        results = [
            {"uid": uid, "item": items_by_uid[uid], "result": result}
            for uid, result in line_items.items()
            if uid in items_by_uid
        ]
        if not results:
            raise OrderCreationError("Order creation returned no results for the cart items")

        failed_items = []
        for uid, item in items_by_uid.items():
            line = line_items.get(uid)
            if not line or line.get("success"):
                continue
            updated = line.get("updated_product") or {}
            data = item.model_dump()
            data.update(updated)
            data["quantity"] = updated.get("quantity") or item.quantity
            data["accepted_offer"] = None
            failed_items.append(CartItem.model_validate(data))

        logger.info(
            f"Checkout finished: {len(results) - len(failed_items)} succeeded, {len(failed_items)} failed"
        )

        redirect_to = self._redirect_target(results, failed_items, signed_in)
        redirect_url = None
        first = results[0]["result"]
        if redirect_to == REDIRECT_CONTENT_PAGE:
            if first.get("native_type") == "coffee":
                redirect_url = _with_query(first["content_url"], [("purchase_email", buyer.email)])
            else:
                redirect_url = _with_query(first["content_url"], [("receipt", "true")])
        elif redirect_to == REDIRECT_LIBRARY_PAGE:
            purchase_ids = [("purchase_id", r["result"]["id"]) for r in results if r["result"].get("success")]
            redirect_url = _with_query(self.library_url, purchase_ids)

        view = None
        if redirect_to is None:
            view = self._result_view(results, signed_in)

        previous_codes = {code.code: code.from_url for code in cart.discount_codes}
        remaining_cart = cart.model_copy(
            update={
                "items": failed_items,
                "discount_codes": [
                    DiscountCode.model_validate(
                        {**offer_code, "fromUrl": previous_codes.get(offer_code.get("code"), False)}
                    )
                    for offer_code in response.get("offerCodes") or []
                ],
                "reject_ppp_discount": False,
            }
        )

        return CheckoutOutcome(
            results=[{"uid": r["uid"], "result": r["result"]} for r in results],
            cart=remaining_cart,
            redirect_to=redirect_to,
            redirect_url=redirect_url,
            view=view,
            can_buyer_sign_up=bool(response.get("canBuyerSignUp")),
            failed_items=failed_items,
        )

    @staticmethod
    def _redirect_target(results, failed_items, signed_in: bool) -> Optional[str]:
        if failed_items:
            return None
        first = results[0]["result"]
        if (
            len(results) == 1
            and first.get("success")
            and first.get("content_url") is not None
            and (not first.get("bundle_products") or (signed_in and not first.get("test_purchase_notice")))
        ):
            return REDIRECT_CONTENT_PAGE
        if signed_in and all(
            r["result"].get("success")
            and r["result"].get("content_url") is not None
            and not r["result"].get("test_purchase_notice")
            for r in results
        ):
            return REDIRECT_LIBRARY_PAGE
        return None

    @staticmethod
    def _result_view(results, signed_in: bool) -> str:
        guest_with_content = not signed_in and all(
            r["result"].get("success") and r["result"].get("content_url") is not None for r in results
        )
        test_bundle = any(
            r["result"].get("success") and r["result"].get("bundle_products") and r["result"].get("test_purchase_notice")
            for r in results
        )
        return VIEW_TEMPORARY_LIBRARY if guest_with_content or test_bundle else VIEW_RECEIPT
