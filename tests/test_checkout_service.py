# tests/test_checkout_service.py
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from storefront.domain.cart_state import (
    AcceptedOffer,
    BundleProduct,
    CartItem,
    CartProduct,
    CartState,
    Creator,
    DiscountCode,
    InstallmentPlan,
    PercentDiscount,
    PppDetails,
)
from storefront.domain.schemas import BuyerInfo
from storefront.errors import OrderCreationError
from storefront.services.checkout_service import (
    REDIRECT_CONTENT_PAGE,
    REDIRECT_LIBRARY_PAGE,
    VIEW_RECEIPT,
    VIEW_TEMPORARY_LIBRARY,
    CheckoutService,
    build_line_item,
    build_line_items,
    first_installment_price_cents,
)
from storefront.services.order_client import OrderCreationClient

LIBRARY = "https://store.example.com/library"


def item(permalink, price=1000, quantity=1, option_id=None, **product_fields):
    return CartItem(
        product=CartProduct(
            id=f"id-{permalink}",
            permalink=permalink,
            name=permalink.title(),
            creator=Creator(id="seller-1"),
            price_cents=price,
            **product_fields,
        ),
        option_id=option_id,
        price=price,
        quantity=quantity,
    )


def buyer(**kwargs):
    return BuyerInfo(email="buyer@example.com", **kwargs)


def service(response):
    client = MagicMock()
    client.start_order_creation.return_value = response
    return CheckoutService(order_client=client, library_url=LIBRARY), client


def success(content_url="https://store.example.com/d/abc", purchase_id="p1", **kwargs):
    return {"success": True, "content_url": content_url, "id": purchase_id, **kwargs}


def test_first_installment_takes_remainder():
    assert first_installment_price_cents(1000, 3) == 334
    assert first_installment_price_cents(900, 3) == 300


def test_line_item_basic_fields():
    cart_item = item("book", price=500, quantity=2)
    cart_item.url_parameters = {"utm_source": "mail"}
    cart = CartState(items=[cart_item])

    line = build_line_item(cart, cart_item, buyer(), is_multi_buy=False)

    assert line["uid"] == "book "
    assert line["priceCents"] == 1000
    assert line["perceivedPriceCents"] == 1000
    assert line["tipCents"] is None
    assert line["variants"] == []
    assert line["urlParameters"] == json.dumps({"utm_source": "mail"})
    assert line["discountCode"] is None
    assert line["isPppDiscounted"] is False


def test_line_item_commission_charges_deposit():
    cart_item = item("portrait", price=1001, native_type="commission")
    line = build_line_item(CartState(items=[cart_item]), cart_item, buyer(), is_multi_buy=False)
    assert line["perceivedPriceCents"] == 500
    assert line["priceCents"] == 1001


def test_line_item_installments_and_percentage_tip():
    cart_item = item(
        "course",
        price=1000,
        installment_plan=InstallmentPlan(number_of_installments=3),
        has_tipping_enabled=True,
    )
    cart_item.pay_in_installments = True
    tip = {"type": "percentage", "percentage": 10}

    line = build_line_item(CartState(items=[cart_item]), cart_item, buyer(tip=tip), is_multi_buy=True)

    # napiwek od pelnej ceny przy ratach
    assert line["tipCents"] == 100
    assert line["perceivedPriceCents"] == 334 + 100
    assert line["priceCents"] == 1100
    assert line["isMultiBuy"] is True


def test_fixed_tip_only_for_tipping_products():
    tipped = item("coffee", price=500, has_tipping_enabled=True)
    plain = item("book", price=500)
    cart = CartState(items=[tipped, plain])
    tip = {"type": "fixed", "amount_cents": 250}

    lines = build_line_items(cart, buyer(tip=tip))

    assert [line["tipCents"] for line in lines] == [250, None]


def test_line_item_discount_code_and_ppp_flags():
    coded = item("book", price=1000)
    ppp = item("ebook", price=1000, ppp_details=PppDetails(factor=0.5))
    cart = CartState(
        items=[coded, ppp],
        discount_codes=[DiscountCode(code="HALF", products={"book": PercentDiscount(percents=50)})],
    )

    lines = build_line_items(cart, buyer())

    assert lines[0]["discountCode"] == "HALF"
    assert lines[0]["perceivedPriceCents"] == 500
    assert lines[1]["isPppDiscounted"] is True
    assert lines[1]["perceivedPriceCents"] == 500


def test_line_item_bundle_and_offer():
    bundle = item("bundle", bundle_products=[BundleProduct(product_id="b1", quantity=2, variant_id="v1")])
    bundle.accepted_offer = AcceptedOffer(id="cs-1", original_product_id="id-book")

    line = build_line_item(CartState(items=[bundle]), bundle, buyer(), is_multi_buy=False)

    assert line["bundleProducts"] == [{"productId": "b1", "quantity": 2, "variantId": "v1"}]
    assert line["acceptedOffer"]["id"] == "cs-1"


def test_single_success_redirects_to_content_page_with_receipt():
    cart = CartState(items=[item("book")])
    svc, client = service({"lineItems": {"book ": success()}})

    outcome = svc.submit(cart, buyer())

    assert outcome.redirect_to == REDIRECT_CONTENT_PAGE
    assert outcome.redirect_url == "https://store.example.com/d/abc?receipt=true"
    assert outcome.view is None
    assert outcome.cart.items == []
    payload = client.start_order_creation.call_args[0][0]
    assert payload["email"] == "buyer@example.com"
    assert payload["lineItems"][0]["uid"] == "book "


def test_coffee_redirects_with_purchase_email():
    cart = CartState(items=[item("coffee")])
    svc, _ = service({"lineItems": {"coffee ": success(native_type="coffee")}})

    outcome = svc.submit(cart, buyer())

    assert outcome.redirect_url == "https://store.example.com/d/abc?purchase_email=buyer%40example.com"


def test_signed_in_all_success_redirects_to_library():
    cart = CartState(items=[item("a"), item("b")])
    svc, _ = service({"lineItems": {"a ": success(purchase_id="p1"), "b ": success(purchase_id="p2")}})

    outcome = svc.submit(cart, buyer(), signed_in=True)

    assert outcome.redirect_to == REDIRECT_LIBRARY_PAGE
    assert outcome.redirect_url == f"{LIBRARY}?purchase_id=p1&purchase_id=p2"


def test_guest_multiple_success_gets_temporary_library_view():
    cart = CartState(items=[item("a"), item("b")])
    svc, _ = service({"lineItems": {"a ": success(), "b ": success()}})

    outcome = svc.submit(cart, buyer())

    assert outcome.redirect_to is None
    assert outcome.view == VIEW_TEMPORARY_LIBRARY


def test_failed_items_return_to_cart():
    ok = item("a")
    failed = item("b", price=1000, quantity=3)
    failed.accepted_offer = AcceptedOffer(id="cs-1")
    cart = CartState(
        items=[ok, failed],
        discount_codes=[DiscountCode(code="SAVE", from_url=True)],
        reject_ppp_discount=True,
    )
    response = {
        "lineItems": {
            "a ": success(),
            "b ": {"success": False, "error_message": "Sold out", "updated_product": {"price": 1200}},
        },
        "offerCodes": [{"code": "SAVE"}, {"code": "NEW"}],
        "canBuyerSignUp": True,
    }
    svc, _ = service(response)

    outcome = svc.submit(cart, buyer())

    assert outcome.redirect_to is None
    assert outcome.view == VIEW_RECEIPT
    assert len(outcome.cart.items) == 1
    remaining = outcome.cart.items[0]
    assert remaining.product.permalink == "b"
    assert remaining.price == 1200
    assert remaining.quantity == 3
    assert remaining.accepted_offer is None
    assert [(c.code, c.from_url) for c in outcome.cart.discount_codes] == [("SAVE", True), ("NEW", False)]
    assert outcome.cart.reject_ppp_discount is False
    assert outcome.can_buyer_sign_up is True


def test_no_results_raises():
    svc, _ = service({"lineItems": {}})
    with pytest.raises(OrderCreationError):
        svc.submit(CartState(items=[item("a")]), buyer())


def test_order_client_wraps_request_errors():
    client = OrderCreationClient(base_url="http://orders.test")
    with patch("storefront.services.order_client.requests.post", side_effect=requests.ConnectionError("down")):
        with pytest.raises(OrderCreationError):
            client.start_order_creation({"lineItems": []})


def test_order_client_posts_once():
    client = OrderCreationClient(base_url="http://orders.test/")
    resp = MagicMock()
    resp.json.return_value = {"lineItems": {}}
    with patch("storefront.services.order_client.requests.post", return_value=resp) as post:
        assert client.start_order_creation({"lineItems": []}) == {"lineItems": {}}

    post.assert_called_once()
    assert post.call_args[0][0] == "http://orders.test/orders"
