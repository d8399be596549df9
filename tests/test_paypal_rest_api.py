# tests/test_paypal_rest_api.py
import base64
import json
import logging
from unittest.mock import MagicMock

import pytest
import requests

from storefront.data.models import PurchaseModel
from storefront.domain.dispute_evidence import DisputedPurchase, DisputeEvidence, EvidenceFile
from storefront.errors import ChargeProcessorInvalidRequestError
from storefront.services.paypal.credentials import PaypalPartnerRestCredentials
from storefront.services.paypal.environment import LIVE_BASE_URL, SANDBOX_BASE_URL, PaypalEnvironment
from storefront.services.paypal.evidence import PaypalEvidenceBuilder
from storefront.services.paypal.rest_api import PaypalRestApi, money_object, purchase_unit
from storefront.services.paypal_carrier_mapper import PaypalCarrierMapper


def environment(name="sandbox"):
    return PaypalEnvironment(
        name=name,
        base_url=LIVE_BASE_URL if name == "live" else SANDBOX_BASE_URL,
        client_id="client-id",
        client_secret="secret",
        partner_email="partner@example.com",
        bn_code="BN",
        brand_name="Storefront",
    )


def response(status_code=200, body=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.content = json.dumps(body or {}).encode()
    resp.text = json.dumps(body or {})
    resp.json.return_value = body or {}
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    return resp


def api(env_name="sandbox", db=None):
    credentials = MagicMock()
    credentials.auth_token.return_value = "Bearer token"
    session = MagicMock()
    session.request.return_value = response(201, {"id": "ORDER-1"})
    client = PaypalRestApi(
        environment(env_name),
        credentials,
        db=db,
        session=session,
        evidence_builder=PaypalEvidenceBuilder(PaypalCarrierMapper()),
    )
    return client, session


PURCHASE_UNIT = {
    "currency": "usd",
    "total": "12.00",
    "price": "10.00",
    "shipping": "1.00",
    "tax": "1.00",
    "fee": "1.20",
    "merchant_id": "MERCHANT",
    "item_name": "Ebook",
    "unit_price": "10.00",
    "quantity": 1,
    "product_permalink": "ebook",
    "descriptor": "STOREFRONT",
    "invoice_id": "INV-1",
}


def sent(session):
    args, kwargs = session.request.call_args
    return args[0], args[1], kwargs["headers"], kwargs["json"]


def test_money_object_upcases_currency():
    assert money_object("eur", "1.00") == {"currency_code": "EUR", "value": "1.00"}


def test_purchase_unit():
    unit = purchase_unit(PURCHASE_UNIT, "partner@example.com")

    assert unit["amount"]["breakdown"]["item_total"] == {"currency_code": "USD", "value": "10.00"}
    assert unit["payee"] == {"merchant_id": "MERCHANT"}
    assert unit["items"][0]["sku"] == "ebook"
    assert unit["payment_instruction"]["platform_fees"][0]["payee"] == {"email_address": "partner@example.com"}
    assert unit["invoice_id"] == "INV-1"


def test_create_order_sandbox():
    client, session = api()

    result = client.create_order(PURCHASE_UNIT)

    verb, url, headers, body = sent(session)
    assert verb == "POST"
    assert url == f"{SANDBOX_BASE_URL}/v2/checkout/orders"
    assert headers["Authorization"] == "Bearer token"
    assert headers["PayPal-Partner-Attribution-Id"] == "BN"
    assert headers["Prefer"] == "return=representation"
    assert not headers["PayPal-Request-Id"].startswith("create-order-")
    assert body["intent"] == "CAPTURE"
    assert body["application_context"] == {"brand_name": "Storefront", "shipping_preference": "NO_SHIPPING"}
    assert result.status_code == 201
    assert result.result == {"id": "ORDER-1"}
    assert client.successful_response(result)


def test_create_order_live_uses_invoice_request_id():
    client, session = api("live")
    client.create_order(PURCHASE_UNIT)
    _, _, headers, _ = sent(session)
    assert headers["PayPal-Request-Id"] == "create-order-INV-1"


def test_billing_agreement_calls():
    client, session = api()

    client.generate_billing_agreement_token(shipping=True)
    _, url, _, body = sent(session)
    assert url.endswith("/v1/billing-agreements/agreement-tokens")
    assert body["plan"]["merchant_preferences"]["skip_shipping_address"] is False

    client.create_billing_agreement("BA-TOKEN")
    _, url, headers, body = sent(session)
    assert url.endswith("/v1/billing-agreements/agreements")
    assert headers["PayPal-Request-Id"] == "create-billing-agreement-BA-TOKEN"
    assert body == {"token_id": "BA-TOKEN"}


def test_update_calls_patch_order():
    client, session = api()

    client.update_invoice_id("ORDER-1", "INV-2")
    verb, url, _, body = sent(session)
    assert verb == "PATCH"
    assert url.endswith("/v2/checkout/orders/ORDER-1")
    assert body[0]["op"] == "add"
    assert body[0]["value"] == "INV-2"

    client.update_order("ORDER-1", PURCHASE_UNIT)
    _, _, _, body = sent(session)
    assert body[0]["op"] == "replace"
    assert body[0]["value"]["invoice_id"] == "INV-1"


def test_capture_with_billing_agreement():
    client, session = api()

    client.capture("ORDER-1", billing_agreement_id="B-1")

    _, url, headers, body = sent(session)
    assert url.endswith("/v2/checkout/orders/ORDER-1/capture")
    assert headers["PayPal-Request-Id"] == "capture-ORDER-1"
    assert body == {"payment_source": {"token": {"id": "B-1", "type": "BILLING_AGREEMENT"}}}


def test_http_error_is_returned_not_raised(caplog):
    client, session = api()
    session.request.return_value = response(422, {"name": "UNPROCESSABLE_ENTITY"})

    with caplog.at_level(logging.INFO):
        result = client.fetch_order("ORDER-1")

    assert result.status_code == 422
    assert result.result == {"name": "UNPROCESSABLE_ENTITY"}
    assert not client.successful_response(result)
    assert "Bearer token" not in caplog.text
    assert "[FILTERED]" in caplog.text


def test_refund_with_known_merchant():
    client, session = api()

    client.refund("CAPTURE-1", merchant_id="MERCHANT", currency="usd", amount="5.00")

    _, url, headers, body = sent(session)
    assert url.endswith("/v2/payments/captures/CAPTURE-1/refund")
    assert headers["PayPal-Request-Id"].startswith("refund-CAPTURE-1-5.00-")
    assert body == {"amount": {"currency_code": "USD", "value": "5.00"}}

    header_one, header_two, tail = headers["Paypal-Auth-Assertion"].split(".")
    assert json.loads(base64.b64decode(header_one)) == {"alg": "none"}
    assert json.loads(base64.b64decode(header_two)) == {"payer_id": "MERCHANT", "iss": "client-id"}
    assert tail == ""


def test_full_refund_has_empty_body():
    client, session = api()
    client.refund("CAPTURE-1", merchant_id="MERCHANT", currency="usd")
    _, _, _, body = sent(session)
    assert body == {}


def test_refund_falls_back_to_order_lookup(db):
    db.add(PurchaseModel(external_id="pur-1", charge_processor_id="paypal", stripe_transaction_id="CAPTURE-1", paypal_order_id="ORDER-1"))
    db.commit()
    client, session = api(db=db)
    order = {"purchase_units": [{"payee": {"merchant_id": "M-FROM-ORDER"}, "amount": {"currency_code": "EUR"}}]}
    session.request.side_effect = [response(200, order), response(201, {"id": "REFUND-1"})]

    result = client.refund("CAPTURE-1", amount="3.00")

    assert result.result == {"id": "REFUND-1"}
    fetch_call, refund_call = session.request.call_args_list
    assert fetch_call[0][1].endswith("/v2/checkout/orders/ORDER-1")
    assert refund_call[1]["json"] == {"amount": {"currency_code": "EUR", "value": "3.00"}}
    assertion = refund_call[1]["headers"]["Paypal-Auth-Assertion"].split(".")[1]
    assert json.loads(base64.b64decode(assertion))["payer_id"] == "M-FROM-ORDER"


def test_refund_without_purchase_raises(db):
    client, _ = api(db=db)
    with pytest.raises(ValueError, match="No purchase found"):
        client.refund("UNKNOWN")


def dispute_evidence(**kwargs):
    purchase = DisputedPurchase(external_id="pur-1", charge_processor_id="paypal")
    return DisputeEvidence(id="ev-1", disputed_purchases=[purchase], **kwargs)


def test_provide_evidence_nothing_to_submit():
    client, session = api()

    result = client.provide_evidence("DISPUTE-1", dispute_evidence())

    assert result.status_code == 200
    assert result.result == {"message": "No evidence to submit"}
    session.post.assert_not_called()


def test_provide_evidence_uploads_multipart():
    client, session = api()
    session.post.return_value = response(200, {"links": []})
    ev = dispute_evidence(
        receipt_image=EvidenceFile("receipt.png", "image/png", 4, b"png!"),
        customer_communication_file=EvidenceFile("chat.txt", "text/plain", 4, b"text"),
        reason_for_winning="Delivered",
    )

    result = client.provide_evidence("DISPUTE-1", ev)

    assert result.status_code == 200
    url = session.post.call_args[0][0]
    kwargs = session.post.call_args[1]
    assert url == f"{SANDBOX_BASE_URL}/v1/customer/disputes/DISPUTE-1/provide-evidence"
    assert "Content-Type" not in kwargs["headers"]
    files = kwargs["files"]
    assert set(files) == {"input", "file1"}
    assert files["file1"] == ("receipt.png", b"png!", "image/png")
    evidences = json.loads(files["input"][1])["evidences"]
    assert [e["evidence_type"] for e in evidences] == ["PROOF_OF_FULFILLMENT", "PROOF_OF_RECEIPT_COPY", "OTHER"]


def test_provide_evidence_failure_raises():
    client, session = api()
    session.post.return_value = response(400, {"name": "INVALID_REQUEST"})

    with pytest.raises(ChargeProcessorInvalidRequestError) as exc:
        client.provide_evidence("DISPUTE-1", dispute_evidence(reason_for_winning="Delivered"))

    assert "INVALID_REQUEST" in exc.value.body


def test_environment_from_settings(monkeypatch):
    monkeypatch.setattr("storefront.utils.settings.PAYPAL_ENVIRONMENT", "live")
    assert PaypalEnvironment.from_settings().base_url == LIVE_BASE_URL

    monkeypatch.setattr("storefront.utils.settings.PAYPAL_ENVIRONMENT", "staging")
    with pytest.raises(ValueError):
        PaypalEnvironment.from_settings()


def test_credentials_use_cached_token():
    redis_client = MagicMock()
    redis_client.get.return_value = "cached"
    credentials = PaypalPartnerRestCredentials(environment(), redis_client=redis_client)

    assert credentials.auth_token() == "Bearer cached"
    redis_client.set.assert_not_called()


def test_credentials_fetch_and_cache(monkeypatch):
    redis_client = MagicMock()
    redis_client.get.return_value = None
    token_response = MagicMock()
    token_response.json.return_value = {"access_token": "fresh", "expires_in": 3600}
    post = MagicMock(return_value=token_response)
    monkeypatch.setattr("storefront.services.paypal.credentials.requests.post", post)
    credentials = PaypalPartnerRestCredentials(environment(), redis_client=redis_client)

    assert credentials.auth_token() == "Bearer fresh"
    assert post.call_args[0][0] == f"{SANDBOX_BASE_URL}/v1/oauth2/token"
    assert post.call_args[1]["auth"] == ("client-id", "secret")
    redis_client.set.assert_called_once_with("paypal:sandbox:partner_access_token", "fresh", ex=3540)
