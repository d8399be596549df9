# storefront/services/paypal/rest_api.py
"""
Adapter PayPal REST (partner API).

Kazda metoda sklada request, wysyla go jednym strzalem i zwraca
ApiResponse(status_code, result). Bledy HTTP nie wychodza poza adapter,
wyjatek: upload dowodow (ChargeProcessorInvalidRequestError).
"""
import base64
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.data.models.purchase import PurchaseModel
from storefront.domain.dispute_evidence import DisputeEvidence
from storefront.errors import ChargeProcessorInvalidRequestError
from storefront.services.paypal.credentials import PaypalPartnerRestCredentials
from storefront.services.paypal.environment import PaypalEnvironment
from storefront.services.paypal.evidence import PaypalEvidenceBuilder
from storefront.utils.retry import http_retry
from storefront.utils.settings import DOMAIN_WITH_PROTOCOL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYPAL_INTENT_CAPTURE = "CAPTURE"
FILTERED = "[FILTERED]"
SECRET_HEADERS = ("Authorization", "Paypal-Auth-Assertion")


@dataclass
class ApiResponse:
    status_code: int
    result: Any = None


@dataclass
class PaypalRequest:
    path: str
    verb: str
    headers: Dict[str, str]
    body: Any = field(default_factory=dict)

    def redacted(self) -> dict:
        headers = {k: (FILTERED if k in SECRET_HEADERS else v) for k, v in self.headers.items()}
        return {"path": self.path, "verb": self.verb, "headers": headers, "body": self.body}


def timestamp() -> str:
    return str(time.time()).replace(".", "")


def money_object(currency: str, value) -> dict:
    return {"currency_code": currency.upper(), "value": value}


def purchase_unit(info: Dict[str, Any], partner_email: str = "") -> dict:
    currency = info["currency"]
    unit = {
        "amount": {
            "currency_code": currency,
            "value": info["total"],
            "breakdown": {
                "shipping": money_object(currency, info.get("shipping")),
                "tax_total": money_object(currency, info.get("tax")),
                "item_total": money_object(currency, info.get("price")),
            },
        },
        "payee": {"merchant_id": info.get("merchant_id")},
        "items": info.get("items")
        or [
            {
                "name": info.get("item_name"),
                "unit_amount": money_object(currency, info.get("unit_price")),
                "quantity": info.get("quantity"),
                "sku": info.get("product_permalink"),
            }
        ],
        "soft_descriptor": info.get("descriptor"),
        "payment_instruction": {
            "platform_fees": [
                {
                    "amount": money_object(currency, info.get("fee")),
                    "payee": {"email_address": partner_email},
                }
            ]
        },
    }
    if info.get("invoice_id"):
        unit["invoice_id"] = info["invoice_id"]
    return unit


class PaypalRestApi:
    def __init__(
        self,
        environment: PaypalEnvironment,
        credentials: Optional[PaypalPartnerRestCredentials] = None,
        db: Optional[Session] = None,
        session: Optional[requests.Session] = None,
        evidence_builder: Optional[PaypalEvidenceBuilder] = None,
        timeout: int = 30,
    ):
        self.environment = environment
        self.credentials = credentials or PaypalPartnerRestCredentials(environment)
        self.db = db
        self.session = session or requests.Session()
        self.evidence_builder = evidence_builder or PaypalEvidenceBuilder()
        self.timeout = timeout

    # billing agreements
    def generate_billing_agreement_token(self, shipping: bool = False) -> ApiResponse:
        request = self._new_request("/v1/billing-agreements/agreement-tokens", "POST")
        request.body = {
            "payer": {"payment_method": "PAYPAL"},
            "plan": {
                "type": "CHANNEL_INITIATED_BILLING",
                "merchant_preferences": {
                    "return_url": f"{DOMAIN_WITH_PROTOCOL}/paypal_ba_return",
                    "cancel_url": f"{DOMAIN_WITH_PROTOCOL}/paypal_ba_cancel",
                    "accepted_pymt_type": "INSTANT",
                    "skip_shipping_address": not shipping,
                },
            },
        }
        return self._execute(request)

    def create_billing_agreement(self, billing_agreement_token_id: str) -> ApiResponse:
        request = self._new_request("/v1/billing-agreements/agreements", "POST")
        request.headers["PayPal-Request-Id"] = f"create-billing-agreement-{billing_agreement_token_id}"
        request.body = {"token_id": billing_agreement_token_id}
        return self._execute(request)

    # orders
    def create_order(self, purchase_unit_info: Dict[str, Any]) -> ApiResponse:
        request = self._new_request("/v2/checkout/orders", "POST")
        if self.environment.is_live and purchase_unit_info.get("invoice_id"):
            request.headers["PayPal-Request-Id"] = f"create-order-{purchase_unit_info['invoice_id']}"
        request.headers["Prefer"] = "return=representation"
        request.body = {
            "intent": PAYPAL_INTENT_CAPTURE,
            "purchase_units": [purchase_unit(purchase_unit_info, self.environment.partner_email)],
            "application_context": {
                "brand_name": self.environment.brand_name,
                "shipping_preference": "NO_SHIPPING",
            },
        }
        return self._execute(request)

    def update_invoice_id(self, order_id: str, invoice_id: str) -> ApiResponse:
        request = self._new_request(f"/v2/checkout/orders/{order_id}", "PATCH")
        request.headers["Prefer"] = "return=representation"
        request.body = [
            {"op": "add", "path": "/purchase_units/@reference_id=='default'/invoice_id", "value": invoice_id}
        ]
        return self._execute(request)

    def update_order(self, order_id: str, purchase_unit_info: Dict[str, Any]) -> ApiResponse:
        request = self._new_request(f"/v2/checkout/orders/{order_id}", "PATCH")
        request.headers["Prefer"] = "return=representation"
        request.body = [
            {
                "op": "replace",
                "path": "/purchase_units/@reference_id=='default'",
                "value": purchase_unit(purchase_unit_info, self.environment.partner_email),
            }
        ]
        return self._execute(request)

    @http_retry()
    def fetch_order(self, order_id: str) -> ApiResponse:
        request = self._new_request(f"/v2/checkout/orders/{order_id}", "GET")
        return self._execute(request)

    def capture(self, order_id: str, billing_agreement_id: Optional[str] = None) -> ApiResponse:
        request = self._new_request(f"/v2/checkout/orders/{order_id}/capture", "POST")
        request.headers["PayPal-Request-Id"] = f"capture-{order_id}"
        request.headers["Prefer"] = "return=representation"
        if billing_agreement_id:
            request.body = {"payment_source": {"token": {"id": billing_agreement_id, "type": "BILLING_AGREEMENT"}}}
        return self._execute(request)

    # refunds
    def refund(
        self,
        capture_id: str,
        merchant_id: Optional[str] = None,
        currency: Optional[str] = None,
        amount=None,
    ) -> ApiResponse:
        if not merchant_id or not currency:
            merchant_id, currency = self._merchant_details_from_order(capture_id, merchant_id, currency)

        request = self._new_request(f"/v2/payments/captures/{capture_id}/refund", "POST")
        request.headers["PayPal-Request-Id"] = f"refund-{capture_id}-{amount or ''}-{timestamp()}"
        request.headers["Prefer"] = "return=representation"
        request.headers["Paypal-Auth-Assertion"] = self.auth_assertion_header(merchant_id)
        request.body = {}
        if amount is not None and float(amount) > 0:
            request.body["amount"] = money_object(currency, amount)
        return self._execute(request)

    def _merchant_details_from_order(self, capture_id: str, merchant_id, currency):
        """Brak danych konta w rekordach -> bierzemy je z oryginalnego zamowienia."""
        purchase = None
        if self.db is not None:
            stmt = (
                select(PurchaseModel)
                .where(PurchaseModel.stripe_transaction_id == capture_id)
                .order_by(PurchaseModel.id.desc())
            )
            purchase = self.db.execute(stmt).scalars().first()
        if purchase is None:
            raise ValueError(f"No purchase found for paypal transaction id {capture_id}")

        order = self.fetch_order(purchase.paypal_order_id).result or {}
        units = order.get("purchase_units") or []
        if units:
            merchant_id = merchant_id or (units[0].get("payee") or {}).get("merchant_id")
            currency = currency or (units[0].get("amount") or {}).get("currency_code")
        return merchant_id, currency

    def auth_assertion_header(self, seller_merchant_id: Optional[str]) -> str:
        part_one = json.dumps({"alg": "none"}, separators=(",", ":"))
        part_two = json.dumps(
            {"payer_id": seller_merchant_id, "iss": self.environment.client_id}, separators=(",", ":")
        )
        return (
            f"{base64.b64encode(part_one.encode()).decode()}."
            f"{base64.b64encode(part_two.encode()).decode()}."
        )

    # disputes
    def provide_evidence(self, dispute_id: str, dispute_evidence: DisputeEvidence) -> ApiResponse:
        evidences = self.evidence_builder.build_evidence_items(dispute_evidence)
        if not evidences:
            return ApiResponse(status_code=200, result={"message": "No evidence to submit"})

        attached = self.evidence_builder.collect_attached_files(dispute_evidence)
        files = {"input": (None, json.dumps({"evidences": evidences}), "application/json")}
        for index, file in enumerate(attached, start=1):
            files[f"file{index}"] = (file.filename, file.content, file.content_type)

        # Content-Type z boundary ustawia requests
        headers = {k: v for k, v in self._headers().items() if k != "Content-Type"}
        url = f"{self.environment.base_url}/v1/customer/disputes/{dispute_id}/provide-evidence"
        logger.info(f"PayPal provide-evidence for dispute {dispute_id}: {len(evidences)} items, {len(attached)} files")

        try:
            resp = self.session.post(url, files=files, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.HTTPError as e:
            body = e.response.text if e.response is not None else str(e)
            logger.error(f"PayPal provide-evidence failed: {body}")
            raise ChargeProcessorInvalidRequestError(body) from e

        return ApiResponse(status_code=resp.status_code, result=resp.json())

    @staticmethod
    def successful_response(api_response: ApiResponse) -> bool:
        return 200 <= api_response.status_code < 300

    # internals
    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Accept-Language": "en_US",
            "Authorization": self.credentials.auth_token(),
            "Content-Type": "application/json",
            "PayPal-Partner-Attribution-Id": self.environment.bn_code,
            "PayPal-Request-Id": timestamp(),
        }

    def _new_request(self, path: str, verb: str) -> PaypalRequest:
        return PaypalRequest(path=path, verb=verb, headers=self._headers())

    def _execute(self, request: PaypalRequest) -> ApiResponse:
        logger.info(f"Making Paypal request:: {request.redacted()}")
        url = f"{self.environment.base_url}{request.path}"
        try:
            resp = self.session.request(
                request.verb,
                url,
                headers=request.headers,
                json=request.body if request.verb != "GET" else None,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else 0
            result = _parse_body(e.response)
            logger.error(f"Paypal request failed:: Status code: {status_code}, Result: {result!r}")
            return ApiResponse(status_code=status_code, result=result)

        return ApiResponse(status_code=resp.status_code, result=_parse_body(resp))


def _parse_body(resp: Optional[requests.Response]):
    if resp is None or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text
