# storefront/api/routers/checkout.py
import uuid
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.cart_state import build_initial_cart, max_products_alert
from storefront.domain.schemas import (
    CartUpdateRequest,
    CheckoutIn,
    CheckoutOutcomeOut,
    OfferIn,
    OfferOut,
)
from storefront.errors import CartValidationError, InvalidOfferTransition, OrderCreationError
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.offer_service import OfferService, OfferStep
from storefront.services.offer_session_store import OfferSessionStore
from storefront.services.order_client import OrderCreationClient
from storefront.utils import settings
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])

FLASH_ALERT_COOKIE = "flash_alert"
GENERIC_ERROR_ALERT = "Sorry, something went wrong. Please try again."
# parametry tego serwisu, nie trafiaja do url_parameters pozycji
LOCAL_QUERY_PARAMS = ("user_id", "clear_cart")


def get_max_allowed_cart_products() -> int:
    return settings.MAX_ALLOWED_CART_PRODUCTS


def get_checkout_service() -> CheckoutService:
    return CheckoutService(order_client=OrderCreationClient())


def get_offer_service() -> OfferService:
    return OfferService(store=OfferSessionStore())


def _redirect_to_checkout(status_code: int, alert: Optional[str] = None) -> RedirectResponse:
    response = RedirectResponse(url=settings.CHECKOUT_PATH, status_code=status_code)
    if alert:
        response.set_cookie(FLASH_ALERT_COOKIE, alert)
    return response


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _offer_session_key(user_id: Optional[int], browser_guid: Optional[str]) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    if browser_guid:
        return f"guest:{browser_guid}"
    raise HTTPException(status_code=400, detail="Missing cart session")


@router.get("")
def show(
    request: Request,
    user_id: Optional[int] = Query(None),
    product: Optional[str] = Query(None),
    option: Optional[str] = Query(None),
    quantity: Optional[int] = Query(None, ge=1),
    price: Optional[int] = Query(None, ge=0),
    recurrence: Optional[str] = Query(None),
    rent: bool = Query(False),
    recommended_by: Optional[str] = Query(None),
    affiliate_id: Optional[str] = Query(None),
    call_start_time: Optional[str] = Query(None),
    pay_in_installments: bool = Query(False),
    clear_cart: bool = Query(False),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    max_allowed: int = Depends(get_max_allowed_cart_products),
    db: Session = Depends(get_db),
):
    """
    Strona checkoutu. Link ?product=...&option=... dodaje produkt do koszyka
    (koszyk zapisuje dopiero PATCH /checkout wyslany przez strone).
    """
    user = UserRepo(db).get_user(user_id)
    svc = CartService(db)
    state = svc.cart_state(svc.get_cart(user, browser_guid))

    add_products = []
    if product:
        to_add = svc.product_to_add(
            product,
            option_id=option,
            quantity=quantity,
            price=price,
            recurrence=recurrence,
            rent=rent,
            recommended_by=recommended_by,
            affiliate_id=affiliate_id,
            call_start_time=call_start_time,
            pay_in_installments=pay_in_installments,
        )
        if to_add is not None:
            add_products.append(to_add)

    alert = None
    if add_products or clear_cart:
        state, alert = build_initial_cart(
            state,
            add_products,
            str(request.url.remove_query_params(LOCAL_QUERY_PARAMS)),
            max_allowed=max_allowed,
            clear_cart=clear_cart,
            document_referrer=request.headers.get("referer"),
        )

    return {
        "cart": state.model_dump(mode="json", by_alias=True) if state else None,
        "alert": alert,
        "checkout": {
            "max_allowed_cart_products": max_allowed,
            "cart_save_debounce_duration_in_ms": settings.CART_SAVE_DEBOUNCE_MS,
            "tip_options": settings.TIP_OPTIONS,
            "default_tip_option": settings.DEFAULT_TIP_OPTION,
            "paypal_client_id": settings.PAYPAL_PARTNER_CLIENT_ID,
            "discover_url": settings.DISCOVER_URL,
            "signed_in": user is not None,
            "add_products": [p.model_dump(mode="json", by_alias=True) for p in add_products],
            "clear_cart": clear_cart,
        },
    }


@router.patch("")
def update(
    payload: CartUpdateRequest,
    request: Request,
    user_id: Optional[int] = Query(None),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    max_allowed: int = Depends(get_max_allowed_cart_products),
    db: Session = Depends(get_db),
):
    if len(payload.cart.items) > max_allowed:
        return _redirect_to_checkout(302, max_products_alert(max_allowed))

    user = UserRepo(db).get_user(user_id)
    # gosc bez ciasteczka dostaje nowy guid, inaczej kazdy zapis tworzylby nowy koszyk
    new_guid = None
    if user is None and not browser_guid:
        browser_guid = new_guid = str(uuid.uuid4())

    try:
        CartService(db).update_cart(payload.cart, user, browser_guid, _client_ip(request))
    except (CartValidationError, SQLAlchemyError) as e:
        logger.error(f"Cart update failed: {e}")
        return _redirect_to_checkout(302, GENERIC_ERROR_ALERT)

    response = _redirect_to_checkout(303)
    if new_guid:
        response.set_cookie(settings.BROWSER_GUID_COOKIE, new_guid, httponly=True)
    return response


@router.post("/orders", response_model=CheckoutOutcomeOut)
def create_orders(
    payload: CheckoutIn,
    request: Request,
    user_id: Optional[int] = Query(None),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    checkout: CheckoutService = Depends(get_checkout_service),
    db: Session = Depends(get_db),
):
    user = UserRepo(db).get_user(user_id)
    try:
        outcome = checkout.submit(payload.cart, payload.buyer, signed_in=user is not None)
    except OrderCreationError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if user is not None or browser_guid:
        try:
            CartService(db).save_cart_state(outcome.cart, user, browser_guid, _client_ip(request))
        except (CartValidationError, SQLAlchemyError) as e:
            # zamowienie juz poszlo, koszyk zostaje w odpowiedzi
            logger.error(f"Saving remaining cart failed: {e}")

    return CheckoutOutcomeOut(
        redirect_to=outcome.redirect_to,
        redirect_url=outcome.redirect_url,
        view=outcome.view,
        results=outcome.results,
        cart=outcome.cart,
        can_buyer_sign_up=outcome.can_buyer_sign_up,
    )


def _offer_out(step: OfferStep) -> OfferOut:
    return OfferOut(
        status=step.status.value,
        offer_id=step.offer_id,
        offer_type=step.offer_type,
        description=step.description,
        price_if_accepted=step.price_if_accepted,
        cart=step.cart,
    )


@router.post("/offers", response_model=OfferOut)
def next_offer(
    payload: OfferIn,
    user_id: Optional[int] = Query(None),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    offers: OfferService = Depends(get_offer_service),
):
    session_key = _offer_session_key(user_id, browser_guid)
    return _offer_out(offers.next_offer(session_key, payload.cart, str(user_id) if user_id else None))


def _respond(offers: OfferService, offer_id: str, payload: OfferIn, accept: bool, user_id, browser_guid) -> OfferOut:
    session_key = _offer_session_key(user_id, browser_guid)
    try:
        step = offers.respond(session_key, payload.cart, offer_id, accept, str(user_id) if user_id else None)
    except InvalidOfferTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _offer_out(step)


@router.post("/offers/{offer_id}/accept", response_model=OfferOut)
def accept_offer(
    offer_id: str,
    payload: OfferIn,
    user_id: Optional[int] = Query(None),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    offers: OfferService = Depends(get_offer_service),
):
    return _respond(offers, offer_id, payload, True, user_id, browser_guid)


@router.post("/offers/{offer_id}/decline", response_model=OfferOut)
def decline_offer(
    offer_id: str,
    payload: OfferIn,
    user_id: Optional[int] = Query(None),
    browser_guid: Optional[str] = Cookie(None, alias=settings.BROWSER_GUID_COOKIE),
    offers: OfferService = Depends(get_offer_service),
):
    return _respond(offers, offer_id, payload, False, user_id, browser_guid)
