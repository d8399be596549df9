# storefront/services/cart_service.py
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_product import CartProductModel
from storefront.data.models.product import OfferModel, ProductModel
from storefront.data.models.user import UserModel
from storefront.domain.cart_state import (
    CartItem,
    CartProduct,
    CartState,
    Creator,
    CrossSell,
    DiscountCode,
    PppDetails,
    ProductOption,
    ProductToAdd,
    Upsell,
)
from storefront.domain.schemas import CartUpdateIn
from storefront.errors import CartValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Zapis i odczyt koszyka checkoutu.
    commands (update, save_state) zapisuja w jednej transakcji
    query (cart_state, cart_props) tylko odczyt
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    # query
    def get_cart(self, user: UserModel | None, browser_guid: str | None) -> CartModel | None:
        return self.repo.fetch_cart(user.id if user else None, browser_guid)

    def cart_state(self, cart: CartModel | None) -> CartState | None:
        if cart is None:
            return None

        items = []
        for cp in self.repo.get_alive_cart_products(cart.id):
            accepted_offer = None
            if cp.accepted_offer is not None:
                accepted_offer = {
                    "id": cp.accepted_offer.external_id,
                    **(cp.accepted_offer_details or {}),
                    "discount": cp.accepted_offer.discount,
                }

            items.append(
                CartItem(
                    product=cart_product(cp.product),
                    option_id=cp.option.external_id if cp.option else None,
                    price=cp.price,
                    quantity=cp.quantity,
                    recurrence=cp.recurrence,
                    rent=cp.rent,
                    recommended_by=cp.recommended_by,
                    affiliate_id=cp.affiliate_id,
                    call_start_time=cp.call_start_time.isoformat() if cp.call_start_time else None,
                    pay_in_installments=cp.pay_in_installments,
                    url_parameters=cp.url_parameters or {},
                    referrer=cp.referrer or "direct",
                    recommender_model_name=cp.recommender_model_name,
                    accepted_offer=accepted_offer,
                )
            )

        return CartState(
            items=items,
            email=cart.email,
            return_url=cart.return_url,
            discount_codes=self._discount_codes(cart.discount_codes or []),
            reject_ppp_discount=cart.reject_ppp_discount,
        )

    def _discount_codes(self, stored: List[Dict[str, Any]]) -> List[DiscountCode]:
        rows = self.repo.get_discount_codes([dc["code"] for dc in stored])
        discount_codes = []
        for dc in stored:
            products = {row.product.permalink: row.discount for row in rows if row.code == dc["code"]}
            discount_codes.append(DiscountCode(code=dc["code"], from_url=dc.get("fromUrl", False), products=products))
        return discount_codes

    def product_to_add(
        self,
        permalink: str,
        option_id: str | None = None,
        quantity: int | None = None,
        price: int | None = None,
        recurrence: str | None = None,
        rent: bool = False,
        recommended_by: str | None = None,
        affiliate_id: str | None = None,
        call_start_time: str | None = None,
        pay_in_installments: bool = False,
    ) -> ProductToAdd | None:
        """Produkt z linku do checkoutu (?product=...&option=...). None gdy nie istnieje."""
        product = self.repo.get_product_by_permalink(permalink)
        if product is None:
            logger.warning(f"Checkout link: produkt {permalink} nie istnieje")
            return None

        option = None
        if option_id:
            option = self.repo.get_variant_by_external_id(option_id)
            if option is None or option.product_id != product.id:
                logger.warning(f"Checkout link: wariant {option_id} nie nalezy do produktu {product.external_id}")
                return None

        if price is None:
            price = product.price_cents + (option.price_difference_cents if option else 0)

        return ProductToAdd(
            product=cart_product(product),
            option_id=option.external_id if option else None,
            quantity=quantity,
            price=price,
            recurrence=recurrence,
            rent=rent,
            recommended_by=recommended_by,
            affiliate_id=_affiliate_id(affiliate_id) or None,
            call_start_time=call_start_time,
            pay_in_installments=pay_in_installments and product.allow_installment_plan,
        )

    # commands
    def update_cart(
        self,
        payload: CartUpdateIn,
        user: UserModel | None,
        browser_guid: str | None,
        ip_address: str | None,
    ) -> CartModel:
        """
        Podmienia zawartosc koszyka w jednej transakcji.
        Pozycje nieobecne w payloadzie sa oznaczane jako usuniete.
        """
        try:
            cart = self.repo.fetch_cart(user.id if user else None, browser_guid)
            if cart is None:
                cart = self.repo.add_cart(
                    CartModel(user_id=user.id if user else None, browser_guid=browser_guid, discount_codes=[])
                )
                logger.info(f"Utworzono nowy koszyk {cart.id} (user={user.id if user else None})")

            cart.ip_address = ip_address
            cart.browser_guid = browser_guid
            cart.email = payload.email or (user.email if user else None)
            cart.return_url = payload.return_url
            cart.reject_ppp_discount = payload.reject_ppp_discount or False
            cart.discount_codes = [{"code": dc.code, "fromUrl": dc.from_url} for dc in payload.discount_codes]

            kept_ids = set()
            for item in payload.items:
                kept_ids.add(self._upsert_cart_product(cart, item).id)

            for cp in self.repo.get_alive_cart_products(cart.id):
                if cp.id not in kept_ids:
                    cp.mark_deleted()

            self.repo.commit()
        except (CartValidationError, SQLAlchemyError):
            self.repo.rollback()
            raise

        logger.info(f"Koszyk {cart.id} zapisany, pozycji: {len(kept_ids)}")
        return cart

    def _upsert_cart_product(self, cart: CartModel, item) -> CartProductModel:
        product = self.repo.get_product_by_external_id(str(item.product.id))
        if product is None:
            raise CartValidationError(f"Product {item.product.id} does not exist")

        option = self.repo.get_variant_by_external_id(item.option_id) if item.option_id else None
        if option is not None and option.product_id != product.id:
            raise CartValidationError(f"Option {item.option_id} does not belong to product {product.external_id}")

        if item.price is None:
            raise CartValidationError("Price can't be blank")
        if item.quantity is None or item.quantity < 1:
            raise CartValidationError("Quantity must be greater than 0")

        cp = self.repo.find_alive_cart_product(cart.id, product.id, option.id if option else None)
        if cp is None:
            cp = CartProductModel(cart_id=cart.id, product_id=product.id, option_id=option.id if option else None)

        cp.affiliate_id = _affiliate_id(item.affiliate_id) or None

        accepted_offer = item.accepted_offer
        if accepted_offer is not None and accepted_offer.id:
            offer = self.repo.get_offer_by_external_id(accepted_offer.id)
            cp.accepted_offer_id = offer.id if offer else None
            cp.accepted_offer_details = {
                "original_product_id": accepted_offer.original_product_id,
                "original_variant_id": accepted_offer.original_variant_id,
            }

        cp.price = item.price
        cp.quantity = item.quantity
        cp.recurrence = item.recurrence
        cp.recommended_by = item.recommended_by
        cp.rent = bool(item.rent)
        cp.url_parameters = item.url_parameters
        cp.referrer = item.referrer
        cp.recommender_model_name = item.recommender_model_name
        cp.call_start_time = item.call_start_time
        cp.pay_in_installments = bool(item.pay_in_installments) and product.allow_installment_plan

        return self.repo.add_cart_product(cp)

    def save_cart_state(
        self,
        state: CartState,
        user: UserModel | None,
        browser_guid: str | None,
        ip_address: str | None,
    ) -> CartModel:
        """Zapis stanu koszyka (np. po checkoucie zostaja tylko nieudane pozycje)."""
        return self.update_cart(cart_update_from_state(state), user, browser_guid, ip_address)


def cart_update_from_state(state: CartState) -> CartUpdateIn:
    payload: Dict[str, Any] = {
        "email": state.email,
        "returnUrl": state.return_url,
        "rejectPppDiscount": state.reject_ppp_discount,
        "discountCodes": [{"code": dc.code, "fromUrl": dc.from_url} for dc in state.discount_codes],
        "items": [
            {
                "product": {"id": item.product.id},
                "option_id": item.option_id,
                "affiliate_id": item.affiliate_id,
                "price": item.price,
                "quantity": item.quantity,
                "recurrence": item.recurrence,
                "recommended_by": item.recommended_by,
                "rent": item.rent,
                "referrer": item.referrer,
                "recommender_model_name": item.recommender_model_name,
                "call_start_time": item.call_start_time,
                "pay_in_installments": item.pay_in_installments,
                "url_parameters": item.url_parameters,
                "accepted_offer": (
                    {
                        "id": item.accepted_offer.id,
                        "original_product_id": item.accepted_offer.original_product_id,
                        "original_variant_id": item.accepted_offer.original_variant_id,
                    }
                    if item.accepted_offer
                    else None
                ),
            }
            for item in state.items
        ],
    }
    return CartUpdateIn.model_validate(payload)


def _affiliate_id(raw) -> int:
    raw = str(raw or "")
    return int(raw) if raw.isdigit() else 0


def cart_product(product: ProductModel, with_offers: bool = True) -> CartProduct:
    """
    Produkt w formacie koszyka. with_offers=False dla produktow proponowanych
    w cross-sellu (ich wlasne oferty nie sa pokazywane).
    """
    seller = product.seller
    offers = product.offers if with_offers else []
    upsell = next((o for o in offers if not o.cross_sell), None)

    return CartProduct(
        id=product.external_id,
        permalink=product.permalink,
        name=product.name,
        creator=Creator(
            id=str(seller.id) if seller else "",
            name=seller.name if seller else "",
        ),
        price_cents=product.price_cents,
        currency_code=product.currency_code,
        native_type=product.native_type,
        quantity_remaining=product.quantity_remaining,
        options=[
            ProductOption(
                id=v.external_id,
                name=v.name,
                price_difference_cents=v.price_difference_cents,
                quantity_left=v.quantity_left,
                upsell_offered_variant_id=(
                    v.upsell_offered_variant.external_id if v.upsell_offered_variant and upsell else None
                ),
            )
            for v in product.variants
        ],
        cross_sells=[_cross_sell(o) for o in offers if o.cross_sell and o.offered_product is not None],
        upsell=_upsell(upsell) if upsell else None,
        ppp_details=PppDetails(factor=product.ppp_factor) if product.ppp_factor else None,
    )


def _cross_sell(offer: OfferModel) -> CrossSell:
    offered = offer.offered_product
    variant = offer.offered_variant
    return CrossSell(
        id=offer.external_id,
        text=offer.text or "",
        description=offer.description or "",
        replace_selected_products=offer.replace_selected_products,
        discount=offer.discount,
        offered_product=ProductToAdd(
            product=cart_product(offered, with_offers=False),
            option_id=variant.external_id if variant else None,
            quantity=1,
            price=offered.price_cents + (variant.price_difference_cents if variant else 0),
        ),
    )


def _upsell(offer: OfferModel) -> Upsell:
    return Upsell(
        id=offer.external_id,
        text=offer.text or "",
        description=offer.description or "",
        discount=offer.discount,
    )
