# storefront/domain/cart_state.py
"""
Stan koszyka po stronie checkoutu.

Te same modele sa formatem JSON wysylanym przez strone checkoutu
(camelCase tylko tam, gdzie tak wyglada payload: returnUrl, discountCodes, ...).
"""
from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from urllib.parse import parse_qsl, unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field

# parametry URL, ktore checkout interpretuje sam i nie przekazuje dalej
RESERVED_URL_PARAMS = (
    "product",
    "option",
    "recurrence",
    "quantity",
    "price",
    "recommended_by",
    "affiliate_id",
    "referrer",
    "rent",
    "recommender_model_name",
    "call_start_time",
    "pay_in_installments",
)


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FixedDiscount(_Model):
    type: Literal["fixed"] = "fixed"
    cents: int = Field(..., ge=0)


class PercentDiscount(_Model):
    type: Literal["percent"] = "percent"
    percents: int = Field(..., ge=0, le=100)


Discount = Annotated[Union[FixedDiscount, PercentDiscount], Field(discriminator="type")]


class DiscountCode(_Model):
    code: str
    from_url: bool = Field(False, alias="fromUrl")
    # permalink produktu -> rabat
    products: Dict[str, Discount] = Field(default_factory=dict)


class Creator(_Model):
    id: str
    name: str = ""


class ProductOption(_Model):
    id: str
    name: str
    description: str = ""
    price_difference_cents: int = 0
    quantity_left: Optional[int] = None
    upsell_offered_variant_id: Optional[str] = None
    is_pwyw: bool = False


class PppDetails(_Model):
    factor: float = Field(..., gt=0, le=1)


class InstallmentPlan(_Model):
    number_of_installments: int = Field(..., ge=1)


class FreeTrial(_Model):
    duration: Dict[str, Union[int, str]] = Field(default_factory=dict)


class BundleProduct(_Model):
    product_id: str
    name: str = ""
    quantity: int = 1
    variant_id: Optional[str] = None


class Upsell(_Model):
    id: str
    text: str = ""
    description: str = ""
    discount: Optional[Discount] = None


class CartProduct(_Model):
    id: str
    permalink: str
    name: str
    creator: Creator
    price_cents: int = 0
    currency_code: str = "usd"
    # jednostki waluty za 1 USD, None dla USD
    exchange_rate: Optional[float] = None
    native_type: str = "digital"
    quantity_remaining: Optional[int] = None
    options: List[ProductOption] = Field(default_factory=list)
    cross_sells: List["CrossSell"] = Field(default_factory=list)
    upsell: Optional[Upsell] = None
    ppp_details: Optional[PppDetails] = None
    bundle_products: List[BundleProduct] = Field(default_factory=list)
    installment_plan: Optional[InstallmentPlan] = None
    free_trial: Optional[FreeTrial] = None
    has_tipping_enabled: bool = False
    require_shipping: bool = False
    is_preorder: bool = False
    can_gift: bool = True

    def find_option(self, option_id: Optional[str]) -> Optional[ProductOption]:
        if option_id is None:
            return None
        return next((o for o in self.options if o.id == option_id), None)


class ProductToAdd(_Model):
    product: CartProduct
    option_id: Optional[str] = None
    quantity: Optional[int] = None
    price: int = 0
    recurrence: Optional[str] = None
    rent: bool = False
    recommended_by: Optional[str] = None
    affiliate_id: Optional[int] = None
    call_start_time: Optional[str] = None
    pay_in_installments: bool = False


class CrossSell(_Model):
    id: str
    text: str = ""
    description: str = ""
    replace_selected_products: bool = False
    discount: Optional[Discount] = None
    offered_product: ProductToAdd


class AcceptedOffer(_Model):
    id: str
    original_product_id: Optional[str] = None
    original_variant_id: Optional[str] = None
    discount: Optional[Discount] = None


class CartItem(ProductToAdd):
    quantity: int = 1
    url_parameters: Dict[str, str] = Field(default_factory=dict)
    referrer: str = "direct"
    recommender_model_name: Optional[str] = None
    accepted_offer: Optional[AcceptedOffer] = None


class Gift(_Model):
    type: Literal["normal", "anonymous"] = "normal"
    email: Optional[str] = None
    id: Optional[str] = None
    note: str = ""


class CartState(_Model):
    items: List[CartItem] = Field(default_factory=list)
    email: Optional[str] = None
    return_url: Optional[str] = Field(None, alias="returnUrl")
    discount_codes: List[DiscountCode] = Field(default_factory=list, alias="discountCodes")
    reject_ppp_discount: bool = Field(False, alias="rejectPppDiscount")
    gift: Optional[Gift] = None


for _model in (CartProduct, ProductToAdd, CrossSell, CartItem, CartState):
    _model.model_rebuild()


def new_cart_state() -> CartState:
    return CartState()


def cart_item_uid(item: CartItem) -> str:
    return f"{item.product.permalink} {item.option_id or ''}"


def find_cart_item(cart: CartState, permalink: str, option_id: Optional[str]) -> Optional[CartItem]:
    for item in cart.items:
        if item.product.permalink == permalink and item.option_id == option_id:
            return item
    return None


def add_item(cart: CartState, product: ProductToAdd, url: str, referrer: Optional[str] = None) -> CartItem:
    """
    Dodaje produkt do koszyka albo nadpisuje istniejaca pozycje
    o tym samym kluczu (permalink, option_id). Nowe pozycje ida na poczatek.
    """
    existing = find_cart_item(cart, product.product.permalink, product.option_id)

    query = parse_qsl(urlsplit(url).query, keep_blank_values=True)
    url_parameters = {key: value for key, value in query if key not in RESERVED_URL_PARAMS}

    option = product.product.find_option(product.option_id)
    stock = option.quantity_left if option else product.product.quantity_remaining
    quantity = product.quantity or 1
    if stock is not None:
        quantity = min(quantity, stock)

    fields = dict(product)
    fields.update(
        quantity=quantity,
        url_parameters=url_parameters,
        referrer=referrer or "direct",
        recommender_model_name=dict(query).get("recommender_model_name"),
    )

    if existing:
        for name, value in fields.items():
            setattr(existing, name, value)
        return existing

    item = CartItem(**fields)
    cart.items.insert(0, item)
    return item


def remove_item(cart: CartState, permalink: str, option_id: Optional[str]) -> bool:
    before = len(cart.items)
    cart.items = [
        item for item in cart.items
        if not (item.product.permalink == permalink and item.option_id == option_id)
    ]
    return len(cart.items) != before


def max_products_alert(max_allowed: int) -> str:
    return f"You cannot add more than {max_allowed} products to the cart."


def build_initial_cart(
    cart: Optional[CartState],
    add_products: List[ProductToAdd],
    url: str,
    *,
    max_allowed: int,
    clear_cart: bool = False,
    document_referrer: Optional[str] = None,
) -> Tuple[CartState, Optional[str]]:
    """
    Skladanie koszyka przy wejsciu na checkout.
    Zwraca (koszyk, alert) - alert tylko gdy przekroczono limit produktow.
    """
    initial = new_cart_state() if clear_cart or cart is None else cart

    url_referrer = dict(parse_qsl(urlsplit(url).query)).get("referrer")
    referrer = unquote(url_referrer) if url_referrer else None
    return_url = referrer or document_referrer
    if return_url:
        initial.return_url = return_url

    new_products = [
        p for p in add_products
        if not find_cart_item(initial, p.product.permalink, p.option_id)
    ]
    if len(initial.items) + len(new_products) > max_allowed:
        initial.items = initial.items[:max_allowed]
        return initial, max_products_alert(max_allowed)

    if add_products:
        for product in reversed(add_products):
            add_item(initial, product, url, referrer)
        initial.reject_ppp_discount = False

    return initial, None
