# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, Dict, List, Literal, Optional, Union
from datetime import datetime

from storefront.domain.cart_state import CartState


class DiscountCodeIn(BaseModel):
    """Kod rabatowy zapisany w koszyku."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    from_url: bool = Field(False, alias="fromUrl")


class ProductRefIn(BaseModel):
    id: Union[str, int]


class AcceptedOfferIn(BaseModel):
    id: Optional[str] = None
    original_product_id: Optional[str] = None
    original_variant_id: Optional[str] = None


class CartItemIn(BaseModel):
    """
    Pozycja koszyka wysylana przez checkout.
    price/quantity sa opcjonalne w schemacie - brak jest bledem walidacji koszyka,
    a nie bledem 422.
    """

    product: ProductRefIn
    option_id: Optional[str] = None
    affiliate_id: Optional[Union[int, str]] = None
    price: Optional[int] = None
    quantity: Optional[int] = None
    recurrence: Optional[str] = None
    recommended_by: Optional[str] = None
    rent: bool = False
    referrer: Optional[str] = None
    recommender_model_name: Optional[str] = None
    call_start_time: Optional[datetime] = None
    pay_in_installments: bool = False
    url_parameters: Dict[str, str] = Field(default_factory=dict)
    accepted_offer: Optional[AcceptedOfferIn] = None


class CartUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    return_url: Optional[str] = Field(None, alias="returnUrl")
    reject_ppp_discount: Optional[bool] = Field(None, alias="rejectPppDiscount")
    discount_codes: List[DiscountCodeIn] = Field(default_factory=list, alias="discountCodes")
    items: List[CartItemIn] = Field(default_factory=list)


class CartUpdateRequest(BaseModel):
    cart: CartUpdateIn


class PercentageTip(BaseModel):
    type: Literal["percentage"] = "percentage"
    percentage: int = Field(..., ge=0, le=100)


class FixedTip(BaseModel):
    type: Literal["fixed"] = "fixed"
    amount_cents: int = Field(..., ge=0)


Tip = Annotated[Union[PercentageTip, FixedTip], Field(discriminator="type")]


class BuyerInfo(BaseModel):
    """Dane kupujacego z formularza platnosci."""

    email: str = Field(..., min_length=1)
    full_name: Optional[str] = None
    zip_code: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    vat_id: Optional[str] = None
    payment_method: Dict[str, Union[str, int, bool, None]] = Field(default_factory=dict)
    tip: Optional[Tip] = None
    recaptcha_response: Optional[str] = None


class CheckoutIn(BaseModel):
    cart: CartState
    buyer: BuyerInfo


class LineItemResultOut(BaseModel):
    uid: str
    result: dict


class CheckoutOutcomeOut(BaseModel):
    redirect_to: Optional[str] = None
    redirect_url: Optional[str] = None
    view: Optional[str] = None
    results: List[LineItemResultOut]
    cart: CartState
    can_buyer_sign_up: bool = False


class OfferIn(BaseModel):
    cart: CartState


class OfferOut(BaseModel):
    status: str
    offer_id: Optional[str] = None
    offer_type: Optional[str] = None
    description: Optional[str] = None
    price_if_accepted: Optional[int] = None
    cart: CartState
