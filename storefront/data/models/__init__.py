#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.user import UserModel
from storefront.data.models.product import ProductModel, VariantModel, OfferModel, DiscountCodeModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_product import CartProductModel
from storefront.data.models.purchase import PurchaseModel

__all__ = [
    "UserModel",
    "ProductModel",
    "VariantModel",
    "OfferModel",
    "DiscountCodeModel",
    "CartModel",
    "CartProductModel",
    "PurchaseModel",
]
