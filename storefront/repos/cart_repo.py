# storefront/repos/cart_repo.py
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_product import CartProductModel
from storefront.data.models.product import ProductModel, VariantModel, OfferModel, DiscountCodeModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def fetch_cart(self, user_id: int | None, browser_guid: str | None) -> CartModel | None:
        """Koszyk zalogowanego uzytkownika albo koszyk goscia dla danego browser_guid."""
        stmt = select(CartModel).where(CartModel.deleted_at.is_(None))
        if user_id is not None:
            stmt = stmt.where(CartModel.user_id == user_id)
        elif browser_guid:
            stmt = stmt.where(CartModel.user_id.is_(None), CartModel.browser_guid == browser_guid)
        else:
            return None
        return self.db.execute(stmt.order_by(CartModel.id.desc())).scalars().first()

    def add_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def find_alive_cart_product(
        self, cart_id: int, product_id: int, option_id: int | None
    ) -> CartProductModel | None:
        stmt = select(CartProductModel).where(
            CartProductModel.cart_id == cart_id,
            CartProductModel.product_id == product_id,
            CartProductModel.deleted_at.is_(None),
        )
        if option_id is None:
            stmt = stmt.where(CartProductModel.option_id.is_(None))
        else:
            stmt = stmt.where(CartProductModel.option_id == option_id)
        return self.db.execute(stmt).scalars().first()

    def get_alive_cart_products(self, cart_id: int) -> list[CartProductModel]:
        stmt = (
            select(CartProductModel)
            .where(CartProductModel.cart_id == cart_id, CartProductModel.deleted_at.is_(None))
            .order_by(CartProductModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_cart_product(self, cart_product: CartProductModel) -> CartProductModel:
        self.db.add(cart_product)
        self.db.flush()
        return cart_product

    def get_product_by_external_id(self, external_id: str) -> ProductModel | None:
        stmt = select(ProductModel).where(ProductModel.external_id == external_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_product_by_permalink(self, permalink: str) -> ProductModel | None:
        """Link do checkoutu moze podawac permalink albo external_id produktu."""
        stmt = select(ProductModel).where(
            or_(ProductModel.permalink == permalink, ProductModel.external_id == permalink)
        )
        return self.db.execute(stmt.order_by(ProductModel.id)).scalars().first()

    def get_variant_by_external_id(self, external_id: str) -> VariantModel | None:
        stmt = select(VariantModel).where(VariantModel.external_id == external_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_offer_by_external_id(self, external_id: str) -> OfferModel | None:
        stmt = select(OfferModel).where(OfferModel.external_id == external_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_discount_codes(self, codes: list[str]) -> list[DiscountCodeModel]:
        if not codes:
            return []
        stmt = select(DiscountCodeModel).where(DiscountCodeModel.code.in_(codes)).order_by(DiscountCodeModel.id)
        return list(self.db.execute(stmt).scalars().all())

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
