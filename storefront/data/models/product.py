# storefront/data/models/product.py
from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    external_id = Column(String, nullable=False, unique=True, index=True)
    permalink = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    price_cents = Column(Integer, nullable=False, default=0)
    currency_code = Column(String(3), nullable=False, default="usd")
    native_type = Column(String, nullable=False, default="digital")
    # None = bez limitu
    quantity_remaining = Column(Integer, nullable=True)
    allow_installment_plan = Column(Boolean, nullable=False, default=False)
    # wspolczynnik PPP (0, 1], None = brak rabatu regionalnego
    ppp_factor = Column(Float, nullable=True)

    seller = relationship("UserModel")
    variants = relationship(
        "VariantModel",
        back_populates="product",
        cascade="all, delete-orphan",
        foreign_keys="VariantModel.product_id",
        order_by="VariantModel.id",
    )
    offers = relationship(
        "OfferModel",
        back_populates="product",
        cascade="all, delete-orphan",
        foreign_keys="OfferModel.product_id",
        order_by="OfferModel.id",
    )


class VariantModel(Base):
    __tablename__ = "variants"

    id = Column(Integer, primary_key=True)
    external_id = Column(String, nullable=False, unique=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)

    name = Column(String, nullable=False)
    price_difference_cents = Column(Integer, nullable=False, default=0)
    quantity_left = Column(Integer, nullable=True)
    # wariant proponowany w upsellu, gdy kupujacy wybral ten
    upsell_offered_variant_id = Column(Integer, ForeignKey("variants.id"), nullable=True)

    product = relationship("ProductModel", back_populates="variants", foreign_keys=[product_id])
    upsell_offered_variant = relationship("VariantModel", remote_side=[id], foreign_keys=[upsell_offered_variant_id])


class OfferModel(Base):
    """
    Upsell i cross-sell w jednej tabeli, rozroznione flaga cross_sell.
    Cross-sell proponuje offered_product (opcjonalnie offered_variant),
    upsell proponuje inny wariant tego samego produktu (VariantModel.upsell_offered_variant).
    discount: {"type": "fixed", "cents": ...} albo {"type": "percent", "percents": ...}
    """

    __tablename__ = "offers"

    id = Column(Integer, primary_key=True)
    external_id = Column(String, nullable=False, unique=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)

    cross_sell = Column(Boolean, nullable=False, default=False)
    replace_selected_products = Column(Boolean, nullable=False, default=False)
    text = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    discount = Column(JSON, nullable=True)

    offered_product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=True)
    offered_variant_id = Column(Integer, ForeignKey("variants.id"), nullable=True)

    product = relationship("ProductModel", back_populates="offers", foreign_keys=[product_id])
    offered_product = relationship("ProductModel", foreign_keys=[offered_product_id])
    offered_variant = relationship("VariantModel", foreign_keys=[offered_variant_id])


class DiscountCodeModel(Base):
    """Kod rabatowy: jeden wiersz na (kod, produkt)."""

    __tablename__ = "discount_codes"
    __table_args__ = (UniqueConstraint("code", "product_id", name="uq_discount_code_product"),)

    id = Column(Integer, primary_key=True)
    code = Column(String, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    discount = Column(JSON, nullable=False)

    product = relationship("ProductModel")
