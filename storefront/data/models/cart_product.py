# storefront/data/models/cart_product.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartProductModel(Base):
    __tablename__ = "cart_products"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    option_id = Column(Integer, ForeignKey("variants.id"), nullable=True)
    affiliate_id = Column(Integer, nullable=True)
    accepted_offer_id = Column(Integer, ForeignKey("offers.id"), nullable=True)
    accepted_offer_details = Column(JSON, nullable=True)

    price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    recurrence = Column(String, nullable=True)
    recommended_by = Column(String, nullable=True)
    rent = Column(Boolean, nullable=False, default=False)
    url_parameters = Column(JSON, nullable=False, default=dict)
    referrer = Column(String, nullable=True)
    recommender_model_name = Column(String, nullable=True)
    call_start_time = Column(DateTime(timezone=True), nullable=True)
    pay_in_installments = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    cart = relationship("CartModel", back_populates="cart_products")
    product = relationship("ProductModel")
    option = relationship("VariantModel")
    accepted_offer = relationship("OfferModel")

    @property
    def alive(self) -> bool:
        return self.deleted_at is None

    def mark_deleted(self):
        self.deleted_at = _now()
