# storefront/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    browser_guid = Column(String, nullable=True, index=True)

    email = Column(String, nullable=True)
    return_url = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    reject_ppp_discount = Column(Boolean, nullable=False, default=False)
    discount_codes = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    cart_products = relationship(
        "CartProductModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartProductModel.id",
    )

    @property
    def alive(self) -> bool:
        return self.deleted_at is None

    @property
    def alive_cart_products(self):
        return [cp for cp in self.cart_products if cp.alive]
