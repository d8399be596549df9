from sqlalchemy import Column, Integer, String

from storefront.data.database import Base


class PurchaseModel(Base):
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True)
    external_id = Column(String, nullable=False, unique=True)
    charge_processor_id = Column(String, nullable=False, default="stripe")  # stripe | paypal
    # dla paypala trzyma capture id
    stripe_transaction_id = Column(String, nullable=True, index=True)
    paypal_order_id = Column(String, nullable=True)
    merchant_id = Column(String, nullable=True)
    currency = Column(String(3), nullable=True)
