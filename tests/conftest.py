# tests/conftest.py
# Project root on sys.path so `import storefront...` works without install.
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

# settings czyta env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api import create_app
from storefront.data.database import Base, get_db
import storefront.data.models  # noqa: F401
from storefront.data.models import DiscountCodeModel, OfferModel, ProductModel, UserModel, VariantModel


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(db):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seller(db):
    user = UserModel(id=1, name="Seller", email="seller@example.com")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def buyer_user(db):
    user = UserModel(id=2, name="Buyer", email="buyer@example.com")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_product(db, seller):
    def _make(external_id, permalink=None, price_cents=1000, allow_installment_plan=False, **kwargs):
        product = ProductModel(
            external_id=external_id,
            permalink=permalink or external_id,
            name=kwargs.pop("name", f"Product {external_id}"),
            seller_id=seller.id,
            price_cents=price_cents,
            allow_installment_plan=allow_installment_plan,
            **kwargs,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db):
    def _make(product, external_id, name=None, price_difference_cents=0, quantity_left=None, upsell_offered_variant=None):
        variant = VariantModel(
            external_id=external_id,
            product_id=product.id,
            name=name or external_id,
            price_difference_cents=price_difference_cents,
            quantity_left=quantity_left,
            upsell_offered_variant_id=upsell_offered_variant.id if upsell_offered_variant else None,
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def make_offer(db):
    def _make(
        product,
        external_id,
        cross_sell=False,
        replace_selected_products=False,
        description=None,
        offered_product=None,
        offered_variant=None,
        discount=None,
        text=None,
    ):
        offer = OfferModel(
            external_id=external_id,
            product_id=product.id,
            cross_sell=cross_sell,
            replace_selected_products=replace_selected_products,
            description=description,
            text=text,
            discount=discount,
            offered_product_id=offered_product.id if offered_product else None,
            offered_variant_id=offered_variant.id if offered_variant else None,
        )
        db.add(offer)
        db.commit()
        return offer

    return _make


@pytest.fixture
def make_discount_code(db):
    def _make(code, product, discount):
        row = DiscountCodeModel(code=code, product_id=product.id, discount=discount)
        db.add(row)
        db.commit()
        return row

    return _make
