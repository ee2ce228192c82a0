import os

os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.db import Base, get_db
from storefront.main import app
from storefront.models.cart_item import CartItem
from storefront.models.category import Category
from storefront.models.product import Product
from storefront.schemas.gift_rule import GiftRuleCreate
from storefront.services import gift_rule_service
from storefront.services.order_service import invalidate_order_settings_cache
from storefront.services.realtime_service import RealtimeService, get_notifier


USER_ID = "user-1"
HEADERS = {"X-User-Id": USER_ID}


class RecordingNotifier(RealtimeService):
    def __init__(self):
        super().__init__()
        self.events = []
        self.subscribe(lambda name, payload: self.events.append((name, payload)))

    def names(self):
        return [name for name, _ in self.events]

    def payloads(self, event_name):
        return [payload for name, payload in self.events if name == event_name]


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
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, notifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _fresh_order_settings():
    invalidate_order_settings_cache()
    yield
    invalidate_order_settings_cache()


# ============================================================
# Builders (committed, so request sessions see them)
# ============================================================
@pytest.fixture
def make_category(db):
    def _make(name="Shoes"):
        category = Category(name=name)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def make_product(db):
    def _make(title="Sneaker", price=50.0, stock=10, category=None, low_stock_alert=2):
        product = Product(
            title=title,
            price=price,
            stock=stock,
            reserved_stock=0,
            available_stock=stock,
            total_sold=0,
            total_ordered=0,
            low_stock_alert=low_stock_alert,
            category_id=category.id if category else None,
            is_active=True,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_rule(db):
    def _make(conditions, gift_products, **kwargs):
        payload = GiftRuleCreate(
            name=kwargs.pop("name", "Free socks"),
            conditions=conditions,
            gift_product_ids=[p.id for p in gift_products],
            **kwargs,
        )
        rule = gift_rule_service.create_rule(db, payload, created_by="admin")
        db.commit()
        db.refresh(rule)
        return rule

    return _make


@pytest.fixture
def put_in_cart(db):
    def _put(product, quantity=1, user_id=USER_ID, gift_rule=None):
        item = CartItem(
            user_id=user_id,
            product_id=product.id,
            quantity=quantity,
            is_gift=gift_rule is not None,
            gift_rule_id=gift_rule.id if gift_rule else None,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _put
