import logging
import uuid
from datetime import datetime, timedelta

from storefront.models.cart_item import CartItem
from storefront.models.gift_product import GiftProduct
from storefront.models.gift_rule import GiftRule
from storefront.models.gift_rule_usage import GiftRuleUsage
from storefront.models.order import Order
from storefront.models.product import Product
from storefront.models.user_voucher import UserVoucher
from storefront.models.voucher import Voucher
from storefront.schemas.order import OrderBlockSettings
from storefront.services.order_service import (
    get_order_block_settings,
    invalidate_order_settings_cache,
    update_order_block_settings,
)

from conftest import HEADERS, USER_ID


def _order_body(*items, total=None, **extra):
    body = {
        "items": [
            {
                "product_id": str(product.id),
                "quantity": quantity,
                **({"is_gift": True, "gift_rule_id": str(rule.id)} if rule else {}),
            }
            for product, quantity, rule in items
        ],
        "total": total if total is not None else float(sum(p.price * q for p, q, r in items if r is None)),
        "shipping_address": "1 Main St",
    }
    body.update(extra)
    return body


def _place(client, *items, **kwargs):
    return client.post("/orders", json=_order_body(*items, **kwargs), headers=HEADERS)


def _settings(client, **changes):
    r = client.put("/admin/order-settings", json=changes)
    assert r.status_code == 200, r.text
    return r.json()


def test_reservation_then_insufficient_stock(client, db, make_product):
    product = make_product(title="Lamp", price=20, stock=5)

    r = _place(client, (product, 5, None))
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "PROCESSING"
    assert r.json()["total"] == 100

    db.refresh(product)
    assert (product.stock, product.reserved_stock, product.available_stock) == (5, 5, 0)

    r = _place(client, (product, 1, None))
    assert r.status_code == 409
    assert r.json()["detail"] == "Insufficient stock for Lamp. Available: 0, Requested: 1"


def test_delivery_commits_stock(client, db, make_product, notifier):
    product = make_product(title="Lamp", price=20, stock=5)
    order_id = _place(client, (product, 5, None)).json()["id"]

    r = client.patch(f"/admin/orders/{order_id}/status", json={"status": "DELIVERED"})
    assert r.status_code == 200
    assert r.json()["status"] == "DELIVERED"

    db.refresh(product)
    assert (product.stock, product.reserved_stock, product.total_sold) == (0, 0, 5)

    update = notifier.payloads("order_update")[-1]
    assert update["orderId"] == order_id
    assert update["status"] == "DELIVERED"


def test_failed_checkout_leaves_nothing_behind(client, db, make_product, put_in_cart):
    lamp = make_product(title="Lamp", price=20, stock=5)
    chair = make_product(title="Chair", price=40, stock=1)
    put_in_cart(lamp, 2)

    r = _place(client, (lamp, 2, None), (chair, 2, None))
    assert r.status_code == 409

    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.get(Product, lamp.id).reserved_stock == 0
    assert db.get(Product, lamp.id).available_stock == 5
    assert db.query(CartItem).filter(CartItem.user_id == USER_ID).count() == 1


def test_order_clears_cart_and_announces(client, db, make_product, put_in_cart, notifier):
    lamp = make_product(title="Lamp", price=20, stock=3, low_stock_alert=2)
    put_in_cart(lamp, 2)

    r = _place(client, (lamp, 2, None))
    assert r.status_code == 201

    db.expire_all()
    assert db.query(CartItem).filter(CartItem.user_id == USER_ID).count() == 0

    assert notifier.names()[0] == "new_order"
    assert notifier.payloads("new_order")[0]["order"]["id"] == r.json()["id"]

    inventory = notifier.payloads("inventory_update")[0]
    assert inventory["availableStock"] == 1
    assert notifier.payloads("low_stock_alert")[0]["threshold"] == 2


def test_broadcast_failure_does_not_fail_committed_order(client, db, make_product, notifier, monkeypatch, caplog):
    lamp = make_product(title="Lamp", price=20, stock=5)

    def _boom(*args, **kwargs):
        raise RuntimeError("socket gone")

    monkeypatch.setattr(notifier, "broadcast_new_order", _boom)
    monkeypatch.setattr(notifier, "broadcast_order_update", _boom)

    with caplog.at_level(logging.ERROR, logger="storefront.services.order_service"):
        r = _place(client, (lamp, 2, None))
        assert r.status_code == 201, r.text

        r = client.patch(f"/admin/orders/{r.json()['id']}/status", json={"status": "DELIVERED"})
        assert r.status_code == 200, r.text

    assert [rec.message for rec in caplog.records].count("order broadcast failed") == 2

    db.expire_all()
    assert db.query(Order).one().status == "DELIVERED"
    assert db.get(Product, lamp.id).stock == 3


def test_gift_checkout_records_usage(client, db, make_product, make_rule, put_in_cart):
    shoe = make_product(title="Shoe", price=50)
    socks = make_product(title="Socks", price=5)
    rule = make_rule([{"type": "MIN_AMOUNT", "min_amount": 100}], [socks])
    rule_id = rule.id

    gift_product = db.query(GiftProduct).filter(GiftProduct.gift_rule_id == rule_id).one()
    gift_product.remaining_stock = 3
    db.commit()

    put_in_cart(shoe, 2)
    put_in_cart(socks, 1, gift_rule=rule)

    r = _place(client, (shoe, 2, None), (socks, 1, rule))
    assert r.status_code == 201, r.text
    data = r.json()

    assert data["total"] == 100
    gift_line = next(item for item in data["items"] if item["is_gift"])
    assert gift_line["price"] == 0
    assert gift_line["original_price"] == 5
    assert gift_line["gift_rule_id"] == str(rule_id)

    db.expire_all()
    assert db.get(GiftRule, rule_id).current_total_uses == 1
    usage = db.query(GiftRuleUsage).filter(GiftRuleUsage.gift_rule_id == rule_id).one()
    assert (usage.user_id, str(usage.order_id), usage.product_id) == (USER_ID, data["id"], socks.id)
    assert db.query(GiftProduct).filter(GiftProduct.gift_rule_id == rule_id).one().remaining_stock == 2
    assert db.get(Product, socks.id).reserved_stock == 1


def test_invalid_gift_blocks_checkout(client, db, make_product, make_rule):
    shoe = make_product(title="Shoe", price=50)
    socks = make_product(title="Socks", price=5)
    rule = make_rule([{"type": "MIN_AMOUNT", "min_amount": 100}], [socks])

    r = _place(client, (shoe, 1, None), (socks, 1, rule))
    assert r.status_code == 409
    assert r.json()["detail"] == {"message": "Invalid gift selection", "errors": ["Socks: Conditions not met"]}

    db.expire_all()
    assert db.query(Order).count() == 0
    assert db.get(Product, shoe.id).reserved_stock == 0


def test_usage_cap_applies_to_next_checkout(client, make_product, make_rule):
    shoe = make_product(title="Shoe", price=50)
    socks = make_product(title="Socks", price=5)
    rule = make_rule([{"type": "MIN_AMOUNT", "min_amount": 100}], [socks], max_total_uses=1)

    assert _place(client, (shoe, 2, None), (socks, 1, rule)).status_code == 201

    r = _place(client, (shoe, 2, None), (socks, 1, rule))
    assert r.status_code == 409
    assert r.json()["detail"]["errors"] == ["Socks: Gift rule usage limit has been reached"]


def test_permanent_block(client, make_product):
    lamp = make_product(title="Lamp", price=20)
    _settings(client, block_new_orders=True, block_reason="Inventory count in progress")

    r = _place(client, (lamp, 1, None))
    assert r.status_code == 409
    assert r.json()["detail"] == "Inventory count in progress"


def test_time_bounded_block(client, make_product):
    lamp = make_product(title="Lamp", price=20)

    _settings(client, block_new_orders=True, block_until=(datetime.utcnow() + timedelta(hours=1)).isoformat())
    assert _place(client, (lamp, 1, None)).status_code == 409

    _settings(client, block_new_orders=True, block_until=(datetime.utcnow() - timedelta(hours=1)).isoformat())
    assert _place(client, (lamp, 1, None)).status_code == 201


def test_settings_update_is_left_to_the_caller_to_commit(db):
    update_order_block_settings(db, OrderBlockSettings(block_new_orders=True))
    db.rollback()
    invalidate_order_settings_cache()

    assert get_order_block_settings(db).block_new_orders is False

    update_order_block_settings(db, OrderBlockSettings(block_new_orders=True))
    db.commit()
    invalidate_order_settings_cache()

    assert get_order_block_settings(db).block_new_orders is True


def test_order_value_bounds_and_payment_methods(client, make_product):
    lamp = make_product(title="Lamp", price=20)
    settings = _settings(
        client,
        minimum_order_value=30,
        maximum_order_value=100,
        allowed_payment_methods=["card"],
    )
    assert client.get("/admin/order-settings").json() == settings

    r = _place(client, (lamp, 1, None), payment_method="card")
    assert r.json()["detail"] == "Minimum order value is 30.0"

    r = _place(client, (lamp, 6, None), payment_method="card")
    assert r.json()["detail"] == "Maximum order value is 100.0"

    r = _place(client, (lamp, 2, None), payment_method="cash")
    assert r.json()["detail"] == "Payment method 'cash' is not allowed"

    r = _place(client, (lamp, 2, None), payment_method="card")
    assert r.status_code == 201
    assert r.json()["payment_method"] == "card"


def test_voucher_discount(client, db, make_product):
    lamp = make_product(title="Lamp", price=50)
    r = client.post(
        "/admin/vouchers",
        json={"code": "spring10", "discount_type": "percentage", "discount_value": 10, "max_discount": 8},
    )
    assert r.status_code == 201
    assert r.json()["code"] == "SPRING10"

    r = _place(client, (lamp, 2, None), voucher_code="Spring10")
    assert r.status_code == 201, r.text
    assert r.json()["total"] == 92

    db.expire_all()
    voucher = db.query(Voucher).filter(Voucher.code == "SPRING10").one()
    assert voucher.used_count == 1
    assert db.query(UserVoucher).filter(UserVoucher.user_id == USER_ID).count() == 1

    r = _place(client, (lamp, 1, None), voucher_code="SPRING10")
    assert r.status_code == 409
    assert r.json()["detail"] == "Voucher already used"


def test_unknown_voucher_rolls_back(client, db, make_product):
    lamp = make_product(title="Lamp", price=50)

    r = _place(client, (lamp, 1, None), voucher_code="NOPE")
    assert r.status_code == 409

    db.expire_all()
    assert db.query(Order).count() == 0


def test_status_update_for_missing_order(client):
    r = client.patch(f"/admin/orders/{uuid.uuid4()}/status", json={"status": "SHIPPED"})
    assert r.status_code == 404


def test_cancelled_order_cannot_be_reopened(client, make_product):
    lamp = make_product(title="Lamp", price=20)
    order_id = _place(client, (lamp, 1, None)).json()["id"]

    assert client.patch(f"/admin/orders/{order_id}/status", json={"status": "CANCELLED"}).status_code == 200
    r = client.patch(f"/admin/orders/{order_id}/status", json={"status": "PROCESSING"})
    assert r.status_code == 409
    assert client.get(f"/orders/{order_id}", headers=HEADERS).json()["status"] == "CANCELLED"


def test_order_queries_and_stats(client, make_product):
    lamp = make_product(title="Lamp", price=20)
    first = _place(client, (lamp, 1, None)).json()["id"]
    _place(client, (lamp, 2, None))
    client.post(
        "/orders",
        json=_order_body((lamp, 1, None)),
        headers={"X-User-Id": "someone-else"},
    )
    client.patch(f"/admin/orders/{first}/status", json={"status": "CANCELLED"})

    mine = client.get("/orders/my", headers=HEADERS).json()
    assert len(mine) == 2

    assert client.get(f"/orders/{first}", headers={"X-User-Id": "someone-else"}).status_code == 404

    page = client.get("/admin/orders", params={"status": "CANCELLED"}).json()
    assert page["total"] == 1
    assert page["orders"][0]["id"] == first

    stats = client.get("/admin/orders/stats").json()
    assert stats["total_orders"] == 3
    assert stats["total_revenue"] == 60
    assert stats["cancelled_orders"] == 1
    assert stats["processing_orders"] == 2
