import logging
import math
import os
import time
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.errors import BusinessRuleViolation, NotFoundError
from storefront.models.cart_item import CartItem
from storefront.models.gift_product import GiftProduct
from storefront.models.gift_rule import GiftRule
from storefront.models.gift_rule_usage import GiftRuleUsage
from storefront.models.order import Order
from storefront.models.order_item import OrderItem
from storefront.models.product import Product
from storefront.models.site_config import SiteConfig
from storefront.models.user_voucher import UserVoucher
from storefront.models.voucher import Voucher
from storefront.schemas.order import OrderBlockSettings, OrderOut
from storefront.services.condition_evaluator import CartLine, compute_subtotal, to_decimal
from storefront.services.gift_validator import validate_gifts_in_order
from storefront.services.inventory_service import (
    apply_status_transition,
    broadcast_inventory,
    lock_product,
    reserve_stock,
)
from storefront.services.realtime_service import get_notifier


logger = logging.getLogger(__name__)

ORDER_BLOCK_SETTINGS_KEY = "order_block_settings"
SETTINGS_CACHE_TTL = float(os.getenv("ORDER_SETTINGS_CACHE_TTL", "30"))

CENTS = Decimal("0.01")

_settings_cache = {"value": None, "loaded_at": 0.0}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================
# Order block settings (persisted, cached per process)
# ============================================================
def invalidate_order_settings_cache():
    _settings_cache["value"] = None
    _settings_cache["loaded_at"] = 0.0


def get_order_block_settings(db: Session) -> OrderBlockSettings:
    cached = _settings_cache["value"]
    if cached is not None and time.monotonic() - _settings_cache["loaded_at"] < SETTINGS_CACHE_TTL:
        return cached

    row = db.get(SiteConfig, ORDER_BLOCK_SETTINGS_KEY)
    settings = OrderBlockSettings(**(row.value or {})) if row else OrderBlockSettings()

    _settings_cache["value"] = settings
    _settings_cache["loaded_at"] = time.monotonic()
    return settings


def update_order_block_settings(db: Session, settings: OrderBlockSettings) -> OrderBlockSettings:
    row = db.get(SiteConfig, ORDER_BLOCK_SETTINGS_KEY)
    value = settings.model_dump(mode="json")

    if row:
        row.value = value
    else:
        db.add(
            SiteConfig(
                key=ORDER_BLOCK_SETTINGS_KEY,
                value=value,
                description="New order blocking and order value limits",
            )
        )
    db.flush()

    logger.info(
        "order block settings updated",
        extra={"block_new_orders": settings.block_new_orders, "block_until": value.get("block_until")},
    )
    return settings


def _is_blocked(settings: OrderBlockSettings, now: datetime) -> bool:
    if not settings.block_new_orders:
        return False
    if settings.block_until is None:
        return True

    until = settings.block_until
    if until.tzinfo is not None:
        until = until.astimezone(timezone.utc).replace(tzinfo=None)
    return now < until


def check_order_allowed(settings: OrderBlockSettings, total, payment_method: str, now: datetime | None = None):
    now = now or _utcnow()
    total = to_decimal(total)

    if _is_blocked(settings, now):
        raise BusinessRuleViolation(settings.block_reason or "New orders are temporarily disabled")

    if total < to_decimal(settings.minimum_order_value):
        raise BusinessRuleViolation(f"Minimum order value is {settings.minimum_order_value}")

    if settings.maximum_order_value is not None and total > to_decimal(settings.maximum_order_value):
        raise BusinessRuleViolation(f"Maximum order value is {settings.maximum_order_value}")

    if payment_method not in settings.allowed_payment_methods:
        raise BusinessRuleViolation(f"Payment method '{payment_method}' is not allowed")


# ============================================================
# Vouchers
# ============================================================
def _resolve_voucher(db: Session, user_id: str, code: str, subtotal: Decimal, now: datetime):
    voucher = db.query(Voucher).filter(Voucher.code == code.strip().upper()).first()
    if not voucher or not voucher.is_active:
        raise BusinessRuleViolation("Invalid voucher code")
    if voucher.valid_until and now > voucher.valid_until:
        raise BusinessRuleViolation("Voucher has expired")
    if voucher.min_purchase and subtotal < to_decimal(voucher.min_purchase):
        raise BusinessRuleViolation(f"Minimum purchase of {voucher.min_purchase} required for this voucher")

    already_used = (
        db.query(UserVoucher.id)
        .filter(UserVoucher.user_id == user_id, UserVoucher.voucher_id == voucher.id)
        .first()
    )
    if already_used:
        raise BusinessRuleViolation("Voucher already used")

    return voucher


def compute_discount(voucher: Voucher, subtotal: Decimal) -> Decimal:
    subtotal = to_decimal(subtotal)
    if voucher.discount_type == "percentage":
        discount = subtotal * to_decimal(voucher.discount_value) / 100
        if voucher.max_discount:
            discount = min(discount, to_decimal(voucher.max_discount))
    else:
        discount = to_decimal(voucher.discount_value)
    return min(discount, subtotal).quantize(CENTS)


# ============================================================
# Create order
# ============================================================
def _order_lines(db: Session, items) -> list[CartLine]:
    product_ids = {item.product_id for item in items}
    products = {p.id: p for p in db.query(Product).filter(Product.id.in_(list(product_ids))).all()}

    lines = []
    for i, item in enumerate(items):
        product = products.get(item.product_id)
        if not product:
            raise NotFoundError("Product not found")
        if item.is_gift and item.gift_rule_id is None:
            raise BusinessRuleViolation(f"{product.title}: Gift item has no associated rule")

        lines.append(
            CartLine(
                # order lines have no cart identity; the position keeps them distinct
                id=f"{item.product_id}:{i}",
                product_id=item.product_id,
                quantity=item.quantity,
                price=product.price,
                category_id=product.category_id,
                is_gift=item.is_gift,
                gift_rule_id=item.gift_rule_id if item.is_gift else None,
                title=product.title,
                stock=product.available_stock,
            )
        )
    return lines


def create_order(db: Session, user_id: str, payload, notifier=None) -> Order:
    """
    Checkout. Gift lines are revalidated against the submitted cart, then
    stock reservation, voucher use, order rows, gift usage and cart clearing
    commit together. Any failure rolls the whole order back.
    """
    notifier = notifier or get_notifier()
    now = _utcnow()
    payment_method = payload.payment_method or "cash"

    check_order_allowed(get_order_block_settings(db), payload.total, payment_method, now)

    lines = _order_lines(db, payload.items)

    if any(line.is_gift for line in lines):
        validation = validate_gifts_in_order(db, user_id, lines)
        if not validation.is_valid:
            raise BusinessRuleViolation({"message": "Invalid gift selection", "errors": validation.errors})

    subtotal = compute_subtotal(lines)

    try:
        voucher = None
        discount = Decimal("0")
        if payload.voucher_code:
            voucher = _resolve_voucher(db, user_id, payload.voucher_code, subtotal, now)
            discount = compute_discount(voucher, subtotal)
            voucher.used_count = (voucher.used_count or 0) + 1

        order = Order(
            user_id=user_id,
            status="PROCESSING",
            total=(subtotal - discount).quantize(CENTS),
            shipping_address=payload.shipping_address,
            delivery_phone=payload.delivery_phone,
            delivery_name=payload.delivery_name,
            payment_method=payment_method,
            delivery_method=payload.delivery_method or "courier",
            voucher_id=voucher.id if voucher else None,
        )
        db.add(order)
        db.flush()

        touched = {}
        for line in lines:
            product = touched.get(line.product_id) or lock_product(db, line.product_id)
            touched[product.id] = product
            reserve_stock(db, product, line.quantity, order.id)

            db.add(
                OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=Decimal("0") if line.is_gift else product.price,
                    original_price=product.price,
                    is_gift=line.is_gift,
                    gift_rule_id=line.gift_rule_id,
                )
            )

            if line.is_gift:
                _record_gift_usage(db, user_id, order.id, line)

        if voucher:
            db.add(UserVoucher(user_id=user_id, voucher_id=voucher.id, order_id=order.id))

        db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order created",
        extra={"order_id": str(order.id), "user_id": user_id, "total": str(order.total), "items": len(lines)},
    )

    try:
        notifier.broadcast_new_order(order_to_out(db, order, mode="json"))
        broadcast_inventory(notifier, touched.values())
    except Exception:
        logger.exception("order broadcast failed", extra={"order_id": str(order.id)})

    return order


def _record_gift_usage(db: Session, user_id: str, order_id, line: CartLine):
    db.add(
        GiftRuleUsage(
            gift_rule_id=line.gift_rule_id,
            user_id=user_id,
            order_id=order_id,
            product_id=line.product_id,
        )
    )

    # never decremented, even if the order is cancelled later
    db.query(GiftRule).filter(GiftRule.id == line.gift_rule_id).update(
        {GiftRule.current_total_uses: GiftRule.current_total_uses + 1}, synchronize_session=False
    )

    gift_product = (
        db.query(GiftProduct)
        .filter(GiftProduct.gift_rule_id == line.gift_rule_id, GiftProduct.product_id == line.product_id)
        .first()
    )
    if gift_product and gift_product.remaining_stock is not None:
        gift_product.remaining_stock = max(0, gift_product.remaining_stock - line.quantity)


# ============================================================
# Status
# ============================================================
def update_order_status(db: Session, order_id, new_status: str, notifier=None) -> Order:
    notifier = notifier or get_notifier()

    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if not order:
        raise NotFoundError("Order not found")

    old_status = order.status
    items = db.query(OrderItem).filter(OrderItem.order_id == order.id).all()

    try:
        touched = apply_status_transition(db, order, items, old_status, new_status)
        order.status = new_status
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order status updated",
        extra={"order_id": str(order.id), "from_status": old_status, "to_status": new_status},
    )

    try:
        notifier.broadcast_order_update(order.id, new_status, order_to_out(db, order, mode="json"))
        broadcast_inventory(notifier, touched)
    except Exception:
        logger.exception("order broadcast failed", extra={"order_id": str(order.id)})

    return order


# ============================================================
# Queries
# ============================================================
def get_order(db: Session, order_id, user_id: str | None = None) -> Order:
    q = db.query(Order).filter(Order.id == order_id)
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)
    order = q.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_my_orders(db: Session, user_id: str) -> list[Order]:
    return db.query(Order).filter(Order.user_id == user_id).order_by(Order.created_at.desc()).all()


def list_orders(db: Session, *, page: int = 1, limit: int = 20, status: str | None = None):
    q = db.query(Order)
    if status:
        q = q.filter(Order.status == status)

    page = max(1, page)
    limit = max(1, min(limit, 100))
    total = q.count()

    orders = q.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return orders, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_order_stats(db: Session) -> dict:
    today = _utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    def _count(*filters) -> int:
        return int(db.query(func.count(Order.id)).filter(*filters).scalar() or 0)

    def _revenue(*filters) -> float:
        return float(
            db.query(func.coalesce(func.sum(Order.total), 0))
            .filter(Order.status != "CANCELLED", *filters)
            .scalar()
            or 0
        )

    return {
        "total_orders": _count(),
        "total_revenue": _revenue(),
        "today_orders": _count(Order.created_at >= today),
        "today_revenue": _revenue(Order.created_at >= today),
        "processing_orders": _count(Order.status == "PROCESSING"),
        "delivered_orders": _count(Order.status == "DELIVERED"),
        "cancelled_orders": _count(Order.status == "CANCELLED"),
    }


def orders_to_out(db: Session, orders: list[Order]) -> list[dict]:
    if not orders:
        return []

    items_by_order = {}
    rows = db.query(OrderItem).filter(OrderItem.order_id.in_([o.id for o in orders])).all()
    for item in rows:
        items_by_order.setdefault(item.order_id, []).append(item)

    out = []
    for order in orders:
        out.append(
            {
                "id": order.id,
                "user_id": order.user_id,
                "status": order.status,
                "total": order.total,
                "shipping_address": order.shipping_address,
                "delivery_phone": order.delivery_phone,
                "delivery_name": order.delivery_name,
                "payment_method": order.payment_method,
                "delivery_method": order.delivery_method,
                "voucher_id": order.voucher_id,
                "created_at": order.created_at,
                "updated_at": order.updated_at,
                "items": [
                    {
                        "id": item.id,
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "price": item.price,
                        "original_price": item.original_price,
                        "is_gift": item.is_gift,
                        "gift_rule_id": item.gift_rule_id,
                    }
                    for item in items_by_order.get(order.id, [])
                ],
            }
        )
    return out


def order_to_out(db: Session, order: Order, mode: str = "python") -> dict:
    data = orders_to_out(db, [order])[0]
    if mode == "json":
        # broadcast payloads must be JSON-serializable
        return OrderOut(**data).model_dump(mode="json")
    return data
