import logging

from sqlalchemy.orm import Session

from storefront.errors import BusinessRuleViolation, NotFoundError
from storefront.models.product import Product
from storefront.models.stock_movement import StockMovement


logger = logging.getLogger(__name__)

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_RESERVED = "RESERVED"
MOVEMENT_RELEASED = "RELEASED"

DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"


def lock_product(db: Session, product_id) -> Product:
    # FOR UPDATE on PostgreSQL, ignored by SQLite
    product = db.query(Product).filter(Product.id == product_id).with_for_update().first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _record_movement(db: Session, product: Product, movement_type: str, quantity: int, reason: str, order_id=None):
    db.add(
        StockMovement(
            product_id=product.id,
            type=movement_type,
            quantity=quantity,
            reason=reason,
            order_id=order_id,
        )
    )


def _release_reserved(product: Product, quantity: int, order_id=None) -> int:
    """Take ``quantity`` off reserved_stock, never below zero. Returns what was actually released."""
    current = product.reserved_stock or 0
    if current < quantity:
        logger.warning(
            "reserved stock drift corrected",
            extra={
                "product_id": str(product.id),
                "order_id": str(order_id) if order_id else None,
                "reserved_stock": current,
                "requested": quantity,
            },
        )
        product.reserved_stock = 0
        return current

    product.reserved_stock = current - quantity
    return quantity


# ============================================================
# Reservation (order created)
# ============================================================
def reserve_stock(db: Session, product: Product, quantity: int, order_id=None):
    if product.available_stock < quantity:
        raise BusinessRuleViolation(
            f"Insufficient stock for {product.title}. Available: {product.available_stock}, Requested: {quantity}"
        )

    product.reserved_stock = (product.reserved_stock or 0) + quantity
    product.available_stock -= quantity
    product.total_ordered = (product.total_ordered or 0) + quantity

    _record_movement(db, product, MOVEMENT_RESERVED, quantity, "Order reservation", order_id)


# ============================================================
# Status transitions
# ============================================================
def check_transition(old_status: str, new_status: str):
    # A cancelled order has no reservation left to carry back into fulfilment.
    if old_status == CANCELLED and new_status not in (CANCELLED, DELIVERED):
        raise BusinessRuleViolation(f"Cannot move a cancelled order to {new_status}")


def apply_item_transition(db: Session, product: Product, quantity: int, old_status: str, new_status: str, order_id=None):
    if old_status == new_status:
        return

    if new_status == DELIVERED:
        if old_status == CANCELLED:
            # stock was already released on cancellation
            if product.available_stock < quantity:
                raise BusinessRuleViolation(
                    f"Insufficient stock for {product.title}. Available: {product.available_stock}, Requested: {quantity}"
                )
            product.stock -= quantity
            product.available_stock -= quantity
        else:
            released = _release_reserved(product, quantity, order_id)
            product.stock -= quantity
            product.available_stock -= quantity - released
        product.total_sold = (product.total_sold or 0) + quantity
        _record_movement(db, product, MOVEMENT_OUT, quantity, "Order delivered", order_id)

    elif new_status == CANCELLED:
        if old_status == DELIVERED:
            product.stock += quantity
            product.available_stock += quantity
            product.total_sold = (product.total_sold or 0) - quantity
            _record_movement(db, product, MOVEMENT_RELEASED, quantity, "Delivered order cancelled", order_id)
        else:
            released = _release_reserved(product, quantity, order_id)
            product.available_stock += released
            _record_movement(db, product, MOVEMENT_RELEASED, quantity, "Order cancelled", order_id)

    elif old_status == DELIVERED:
        # delivery reverted, units go back on hold for the order
        product.stock += quantity
        product.reserved_stock = (product.reserved_stock or 0) + quantity
        product.total_sold = (product.total_sold or 0) - quantity
        _record_movement(db, product, MOVEMENT_RELEASED, quantity, "Delivery reverted", order_id)


def apply_status_transition(db: Session, order, items, old_status: str, new_status: str) -> list[Product]:
    """
    Move stock counters for every line of ``order`` from ``old_status`` to
    ``new_status``. Returns the touched products; the caller owns the transaction.
    """
    check_transition(old_status, new_status)

    products = {}
    for item in items:
        product = products.get(item.product_id) or lock_product(db, item.product_id)
        products[product.id] = product
        apply_item_transition(db, product, item.quantity, old_status, new_status, order.id)

    db.flush()
    return list(products.values())


# ============================================================
# Restock & audit
# ============================================================
def add_stock(db: Session, product_id, quantity: int, reason: str = "Restock") -> Product:
    product = lock_product(db, product_id)
    product.stock += quantity
    product.available_stock += quantity
    _record_movement(db, product, MOVEMENT_IN, quantity, reason)
    db.flush()

    logger.info("stock added", extra={"product_id": str(product.id), "quantity": quantity})
    return product


def get_stock_movements(db: Session, product_id, limit: int = 100) -> list[StockMovement]:
    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise NotFoundError("Product not found")

    return (
        db.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc())
        .limit(limit)
        .all()
    )


def broadcast_inventory(notifier, products):
    for product in products:
        notifier.broadcast_inventory_update(product)
        if product.available_stock <= product.low_stock_alert:
            notifier.broadcast_low_stock_alert(product)
