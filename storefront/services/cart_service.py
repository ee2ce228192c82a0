import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.errors import BusinessRuleViolation, NotFoundError
from storefront.models.cart_item import CartItem
from storefront.models.product import Product
from storefront.services.condition_evaluator import CartLine, build_evaluation_context, compute_subtotal, evaluate_rule
from storefront.services.gift_rule_service import evaluate_all_rules, get_rule_data
from storefront.services.gift_validator import validate_gift_selection, validate_gift_stock


logger = logging.getLogger(__name__)


# ============================================================
# Cart snapshot
# ============================================================
def load_cart_lines(db: Session, user_id: str) -> list[CartLine]:
    rows = (
        db.query(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.created_at.asc())
        .all()
    )
    return [
        CartLine(
            id=item.id,
            product_id=item.product_id,
            quantity=item.quantity,
            price=product.price,
            category_id=product.category_id,
            is_gift=bool(item.is_gift),
            gift_rule_id=item.gift_rule_id,
            title=product.title,
            stock=product.available_stock,
        )
        for item, product in rows
    ]


def _cart_out(lines: list[CartLine]) -> dict:
    return {
        "items": [
            {
                "id": line.id,
                "product_id": line.product_id,
                "title": line.title,
                "price": Decimal("0") if line.is_gift else line.price,
                "quantity": line.quantity,
                "is_gift": line.is_gift,
                "gift_rule_id": line.gift_rule_id,
            }
            for line in lines
        ],
        # gifts are free
        "total": compute_subtotal(lines),
        "item_count": sum(line.quantity for line in lines),
    }


def get_cart(db: Session, user_id: str) -> dict:
    return _cart_out(load_cart_lines(db, user_id))


def _get_item(db: Session, user_id: str, item_id) -> CartItem:
    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
    if not item:
        raise NotFoundError("Cart item not found")
    return item


def _check_stock(product: Product, quantity: int):
    if product.available_stock < quantity:
        raise BusinessRuleViolation(
            f"Insufficient stock for {product.title}. Available: {product.available_stock}, Requested: {quantity}"
        )


def _after_mutation(db: Session, user_id: str) -> dict:
    reconciliation = reevaluate_gifts(db, user_id)
    return {"cart": get_cart(db, user_id), **reconciliation}


# ============================================================
# Regular lines (each mutation is followed by reconciliation)
# ============================================================
def add_to_cart(db: Session, user_id: str, product_id, quantity: int) -> dict:
    product = db.query(Product).filter(Product.id == product_id, Product.is_active.is_(True)).first()
    if not product:
        raise NotFoundError("Product not found")

    _check_stock(product, quantity)

    item = (
        db.query(CartItem)
        .filter(
            CartItem.user_id == user_id,
            CartItem.product_id == product_id,
            CartItem.is_gift.is_(False),
        )
        .first()
    )
    if item:
        item.quantity = quantity
    else:
        db.add(CartItem(user_id=user_id, product_id=product_id, quantity=quantity, is_gift=False))
    db.flush()

    return _after_mutation(db, user_id)


def update_quantity(db: Session, user_id: str, item_id, quantity: int) -> dict:
    item = _get_item(db, user_id, item_id)
    if item.is_gift:
        raise BusinessRuleViolation("Gift quantity cannot be changed")

    if quantity <= 0:
        db.delete(item)
    else:
        product = db.query(Product).filter(Product.id == item.product_id).first()
        _check_stock(product, quantity)
        item.quantity = quantity
    db.flush()

    return _after_mutation(db, user_id)


def remove_from_cart(db: Session, user_id: str, item_id) -> dict:
    item = _get_item(db, user_id, item_id)
    was_gift = bool(item.is_gift)
    db.delete(item)
    db.flush()

    if was_gift:
        return {
            "cart": get_cart(db, user_id),
            "removed_gifts": [],
            "eligible_rules": get_eligible_gifts(db, user_id),
        }
    return _after_mutation(db, user_id)


def clear_cart(db: Session, user_id: str) -> int:
    deleted = db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
    db.flush()
    return deleted


# ============================================================
# Gift lines
# ============================================================
def add_gift_product(db: Session, user_id: str, gift_rule_id, product_id) -> CartItem:
    lines = load_cart_lines(db, user_id)

    validation = validate_gift_selection(db, user_id, gift_rule_id, product_id, lines)
    if not validation.is_valid:
        raise BusinessRuleViolation(validation.error)

    if any(line.is_gift and line.product_id == product_id for line in lines):
        raise BusinessRuleViolation("This product is already in your cart as a gift")

    item = CartItem(
        user_id=user_id,
        product_id=product_id,
        quantity=1,
        is_gift=True,
        gift_rule_id=gift_rule_id,
    )
    db.add(item)
    db.flush()

    logger.info(
        "gift added to cart",
        extra={"user_id": user_id, "gift_rule_id": str(gift_rule_id), "product_id": str(product_id)},
    )
    return item


def remove_gift_product(db: Session, user_id: str, item_id):
    item = (
        db.query(CartItem)
        .filter(CartItem.id == item_id, CartItem.user_id == user_id, CartItem.is_gift.is_(True))
        .first()
    )
    if not item:
        raise NotFoundError("Gift item not found")
    db.delete(item)
    db.flush()


# ============================================================
# Reconciliation
# ============================================================
def reevaluate_gifts(db: Session, user_id: str) -> dict:
    """
    Drop every gift line whose rule no longer grants it and return the
    removals together with the rules the cart is eligible for right now.

    Each gift line is judged against the cart without that line, so a gift
    never disqualifies itself.
    """
    lines = load_cart_lines(db, user_id)
    removed = []

    for gift in [line for line in lines if line.is_gift]:
        rule = get_rule_data(db, gift.gift_rule_id) if gift.gift_rule_id else None
        if rule is None:
            reason = "Gift rule no longer exists"
        else:
            others = [line for line in lines if line is not gift]
            result = evaluate_rule(db, rule, build_evaluation_context(others, user_id))
            if result.is_eligible:
                continue
            reason = result.reason

        db.query(CartItem).filter(CartItem.id == gift.id).delete(synchronize_session=False)
        lines = [line for line in lines if line is not gift]
        removed.append({"cart_item_id": gift.id, "product_name": gift.title, "reason": reason})

        logger.info(
            "gift removed from cart",
            extra={"user_id": user_id, "cart_item_id": str(gift.id), "reason": reason},
        )

    if removed:
        db.flush()

    return {"removed_gifts": removed, "eligible_rules": get_eligible_gifts(db, user_id, lines)}


def get_eligible_gifts(db: Session, user_id: str, lines: list[CartLine] | None = None) -> list[dict]:
    if lines is None:
        lines = load_cart_lines(db, user_id)

    eligible = []
    for result in evaluate_all_rules(db, build_evaluation_context(lines, user_id)):
        if not result.is_eligible:
            continue

        products = [gp for gp in result.rule.gift_products if validate_gift_stock(gp)]
        if not products:
            continue

        eligible.append(
            {
                "rule": {
                    "id": result.rule.id,
                    "name": result.rule.name,
                    "description": result.rule.description,
                },
                "available_products": [
                    {
                        "id": gp.id,
                        "product_id": gp.product_id,
                        "title": gp.title,
                        "price": gp.price,
                        "stock": gp.stock,
                        "max_quantity_per_order": gp.max_quantity_per_order,
                    }
                    for gp in products
                ],
            }
        )
    return eligible
