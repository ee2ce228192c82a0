from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.services.condition_evaluator import (
    build_evaluation_context,
    evaluate_rule,
    get_user_usage_count,
)
from storefront.services.gift_rule_service import get_rule_data


@dataclass
class GiftValidation:
    is_valid: bool
    error: str | None = None


@dataclass
class OrderGiftValidation:
    is_valid: bool
    invalid_gifts: list = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_gift_stock(gift_product) -> bool:
    if gift_product.stock <= 0:
        return False
    if gift_product.remaining_stock is not None:
        return gift_product.remaining_stock > 0
    return True


def validate_gift_selection(
    db: Session,
    user_id: str,
    gift_rule_id,
    product_id,
    current_cart,
    now: datetime | None = None,
) -> GiftValidation:
    """
    Authoritative check run before a gift enters a cart and again at checkout.

    ``current_cart`` is the list of CartLine the gift would join (without the
    gift line itself). The first failing check wins.
    """
    now = now or _utcnow()

    rule = get_rule_data(db, gift_rule_id)
    if rule is None:
        return GiftValidation(False, "Gift rule not found")

    if not rule.is_active:
        return GiftValidation(False, "Gift rule is not active")

    if rule.valid_from and now < rule.valid_from:
        return GiftValidation(False, "Gift rule is not yet valid")
    if rule.valid_until and now > rule.valid_until:
        return GiftValidation(False, "Gift rule has expired")

    gift_product = next((gp for gp in rule.gift_products if gp.product_id == product_id), None)
    if gift_product is None:
        return GiftValidation(False, "Product is not a valid gift for this rule")

    if not validate_gift_stock(gift_product):
        return GiftValidation(False, "Gift product is out of stock")

    if any(line.is_gift and line.gift_rule_id == rule.id for line in current_cart):
        return GiftValidation(False, "Gift already selected from this rule")

    if rule.max_uses_per_customer is not None:
        if get_user_usage_count(db, user_id, rule.id) >= rule.max_uses_per_customer:
            return GiftValidation(False, "You have reached the usage limit for this gift rule")

    if rule.max_total_uses is not None and rule.current_total_uses >= rule.max_total_uses:
        return GiftValidation(False, "Gift rule usage limit has been reached")

    # Re-run the conditions against the server-side cart, never the client's claim.
    result = evaluate_rule(db, rule, build_evaluation_context(current_cart, user_id), now=now)
    if not result.is_eligible:
        return GiftValidation(False, result.reason or "Conditions for this gift are not met")

    return GiftValidation(True)


def validate_gifts_in_order(db: Session, user_id: str, cart_items) -> OrderGiftValidation:
    """Validate every gift line of a checkout; all failures are collected."""
    invalid_gifts = []
    errors = []

    for gift in [line for line in cart_items if line.is_gift]:
        if gift.gift_rule_id is None:
            invalid_gifts.append(gift.id)
            errors.append(f"{gift.title}: Gift item has no associated rule")
            continue

        others = [line for line in cart_items if line is not gift]
        validation = validate_gift_selection(db, user_id, gift.gift_rule_id, gift.product_id, others)
        if not validation.is_valid:
            invalid_gifts.append(gift.id)
            errors.append(f"{gift.title}: {validation.error}")
            continue

        rule = get_rule_data(db, gift.gift_rule_id)
        gift_product = next(gp for gp in rule.gift_products if gp.product_id == gift.product_id)
        if gift.quantity > gift_product.max_quantity_per_order:
            invalid_gifts.append(gift.id)
            errors.append(
                f"{gift.title}: Gift quantity exceeds the maximum of {gift_product.max_quantity_per_order} per order"
            )

    return OrderGiftValidation(is_valid=not invalid_gifts, invalid_gifts=invalid_gifts, errors=errors)
