import logging
import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.errors import NotFoundError, ValidationError
from storefront.models.cart_item import CartItem
from storefront.models.category import Category
from storefront.models.gift_condition import GiftCondition
from storefront.models.gift_product import GiftProduct
from storefront.models.gift_rule import GiftRule
from storefront.models.gift_rule_usage import GiftRuleUsage
from storefront.models.order_item import OrderItem
from storefront.models.product import Product
from storefront.services.condition_evaluator import (
    MIN_AMOUNT,
    PRODUCT_CATEGORY,
    PRODUCT_QUANTITY,
    SPECIFIC_PRODUCT,
    GiftProductData,
    RuleData,
    build_condition_tree,
    evaluate_rule,
    to_decimal,
)


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_utc_naive(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


# ============================================================
# Validation
# ============================================================
def _validate_condition(db: Session, condition, path: str, errors: list):
    if condition.sub_conditions:
        for i, sub in enumerate(condition.sub_conditions):
            _validate_condition(db, sub, f"{path}.sub_conditions[{i}]", errors)
        return

    if condition.type == MIN_AMOUNT:
        if condition.min_amount is None:
            errors.append({"field": f"{path}.min_amount", "message": "min_amount is required for MIN_AMOUNT"})

    elif condition.type in (SPECIFIC_PRODUCT, PRODUCT_QUANTITY):
        if condition.product_id is None:
            errors.append({"field": f"{path}.product_id", "message": f"product_id is required for {condition.type}"})
        elif not db.query(Product.id).filter(Product.id == condition.product_id).first():
            errors.append({"field": f"{path}.product_id", "message": "Product not found"})

    elif condition.type == PRODUCT_CATEGORY:
        if condition.category_id is None:
            errors.append({"field": f"{path}.category_id", "message": "category_id is required for PRODUCT_CATEGORY"})
        elif not db.query(Category.id).filter(Category.id == condition.category_id).first():
            errors.append({"field": f"{path}.category_id", "message": "Category not found"})


def _validate_rule_payload(
    db: Session,
    *,
    conditions,
    gift_product_ids,
    valid_from: datetime | None,
    valid_until: datetime | None,
):
    errors = []

    if conditions is not None:
        if not conditions:
            errors.append({"field": "conditions", "message": "At least one condition is required"})
        for i, condition in enumerate(conditions):
            _validate_condition(db, condition, f"conditions[{i}]", errors)

    if gift_product_ids is not None:
        if not gift_product_ids:
            errors.append({"field": "gift_product_ids", "message": "At least one gift product is required"})
        else:
            found = {
                row.id
                for row in db.query(Product.id).filter(Product.id.in_(list(gift_product_ids))).all()
            }
            if len(found) != len(set(gift_product_ids)):
                errors.append({"field": "gift_product_ids", "message": "One or more gift products not found"})

    if valid_from and valid_until and valid_from >= valid_until:
        errors.append({"field": "valid_from", "message": "valid_from must be before valid_until"})

    if errors:
        raise ValidationError(errors)


def _create_conditions(db: Session, rule_id, conditions, parent_id=None):
    for condition in conditions:
        row = GiftCondition(
            id=uuid.uuid4(),
            gift_rule_id=rule_id,
            parent_condition_id=parent_id,
            type=condition.type,
            min_amount=condition.min_amount,
            product_id=condition.product_id,
            min_quantity=condition.min_quantity,
            category_id=condition.category_id,
            min_category_amount=condition.min_category_amount,
            logic=condition.logic or ("AND" if condition.sub_conditions else None),
        )
        db.add(row)
        if condition.sub_conditions:
            _create_conditions(db, rule_id, condition.sub_conditions, parent_id=row.id)


def _create_gift_products(db: Session, rule_id, product_ids):
    seen = set()
    for product_id in product_ids:
        if product_id in seen:
            continue
        seen.add(product_id)
        db.add(GiftProduct(gift_rule_id=rule_id, product_id=product_id, max_quantity_per_order=1))


# ============================================================
# CRUD
# ============================================================
def create_rule(db: Session, payload, created_by: str | None = None) -> GiftRule:
    valid_from = _to_utc_naive(payload.valid_from)
    valid_until = _to_utc_naive(payload.valid_until)

    _validate_rule_payload(
        db,
        conditions=payload.conditions,
        gift_product_ids=payload.gift_product_ids,
        valid_from=valid_from,
        valid_until=valid_until,
    )

    rule = GiftRule(
        id=uuid.uuid4(),
        name=payload.name,
        description=payload.description,
        priority=payload.priority,
        is_active=payload.is_active,
        condition_logic=payload.condition_logic,
        max_uses_per_customer=payload.max_uses_per_customer,
        max_total_uses=payload.max_total_uses,
        current_total_uses=0,
        valid_from=valid_from,
        valid_until=valid_until,
        created_by=created_by,
    )
    db.add(rule)
    db.flush()

    _create_conditions(db, rule.id, payload.conditions)
    _create_gift_products(db, rule.id, payload.gift_product_ids)
    db.flush()

    logger.info("gift rule created", extra={"rule_id": str(rule.id), "created_by": created_by})
    return rule


def get_rule(db: Session, rule_id) -> GiftRule:
    rule = db.query(GiftRule).filter(GiftRule.id == rule_id).first()
    if not rule:
        raise NotFoundError("Gift rule not found")
    return rule


def update_rule(db: Session, rule_id, payload) -> GiftRule:
    rule = get_rule(db, rule_id)
    data = payload.model_dump(exclude_unset=True)

    if "valid_from" in data:
        data["valid_from"] = _to_utc_naive(payload.valid_from)
    if "valid_until" in data:
        data["valid_until"] = _to_utc_naive(payload.valid_until)

    conditions = payload.conditions if "conditions" in data else None
    gift_product_ids = payload.gift_product_ids if "gift_product_ids" in data else None

    _validate_rule_payload(
        db,
        conditions=conditions,
        gift_product_ids=gift_product_ids,
        valid_from=data.get("valid_from", rule.valid_from),
        valid_until=data.get("valid_until", rule.valid_until),
    )

    for k, v in data.items():
        if k in ("conditions", "gift_product_ids"):
            continue
        if v is None and k in ("name", "priority", "is_active", "condition_logic"):
            continue
        setattr(rule, k, v)

    # Full replacement, not a diff.
    if conditions is not None:
        db.query(GiftCondition).filter(GiftCondition.gift_rule_id == rule.id).delete(synchronize_session=False)
        _create_conditions(db, rule.id, conditions)

    if gift_product_ids is not None:
        db.query(GiftProduct).filter(GiftProduct.gift_rule_id == rule.id).delete(synchronize_session=False)
        _create_gift_products(db, rule.id, gift_product_ids)

    db.flush()
    return rule


def delete_rule(db: Session, rule_id):
    rule = get_rule(db, rule_id)

    # Usage history and past order lines survive the rule.
    db.query(GiftRuleUsage).filter(GiftRuleUsage.gift_rule_id == rule.id).update(
        {GiftRuleUsage.gift_rule_id: None}, synchronize_session=False
    )
    db.query(OrderItem).filter(OrderItem.gift_rule_id == rule.id).update(
        {OrderItem.gift_rule_id: None}, synchronize_session=False
    )
    # Orphaned gift lines are evicted by the next cart reconciliation.
    db.query(CartItem).filter(CartItem.gift_rule_id == rule.id).update(
        {CartItem.gift_rule_id: None}, synchronize_session=False
    )

    db.query(GiftCondition).filter(GiftCondition.gift_rule_id == rule.id).delete(synchronize_session=False)
    db.query(GiftProduct).filter(GiftProduct.gift_rule_id == rule.id).delete(synchronize_session=False)
    db.delete(rule)
    db.flush()

    logger.info("gift rule deleted", extra={"rule_id": str(rule_id)})


def toggle_rule_status(db: Session, rule_id, is_active: bool) -> GiftRule:
    rule = get_rule(db, rule_id)
    rule.is_active = is_active
    db.flush()
    return rule


def list_rules(db: Session, *, include_inactive: bool = True, page: int = 1, limit: int = 20):
    q = db.query(GiftRule)
    if not include_inactive:
        q = q.filter(GiftRule.is_active.is_(True))

    page = max(1, page)
    limit = max(1, min(limit, 100))
    total = q.count()

    rules = (
        q.order_by(GiftRule.priority.desc(), GiftRule.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return rules, pagination


def get_active_rules(db: Session, now: datetime | None = None) -> list[GiftRule]:
    """Active rules inside their validity window. Usage caps are not checked here."""
    now = now or _utcnow()
    return (
        db.query(GiftRule)
        .filter(
            GiftRule.is_active.is_(True),
            (GiftRule.valid_from.is_(None)) | (GiftRule.valid_from <= now),
            (GiftRule.valid_until.is_(None)) | (GiftRule.valid_until >= now),
        )
        .order_by(GiftRule.priority.desc(), GiftRule.created_at.desc())
        .all()
    )


# ============================================================
# Rule snapshots for the evaluator
# ============================================================
def load_rule_data(db: Session, rules: list[GiftRule]) -> list[RuleData]:
    if not rules:
        return []

    rule_ids = [r.id for r in rules]

    conditions_by_rule = {}
    for row in db.query(GiftCondition).filter(GiftCondition.gift_rule_id.in_(rule_ids)).all():
        conditions_by_rule.setdefault(row.gift_rule_id, []).append(row)

    products_by_rule = {}
    rows = (
        db.query(GiftProduct, Product)
        .join(Product, Product.id == GiftProduct.product_id)
        .filter(GiftProduct.gift_rule_id.in_(rule_ids))
        .all()
    )
    for gp, product in rows:
        products_by_rule.setdefault(gp.gift_rule_id, []).append(
            GiftProductData(
                id=gp.id,
                product_id=gp.product_id,
                title=product.title,
                price=product.price,
                stock=product.stock,
                max_quantity_per_order=gp.max_quantity_per_order,
                remaining_stock=gp.remaining_stock,
            )
        )

    return [
        RuleData(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            is_active=bool(rule.is_active),
            priority=rule.priority,
            condition_logic=rule.condition_logic,
            conditions=build_condition_tree(conditions_by_rule.get(rule.id, [])),
            gift_products=products_by_rule.get(rule.id, []),
            max_uses_per_customer=rule.max_uses_per_customer,
            max_total_uses=rule.max_total_uses,
            current_total_uses=rule.current_total_uses or 0,
            valid_from=rule.valid_from,
            valid_until=rule.valid_until,
        )
        for rule in rules
    ]


def get_rule_data(db: Session, rule_id) -> RuleData | None:
    rule = db.query(GiftRule).filter(GiftRule.id == rule_id).first()
    if not rule:
        return None
    return load_rule_data(db, [rule])[0]


def evaluate_all_rules(db: Session, context):
    rules = load_rule_data(db, get_active_rules(db))
    results = [evaluate_rule(db, rule, context) for rule in rules]

    logger.debug(
        "gift rules evaluated",
        extra={
            "user_id": context.user_id,
            "subtotal": context.subtotal,
            "rules": len(results),
            "eligible": sum(1 for r in results if r.is_eligible),
        },
    )
    return results


# ============================================================
# Serialization
# ============================================================
def _condition_out(node) -> dict:
    if hasattr(node, "children"):
        return {
            "id": node.id,
            "type": node.type or "GROUP",
            "logic": node.logic,
            "sub_conditions": [_condition_out(c) for c in node.children],
        }
    return {
        "id": node.id,
        "type": node.type,
        "min_amount": node.min_amount,
        "product_id": node.product_id,
        "min_quantity": node.min_quantity,
        "category_id": node.category_id,
        "min_category_amount": node.min_category_amount,
    }


def rules_to_out(db: Session, rules: list[GiftRule]) -> list[dict]:
    data_by_id = {d.id: d for d in load_rule_data(db, rules)}
    out = []
    for rule in rules:
        data = data_by_id[rule.id]
        out.append(
            {
                "id": rule.id,
                "name": rule.name,
                "description": rule.description,
                "is_active": rule.is_active,
                "priority": rule.priority,
                "condition_logic": rule.condition_logic,
                "max_uses_per_customer": rule.max_uses_per_customer,
                "max_total_uses": rule.max_total_uses,
                "current_total_uses": rule.current_total_uses or 0,
                "valid_from": rule.valid_from,
                "valid_until": rule.valid_until,
                "created_by": rule.created_by,
                "created_at": rule.created_at,
                "conditions": [_condition_out(c) for c in data.conditions],
                "gift_products": [
                    {
                        "id": gp.id,
                        "product_id": gp.product_id,
                        "title": gp.title,
                        "price": gp.price,
                        "stock": gp.stock,
                        "max_quantity_per_order": gp.max_quantity_per_order,
                        "remaining_stock": gp.remaining_stock,
                    }
                    for gp in data.gift_products
                ],
            }
        )
    return out


def rule_to_out(db: Session, rule: GiftRule) -> dict:
    return rules_to_out(db, [rule])[0]


# ============================================================
# Statistics
# ============================================================
def get_rule_statistics(db: Session, rule_id) -> dict:
    get_rule(db, rule_id)

    rows = (
        db.query(GiftRuleUsage, Product)
        .join(Product, Product.id == GiftRuleUsage.product_id)
        .filter(GiftRuleUsage.gift_rule_id == rule_id)
        .all()
    )

    by_product = {}
    by_date = {}
    users = set()
    total_value = Decimal("0")

    for usage, product in rows:
        price = to_decimal(product.price)
        users.add(usage.user_id)
        total_value += price

        entry = by_product.setdefault(
            usage.product_id,
            {"product_id": usage.product_id, "product_name": product.title, "count": 0, "total_value": Decimal("0")},
        )
        entry["count"] += 1
        entry["total_value"] += price

        day = (usage.used_at or _utcnow()).date().isoformat()
        by_date[day] = by_date.get(day, 0) + 1

    return {
        "total_uses": len(rows),
        "unique_users": len(users),
        "total_value_given": total_value,
        "usage_by_product": list(by_product.values()),
        "usage_over_time": [{"date": d, "count": c} for d, c in sorted(by_date.items())],
    }
