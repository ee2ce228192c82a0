from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.models.gift_rule_usage import GiftRuleUsage


MIN_AMOUNT = "MIN_AMOUNT"
SPECIFIC_PRODUCT = "SPECIFIC_PRODUCT"
PRODUCT_CATEGORY = "PRODUCT_CATEGORY"
PRODUCT_QUANTITY = "PRODUCT_QUANTITY"

CONDITION_TYPES = (MIN_AMOUNT, SPECIFIC_PRODUCT, PRODUCT_CATEGORY, PRODUCT_QUANTITY)


def _utcnow() -> datetime:
    # Naive UTC, matching the TIMESTAMP columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================
# Condition tree
# ============================================================
@dataclass
class ConditionLeaf:
    type: str
    min_amount: Decimal | None = None
    product_id: UUID | None = None
    min_quantity: int | None = None
    category_id: UUID | None = None
    min_category_amount: Decimal | None = None
    id: UUID | None = None


@dataclass
class ConditionGroup:
    logic: str
    children: list = field(default_factory=list)
    id: UUID | None = None
    # stored type of the row, ignored during evaluation
    type: str | None = None


@dataclass
class GiftProductData:
    id: UUID
    product_id: UUID
    title: str
    price: Decimal
    stock: int
    max_quantity_per_order: int = 1
    remaining_stock: int | None = None


@dataclass
class RuleData:
    id: UUID
    name: str
    is_active: bool = True
    priority: int = 50
    condition_logic: str = "AND"
    conditions: list = field(default_factory=list)
    gift_products: list[GiftProductData] = field(default_factory=list)
    max_uses_per_customer: int | None = None
    max_total_uses: int | None = None
    current_total_uses: int = 0
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    description: str | None = None


def build_condition_tree(rows) -> list:
    """
    Turn flat GiftCondition rows (linked by parent_condition_id) into
    ConditionLeaf / ConditionGroup nodes. Returns the top-level nodes.
    """
    children_by_parent = {}
    for row in rows:
        children_by_parent.setdefault(row.parent_condition_id, []).append(row)

    def _build(row, seen):
        if row.id in seen:
            return None
        seen = seen | {row.id}
        children = children_by_parent.get(row.id) or []
        if children:
            nodes = [n for n in (_build(c, seen) for c in children) if n is not None]
            return ConditionGroup(logic=row.logic or "AND", children=nodes, id=row.id, type=row.type)
        return ConditionLeaf(
            type=row.type,
            min_amount=row.min_amount,
            product_id=row.product_id,
            min_quantity=row.min_quantity,
            category_id=row.category_id,
            min_category_amount=row.min_category_amount,
            id=row.id,
        )

    return [_build(row, frozenset()) for row in children_by_parent.get(None, [])]


# ============================================================
# Evaluation context
# ============================================================
@dataclass
class CartLine:
    product_id: UUID
    quantity: int
    price: Decimal
    category_id: UUID | None = None
    is_gift: bool = False
    gift_rule_id: UUID | None = None
    id: UUID | None = None
    title: str = ""
    stock: int = 0


@dataclass
class EvaluationContext:
    cart_items: list[CartLine]
    user_id: str
    subtotal: Decimal
    existing_gift_rule_ids: list[UUID] = field(default_factory=list)


@dataclass
class EvaluationResult:
    rule: RuleData
    is_eligible: bool
    reason: str | None = None


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def line_total(line) -> Decimal:
    return to_decimal(line.price) * line.quantity


def compute_subtotal(cart_items) -> Decimal:
    # Gift lines never count toward thresholds.
    return sum((line_total(line) for line in cart_items if not line.is_gift), Decimal("0"))


def build_evaluation_context(cart_items, user_id: str) -> EvaluationContext:
    return EvaluationContext(
        cart_items=list(cart_items),
        user_id=user_id,
        subtotal=compute_subtotal(cart_items),
        existing_gift_rule_ids=[line.gift_rule_id for line in cart_items if line.is_gift and line.gift_rule_id],
    )


# ============================================================
# Leaf evaluators
# ============================================================
def _evaluate_min_amount(condition: ConditionLeaf, context: EvaluationContext) -> bool:
    if condition.min_amount is None:
        return False
    return context.subtotal >= to_decimal(condition.min_amount)


def _evaluate_product_quantity(condition: ConditionLeaf, context: EvaluationContext) -> bool:
    if condition.product_id is None:
        return False

    line = next(
        (l for l in context.cart_items if not l.is_gift and l.product_id == condition.product_id),
        None,
    )
    if line is None:
        return False

    return line.quantity >= (condition.min_quantity or 1)


def _evaluate_product_category(condition: ConditionLeaf, context: EvaluationContext) -> bool:
    if condition.category_id is None:
        return False

    lines = [l for l in context.cart_items if not l.is_gift and l.category_id == condition.category_id]
    if not lines:
        return False

    if condition.min_category_amount:
        category_total = sum((line_total(l) for l in lines), Decimal("0"))
        return category_total >= to_decimal(condition.min_category_amount)

    return True


_LEAF_EVALUATORS = {
    MIN_AMOUNT: _evaluate_min_amount,
    SPECIFIC_PRODUCT: _evaluate_product_quantity,
    # same check as SPECIFIC_PRODUCT, kept separate for the admin UI
    PRODUCT_QUANTITY: _evaluate_product_quantity,
    PRODUCT_CATEGORY: _evaluate_product_category,
}


def evaluate_condition(condition, context: EvaluationContext) -> bool:
    if isinstance(condition, ConditionGroup):
        return evaluate_conditions(condition.children, condition.logic, context)

    evaluator = _LEAF_EVALUATORS.get(condition.type)
    if evaluator is None:
        return False
    return evaluator(condition, context)


def evaluate_conditions(conditions, logic: str, context: EvaluationContext) -> bool:
    if not conditions:
        return True

    results = (evaluate_condition(c, context) for c in conditions)
    if (logic or "AND").upper() == "OR":
        return any(results)
    return all(results)


# ============================================================
# Rule evaluation
# ============================================================
def get_user_usage_count(db: Session, user_id: str, rule_id) -> int:
    count = (
        db.query(func.count(GiftRuleUsage.id))
        .filter(GiftRuleUsage.user_id == user_id)
        .filter(GiftRuleUsage.gift_rule_id == rule_id)
        .scalar()
    )
    return int(count or 0)


def evaluate_rule(db: Session, rule: RuleData, context: EvaluationContext, now: datetime | None = None) -> EvaluationResult:
    """
    Decide whether ``rule`` currently grants a gift for ``context``.

    Checks run in a fixed order and the first failure is reported:
    active flag, validity window, global cap, per-customer cap, duplicate
    gift in the cart, then the condition tree. Read-only.
    """
    now = now or _utcnow()

    if not rule.is_active:
        return EvaluationResult(rule, False, "Rule is not active")

    if rule.valid_from and now < rule.valid_from:
        return EvaluationResult(rule, False, "Rule not yet valid")
    if rule.valid_until and now > rule.valid_until:
        return EvaluationResult(rule, False, "Rule expired")

    if rule.max_total_uses is not None and rule.current_total_uses >= rule.max_total_uses:
        return EvaluationResult(rule, False, "Rule usage limit reached")

    if rule.max_uses_per_customer is not None:
        if get_user_usage_count(db, context.user_id, rule.id) >= rule.max_uses_per_customer:
            return EvaluationResult(rule, False, "User usage limit reached")

    if rule.id in context.existing_gift_rule_ids:
        return EvaluationResult(rule, False, "Gift already selected from this rule")

    if not evaluate_conditions(rule.conditions, rule.condition_logic, context):
        return EvaluationResult(rule, False, "Conditions not met")

    return EvaluationResult(rule, True)
