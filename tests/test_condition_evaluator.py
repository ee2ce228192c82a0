import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

from storefront.models.gift_rule_usage import GiftRuleUsage
from storefront.services.condition_evaluator import (
    CartLine,
    ConditionGroup,
    ConditionLeaf,
    RuleData,
    build_condition_tree,
    build_evaluation_context,
    evaluate_condition,
    evaluate_conditions,
    evaluate_rule,
)


PRODUCT_A = uuid.uuid4()
PRODUCT_B = uuid.uuid4()
CATEGORY = uuid.uuid4()


def _ctx(*lines, user_id="user-1"):
    return build_evaluation_context(list(lines), user_id)


def _min_amount(amount):
    return ConditionLeaf(type="MIN_AMOUNT", min_amount=amount)


def _has_product(product_id, min_quantity=None):
    return ConditionLeaf(type="SPECIFIC_PRODUCT", product_id=product_id, min_quantity=min_quantity)


def _rule(conditions, **kwargs):
    return RuleData(id=uuid.uuid4(), name="rule", conditions=conditions, **kwargs)


# ============================================================
# Leaves
# ============================================================
def test_min_amount_boundary_is_inclusive():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=50))

    assert ctx.subtotal == 100
    assert evaluate_condition(_min_amount(100), ctx) is True
    assert evaluate_condition(_min_amount(101), ctx) is False


def test_min_amount_holds_at_exact_cent_total():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=3, price=Decimal("0.70")))

    assert ctx.subtotal == Decimal("2.10")
    assert evaluate_condition(_min_amount(Decimal("2.10")), ctx) is True

    # float inputs are read through their decimal repr
    floats = _ctx(CartLine(product_id=PRODUCT_A, quantity=3, price=0.7))
    assert evaluate_condition(_min_amount(2.1), floats) is True


def test_min_amount_without_threshold_is_false():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=50))
    assert evaluate_condition(ConditionLeaf(type="MIN_AMOUNT"), ctx) is False


def test_gift_lines_do_not_count_toward_subtotal():
    regular = CartLine(product_id=PRODUCT_A, quantity=1, price=80)
    gift = CartLine(product_id=PRODUCT_B, quantity=1, price=40, is_gift=True, gift_rule_id=uuid.uuid4())

    assert _ctx(regular).subtotal == _ctx(regular, gift).subtotal == 80
    assert evaluate_condition(_min_amount(100), _ctx(regular, gift)) is False


def test_specific_product_uses_quantity_with_default_of_one():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=10))

    assert evaluate_condition(_has_product(PRODUCT_A), ctx) is True
    assert evaluate_condition(_has_product(PRODUCT_A, min_quantity=2), ctx) is True
    assert evaluate_condition(_has_product(PRODUCT_A, min_quantity=3), ctx) is False
    assert evaluate_condition(_has_product(PRODUCT_B), ctx) is False


def test_product_quantity_behaves_like_specific_product():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=3, price=10))
    leaf = ConditionLeaf(type="PRODUCT_QUANTITY", product_id=PRODUCT_A, min_quantity=3)
    assert evaluate_condition(leaf, ctx) is True


def test_specific_product_ignores_gift_lines():
    gift = CartLine(product_id=PRODUCT_A, quantity=1, price=10, is_gift=True, gift_rule_id=uuid.uuid4())
    assert evaluate_condition(_has_product(PRODUCT_A), _ctx(gift)) is False


def test_product_category_with_and_without_amount():
    lines = [
        CartLine(product_id=PRODUCT_A, quantity=1, price=30, category_id=CATEGORY),
        CartLine(product_id=PRODUCT_B, quantity=2, price=10, category_id=CATEGORY),
    ]
    ctx = _ctx(*lines)

    assert evaluate_condition(ConditionLeaf(type="PRODUCT_CATEGORY", category_id=CATEGORY), ctx) is True
    assert evaluate_condition(
        ConditionLeaf(type="PRODUCT_CATEGORY", category_id=CATEGORY, min_category_amount=50), ctx
    ) is True
    assert evaluate_condition(
        ConditionLeaf(type="PRODUCT_CATEGORY", category_id=CATEGORY, min_category_amount=51), ctx
    ) is False
    assert evaluate_condition(ConditionLeaf(type="PRODUCT_CATEGORY", category_id=uuid.uuid4()), ctx) is False


def test_unknown_leaf_type_is_false():
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=10))
    assert evaluate_condition(ConditionLeaf(type="BIRTHDAY"), ctx) is False


# ============================================================
# Groups
# ============================================================
def test_empty_condition_list_is_vacuously_true():
    assert evaluate_conditions([], "AND", _ctx()) is True
    assert evaluate_conditions([], "OR", _ctx()) is True


def test_or_of_and_groups():
    rule_conditions = [
        ConditionGroup(logic="AND", children=[_min_amount(100), _has_product(PRODUCT_A)]),
        ConditionGroup(logic="AND", children=[_min_amount(20), _has_product(PRODUCT_B, min_quantity=2)]),
    ]

    # first group: amount ok, product A missing; second group: both true
    both_b = _ctx(CartLine(product_id=PRODUCT_B, quantity=2, price=60))
    assert evaluate_conditions(rule_conditions, "OR", both_b) is True

    # each group has exactly one true leaf
    half_each = _ctx(
        CartLine(product_id=PRODUCT_A, quantity=1, price=10),
        CartLine(product_id=PRODUCT_B, quantity=1, price=20),
    )
    assert evaluate_conditions(rule_conditions, "OR", half_each) is False


def test_group_ignores_its_own_type():
    group = ConditionGroup(logic="OR", children=[_min_amount(1000), _has_product(PRODUCT_A)], type="MIN_AMOUNT")
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=10))
    assert evaluate_condition(group, ctx) is True


def test_build_condition_tree_from_flat_rows():
    group_id, leaf_1, leaf_2, top_leaf = (uuid.uuid4() for _ in range(4))

    def row(row_id, parent=None, **kwargs):
        data = {
            "id": row_id,
            "parent_condition_id": parent,
            "type": "MIN_AMOUNT",
            "min_amount": None,
            "product_id": None,
            "min_quantity": None,
            "category_id": None,
            "min_category_amount": None,
            "logic": None,
        }
        data.update(kwargs)
        return SimpleNamespace(**data)

    rows = [
        row(leaf_2, parent=group_id, type="SPECIFIC_PRODUCT", product_id=PRODUCT_A),
        row(group_id, logic="OR"),
        row(top_leaf, min_amount=10),
        row(leaf_1, parent=group_id, min_amount=500),
    ]

    tree = build_condition_tree(rows)

    assert len(tree) == 2
    group = next(node for node in tree if isinstance(node, ConditionGroup))
    assert group.logic == "OR"
    assert {child.id for child in group.children} == {leaf_1, leaf_2}
    assert all(isinstance(child, ConditionLeaf) for child in group.children)

    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=20))
    assert evaluate_conditions(tree, "AND", ctx) is True


# ============================================================
# Rules
# ============================================================
def test_rule_eligible_when_conditions_hold(db):
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=50))
    result = evaluate_rule(db, _rule([_min_amount(100)]), ctx)

    assert result.is_eligible is True
    assert result.reason is None


def test_rule_conditions_not_met(db):
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=50))
    result = evaluate_rule(db, _rule([_min_amount(101)]), ctx)

    assert result.is_eligible is False
    assert result.reason == "Conditions not met"


def test_rule_usage_cap_wins_over_satisfied_conditions(db):
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=2, price=50))
    rule = _rule([_min_amount(10)], max_total_uses=1, current_total_uses=1)

    for _ in range(3):
        result = evaluate_rule(db, rule, ctx)
        assert result.is_eligible is False
        assert result.reason == "Rule usage limit reached"


def test_rule_check_order(db):
    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=10))
    now = datetime(2026, 5, 1, 12, 0)

    inactive_and_capped = _rule([], is_active=False, max_total_uses=1, current_total_uses=1)
    assert evaluate_rule(db, inactive_and_capped, ctx, now=now).reason == "Rule is not active"

    future = _rule([], valid_from=now + timedelta(days=1), max_total_uses=1, current_total_uses=1)
    assert evaluate_rule(db, future, ctx, now=now).reason == "Rule not yet valid"

    past = _rule([], valid_until=now - timedelta(seconds=1))
    assert evaluate_rule(db, past, ctx, now=now).reason == "Rule expired"

    open_window = _rule([], valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1))
    assert evaluate_rule(db, open_window, ctx, now=now).is_eligible is True


def test_rule_per_user_cap_counts_ledger_rows(db):
    rule = _rule([_min_amount(1)], max_uses_per_customer=2)
    for _ in range(2):
        db.add(
            GiftRuleUsage(
                gift_rule_id=rule.id,
                user_id="user-1",
                order_id=uuid.uuid4(),
                product_id=PRODUCT_B,
            )
        )
    db.commit()

    ctx = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=10))
    assert evaluate_rule(db, rule, ctx).reason == "User usage limit reached"

    other_user = _ctx(CartLine(product_id=PRODUCT_A, quantity=1, price=10), user_id="user-2")
    assert evaluate_rule(db, rule, other_user).is_eligible is True


def test_rule_with_gift_already_in_cart(db):
    rule = _rule([_min_amount(1)])
    ctx = _ctx(
        CartLine(product_id=PRODUCT_A, quantity=1, price=10),
        CartLine(product_id=PRODUCT_B, quantity=1, price=5, is_gift=True, gift_rule_id=rule.id),
    )

    result = evaluate_rule(db, rule, ctx)
    assert result.is_eligible is False
    assert result.reason == "Gift already selected from this rule"
