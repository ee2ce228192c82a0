from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "5f2c9a1e7b30"
down_revision = None
branch_labels = None
depends_on = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def _table_exists(bind, table_name: str) -> bool:
    insp = sa.inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    if not _table_exists(bind, "categories"):
        op.create_table(
            "categories",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False, unique=True),
            sa.Column("description", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "products"):
        op.create_table(
            "products",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.String(length=1000), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("category_id", _uuid(), sa.ForeignKey("categories.id"), nullable=True),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reserved_stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("available_stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_sold", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("total_ordered", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("low_stock_alert", sa.Integer(), nullable=False, server_default="5"),
            sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("true")),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "gift_rules"):
        op.create_table(
            "gift_rules",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("description", sa.String(length=1000), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="50"),
            sa.Column("condition_logic", sa.String(length=3), nullable=False, server_default="AND"),
            sa.Column("max_uses_per_customer", sa.Integer(), nullable=True),
            sa.Column("max_total_uses", sa.Integer(), nullable=True),
            sa.Column("current_total_uses", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("valid_from", sa.TIMESTAMP(), nullable=True),
            sa.Column("valid_until", sa.TIMESTAMP(), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "gift_conditions"):
        op.create_table(
            "gift_conditions",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("gift_rule_id", _uuid(), sa.ForeignKey("gift_rules.id"), nullable=False),
            sa.Column("parent_condition_id", _uuid(), sa.ForeignKey("gift_conditions.id"), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("min_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=True),
            sa.Column("min_quantity", sa.Integer(), nullable=True),
            sa.Column("category_id", _uuid(), sa.ForeignKey("categories.id"), nullable=True),
            sa.Column("min_category_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("logic", sa.String(length=3), nullable=True),
        )
        op.create_index("ix_gift_conditions_gift_rule_id", "gift_conditions", ["gift_rule_id"])

    if not _table_exists(bind, "gift_products"):
        op.create_table(
            "gift_products",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("gift_rule_id", _uuid(), sa.ForeignKey("gift_rules.id"), nullable=False),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("max_quantity_per_order", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("remaining_stock", sa.Integer(), nullable=True),
        )
        op.create_index("ix_gift_products_gift_rule_id", "gift_products", ["gift_rule_id"])

    if not _table_exists(bind, "cart_items"):
        op.create_table(
            "cart_items",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.String(length=100), nullable=False),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("is_gift", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("gift_rule_id", _uuid(), sa.ForeignKey("gift_rules.id"), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("user_id", "product_id", "is_gift", name="uq_cart_items_user_product_gift"),
        )
        op.create_index("ix_cart_items_user_id", "cart_items", ["user_id"])

    if not _table_exists(bind, "vouchers"):
        op.create_table(
            "vouchers",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False, unique=True),
            sa.Column("discount_type", sa.String(length=20), nullable=False, server_default="percentage"),
            sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
            sa.Column("min_purchase", sa.Numeric(12, 2), nullable=True),
            sa.Column("max_discount", sa.Numeric(12, 2), nullable=True),
            sa.Column("valid_until", sa.TIMESTAMP(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.String(length=100), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PROCESSING"),
            sa.Column("total", sa.Numeric(12, 2), nullable=False),
            sa.Column("shipping_address", sa.String(length=500), nullable=False),
            sa.Column("delivery_phone", sa.String(length=50), nullable=True),
            sa.Column("delivery_name", sa.String(length=150), nullable=True),
            sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="cash"),
            sa.Column("delivery_method", sa.String(length=30), nullable=False, server_default="courier"),
            sa.Column("voucher_id", _uuid(), sa.ForeignKey("vouchers.id"), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_orders_user_id", "orders", ["user_id"])

    if not _table_exists(bind, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("original_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("is_gift", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column(
                "gift_rule_id",
                _uuid(),
                sa.ForeignKey("gift_rules.id", ondelete="SET NULL"),
                nullable=True,
            ),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    if not _table_exists(bind, "gift_rule_usages"):
        op.create_table(
            "gift_rule_usages",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column(
                "gift_rule_id",
                _uuid(),
                sa.ForeignKey("gift_rules.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("user_id", sa.String(length=100), nullable=False),
            sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("used_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_gift_rule_usages_gift_rule_id", "gift_rule_usages", ["gift_rule_id"])

    if not _table_exists(bind, "user_vouchers"):
        op.create_table(
            "user_vouchers",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.String(length=100), nullable=False),
            sa.Column("voucher_id", _uuid(), sa.ForeignKey("vouchers.id"), nullable=False),
            sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("used_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_user_vouchers_user_id", "user_vouchers", ["user_id"])

    if not _table_exists(bind, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", _uuid(), primary_key=True, nullable=False),
            sa.Column("product_id", _uuid(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(length=255), nullable=True),
            sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])

    if not _table_exists(bind, "site_config"):
        op.create_table(
            "site_config",
            sa.Column("key", sa.String(length=100), primary_key=True, nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("description", sa.String(length=255), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )


def downgrade() -> None:
    bind = op.get_bind()

    for table_name in (
        "site_config",
        "stock_movements",
        "user_vouchers",
        "gift_rule_usages",
        "order_items",
        "orders",
        "vouchers",
        "cart_items",
        "gift_products",
        "gift_conditions",
        "gift_rules",
        "products",
        "categories",
    ):
        if _table_exists(bind, table_name):
            op.drop_table(table_name)
