"""initial schema

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None


CURRENCY = sa.Enum("CAD", "USD", name="currencycode")


def upgrade():
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(length=120)),
        sa.Column("email", sa.String(length=254)),
        sa.Column("currency", CURRENCY, nullable=False, server_default="CAD"),
        sa.Column("birthday", sa.Date()),
        sa.Column(
            "onboarding_completed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "real_estate",
                "vehicle",
                "retirement",
                "cash_equivalent",
                "collectible",
                "business",
                "other",
                "liability",
                name="assetcategory",
            ),
            nullable=False,
        ),
        sa.Column("subcategory", sa.String(length=40)),
        sa.Column("current_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("purchase_price", sa.Numeric(14, 2)),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("currency", CURRENCY, nullable=False, server_default="CAD"),
        sa.Column(
            "is_liability", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("interest_rate", sa.Numeric(6, 3)),
        sa.Column("address", sa.Text()),
        sa.Column("property_type", sa.String(length=40)),
        sa.Column("make", sa.String(length=60)),
        sa.Column("model", sa.String(length=60)),
        sa.Column("year", sa.Integer()),
        sa.Column("institution", sa.String(length=80)),
        sa.Column("monthly_payment", sa.Numeric(14, 2)),
        sa.Column("payment_day", sa.Integer()),
        sa.Column("linked_asset_id", sa.Integer(), sa.ForeignKey("assets.id")),
        sa.Column("linked_transaction_id", sa.String(length=36)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("current_value >= 0", name="ck_assets_value_positive"),
        sa.CheckConstraint(
            "payment_day IS NULL OR (payment_day BETWEEN 1 AND 31)",
            name="ck_assets_payment_day",
        ),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", CURRENCY, nullable=False, server_default="CAD"),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurring_frequency",
            sa.Enum(
                "weekly", "biweekly", "monthly", "yearly", name="recurringfrequency"
            ),
        ),
        sa.Column("linked_asset_id", sa.Integer(), sa.ForeignKey("assets.id")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date",
        "transactions",
        ["user_id", "type", "date"],
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("symbol", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Numeric(20, 8), nullable=False),
        sa.Column("avg_cost", sa.Numeric(16, 4), nullable=False),
        sa.Column("asset_type", sa.String(length=20)),
        sa.Column("account_label", sa.String(length=40)),
        sa.Column("date", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_investments_user_symbol", "investments", ["user_id", "symbol"]
    )

    op.create_table(
        "market_prices",
        sa.Column("symbol", sa.String(length=20), primary_key=True),
        sa.Column("price", sa.Numeric(16, 4), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "financial_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("target_date", sa.Date()),
        sa.Column("target_age", sa.Integer()),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "is_achieved", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "goal_type",
            sa.Enum(
                "net_worth", "savings", "investment", "custom", name="goaltype"
            ),
            nullable=False,
            server_default="net_worth",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "goal_milestones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "goal_id",
            sa.Integer(),
            sa.ForeignKey("financial_goals.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("target_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("target_date", sa.Date()),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "is_achieved", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("goal_milestones")
    op.drop_table("financial_goals")
    op.drop_table("market_prices")
    op.drop_index("ix_investments_user_symbol", table_name="investments")
    op.drop_table("investments")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("assets")
    op.drop_table("profiles")
