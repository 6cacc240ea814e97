import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class CurrencyCode(str, Enum):
    cad = "CAD"
    usd = "USD"


CURRENCY_CODE_ENUM = SAEnum(
    CurrencyCode,
    name="currencycode",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class RecurringFrequency(str, Enum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    yearly = "yearly"


class GoalType(str, Enum):
    net_worth = "net_worth"
    savings = "savings"
    investment = "investment"
    custom = "custom"


class AssetCategory(str, Enum):
    real_estate = "real_estate"
    vehicle = "vehicle"
    retirement = "retirement"
    cash_equivalent = "cash_equivalent"
    collectible = "collectible"
    business = "business"
    other = "other"
    liability = "liability"


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.cad
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_frequency: Mapped[Optional[RecurringFrequency]] = mapped_column(
        SAEnum(RecurringFrequency)
    )
    linked_asset_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assets.id"))

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    avg_cost: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False)
    asset_type: Mapped[Optional[str]] = mapped_column(String(20))
    account_label: Mapped[Optional[str]] = mapped_column(String(40))
    date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (Index("ix_investments_user_symbol", "user_id", "symbol"),)


class MarketPrice(Base):
    __tablename__ = "market_prices"

    symbol: Mapped[str] = mapped_column(String(20), primary_key=True)
    price: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Asset(Base, TimestampMixin):
    __tablename__ = "assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    category: Mapped[AssetCategory] = mapped_column(
        SAEnum(AssetCategory), nullable=False
    )
    subcategory: Mapped[Optional[str]] = mapped_column(String(40))
    current_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    purchase_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    purchase_date: Mapped[Optional[date]] = mapped_column(Date)
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.cad
    )
    is_liability: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    interest_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3))
    address: Mapped[Optional[str]] = mapped_column(Text)
    property_type: Mapped[Optional[str]] = mapped_column(String(40))
    make: Mapped[Optional[str]] = mapped_column(String(60))
    model: Mapped[Optional[str]] = mapped_column(String(60))
    year: Mapped[Optional[int]] = mapped_column(Integer)
    institution: Mapped[Optional[str]] = mapped_column(String(80))
    monthly_payment: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    payment_day: Mapped[Optional[int]] = mapped_column(Integer)
    linked_asset_id: Mapped[Optional[int]] = mapped_column(ForeignKey("assets.id"))
    linked_transaction_id: Mapped[Optional[str]] = mapped_column(String(36))

    __table_args__ = (
        CheckConstraint("current_value >= 0", name="ck_assets_value_positive"),
        CheckConstraint(
            "payment_day IS NULL OR (payment_day BETWEEN 1 AND 31)",
            name="ck_assets_payment_day",
        ),
    )

    @property
    def counts_as_liability(self) -> bool:
        return self.is_liability or self.category == AssetCategory.liability


class FinancialGoal(Base, TimestampMixin):
    __tablename__ = "financial_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    target_age: Mapped[Optional[int]] = mapped_column(Integer)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_achieved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_type: Mapped[GoalType] = mapped_column(
        SAEnum(GoalType), default=GoalType.net_worth, nullable=False
    )

    milestones: Mapped[list["GoalMilestone"]] = relationship(
        "GoalMilestone",
        back_populates="goal",
        order_by="GoalMilestone.display_order",
        cascade="all, delete-orphan",
    )


class GoalMilestone(Base, TimestampMixin):
    __tablename__ = "goal_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    goal_id: Mapped[int] = mapped_column(
        ForeignKey("financial_goals.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    target_date: Mapped[Optional[date]] = mapped_column(Date)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_achieved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    goal: Mapped["FinancialGoal"] = relationship(
        "FinancialGoal", back_populates="milestones"
    )


class Profile(Base, TimestampMixin):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(120))
    email: Mapped[Optional[str]] = mapped_column(String(254))
    currency: Mapped[CurrencyCode] = mapped_column(
        CURRENCY_CODE_ENUM, nullable=False, default=CurrencyCode.cad
    )
    birthday: Mapped[Optional[date]] = mapped_column(Date)
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
