from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    AssetCategory,
    CurrencyCode,
    GoalType,
    RecurringFrequency,
    TransactionType,
)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    type: TransactionType
    amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    currency: CurrencyCode = CurrencyCode.cad
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    linked_asset_id: Optional[int] = None

    @model_validator(mode="after")
    def _frequency_only_when_recurring(self) -> "TransactionIn":
        if not self.is_recurring:
            self.recurring_frequency = None
        elif self.recurring_frequency is None:
            self.recurring_frequency = RecurringFrequency.monthly
        return self


class InvestmentIn(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    avg_cost: Decimal = Field(..., ge=0)
    asset_type: Optional[str] = Field(default="stock", max_length=20)
    account_label: Optional[str] = Field(default=None, max_length=40)
    date: Optional[date] = None


class AssetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category: AssetCategory
    subcategory: Optional[str] = Field(default=None, max_length=40)
    current_value: Decimal = Field(..., ge=0)
    purchase_price: Optional[Decimal] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    currency: CurrencyCode = CurrencyCode.cad
    is_liability: bool = False
    interest_rate: Optional[Decimal] = Field(default=None, ge=0)
    address: Optional[str] = None
    property_type: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900, le=3000)
    institution: Optional[str] = None
    monthly_payment: Optional[Decimal] = Field(default=None, ge=0)
    payment_day: Optional[int] = Field(default=None, ge=1, le=31)
    linked_asset_id: Optional[int] = None
    create_recurring_transaction: bool = False


class GoalMilestoneIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    target_amount: Decimal = Field(..., ge=0)
    target_date: Optional[date] = None
    display_order: int = 0


class FinancialGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    target_amount: Decimal = Field(..., ge=0)
    target_date: Optional[date] = None
    target_age: Optional[int] = Field(default=None, ge=0, le=130)
    is_primary: bool = False
    goal_type: GoalType = GoalType.net_worth
    display_order: int = 0
    milestones: list[GoalMilestoneIn] = Field(default_factory=list)


class ProfileIn(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=120)
    email: Optional[str] = Field(default=None, max_length=254)
    currency: CurrencyCode = CurrencyCode.cad
    birthday: Optional[date] = None
    onboarding_completed: bool = False


class MarketPriceIn(BaseModel):
    price: Decimal = Field(..., ge=0)


class FinancialGoalUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    target_amount: Optional[Decimal] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    target_age: Optional[int] = Field(default=None, ge=0, le=130)
    is_primary: Optional[bool] = None
    is_achieved: Optional[bool] = None
    goal_type: Optional[GoalType] = None
    display_order: Optional[int] = None


class GoalMilestoneUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    target_amount: Optional[Decimal] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    display_order: Optional[int] = None
    is_achieved: Optional[bool] = None
