from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping, Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from aggregation import (
    HUNDRED,
    ZERO,
    cash_flow,
    category_totals,
    coerce_amount,
    optional_currency,
    percent_change,
    round_currency,
    round_percent,
    round_ratio_percent,
    round_whole,
    sum_by_type,
)
from config import local_now, local_today
from fx_rates import FxRateService
from models import (
    Asset,
    AssetCategory,
    FinancialGoal,
    GoalMilestone,
    GoalType,
    Investment,
    MarketPrice,
    Profile,
    RecurringFrequency,
    Transaction,
    TransactionType,
)
from periods import (
    PeriodName,
    parse_period,
    period_label,
    record_datetime,
    resolve_boundary,
)
from recurrence import (
    days_in_month,
    original_id_of,
    expand_recurring_transactions,
    filter_transactions_with_recurring,
    format_local_date,
)
from schemas import (
    AssetIn,
    FinancialGoalIn,
    FinancialGoalUpdate,
    GoalMilestoneIn,
    GoalMilestoneUpdate,
    InvestmentIn,
    ProfileIn,
    TransactionIn,
)

LIABILITY_TO_EXPENSE_CATEGORY: dict[str, str] = {
    "mortgage": "Housing",
    "heloc": "Housing",
    "car_loan": "Transportation",
    "student_loan": "Education",
    "credit_card": "Debt Payment",
    "personal_loan": "Debt Payment",
    "line_of_credit": "Debt Payment",
    "other": "Other",
}

PHYSICAL_ASSET_CATEGORIES: list[tuple[AssetCategory, str, str]] = [
    (AssetCategory.real_estate, "realEstate", "Real Estate"),
    (AssetCategory.vehicle, "vehicles", "Vehicles"),
    (AssetCategory.retirement, "retirement", "Retirement Accounts"),
    (AssetCategory.cash_equivalent, "cashEquivalent", "Cash & Savings"),
    (AssetCategory.collectible, "collectibles", "Collectibles"),
    (AssetCategory.business, "business", "Business"),
    (AssetCategory.other, "other", "Other"),
]


class NotFoundError(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


def transaction_to_record(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "date": format_local_date(txn.date),
        "amount": coerce_amount(txn.amount),
        "type": txn.type.value,
        "currency": txn.currency.value if txn.currency else None,
        "category": txn.category,
        "description": txn.description,
        "notes": txn.notes,
        "is_recurring": bool(txn.is_recurring),
        "recurring_frequency": (
            txn.recurring_frequency.value if txn.recurring_frequency else None
        ),
        "linked_asset_id": txn.linked_asset_id,
    }


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def investment_to_record(investment: Investment) -> dict[str, Any]:
    return {
        "id": investment.id,
        "symbol": investment.symbol,
        "quantity": float(investment.quantity),
        "avg_cost": float(investment.avg_cost),
        "asset_type": investment.asset_type,
        "account_label": investment.account_label,
        "date": _iso(investment.date),
    }


def asset_to_record(asset: Asset) -> dict[str, Any]:
    return {
        "id": asset.id,
        "name": asset.name,
        "category": asset.category.value,
        "subcategory": asset.subcategory,
        "current_value": float(asset.current_value),
        "purchase_price": _money(asset.purchase_price),
        "purchase_date": _iso(asset.purchase_date),
        "currency": asset.currency.value,
        "is_liability": asset.counts_as_liability,
        "interest_rate": _money(asset.interest_rate),
        "monthly_payment": _money(asset.monthly_payment),
        "payment_day": asset.payment_day,
        "linked_asset_id": asset.linked_asset_id,
        "linked_transaction_id": asset.linked_transaction_id,
    }


def milestone_to_record(milestone: GoalMilestone) -> dict[str, Any]:
    return {
        "id": milestone.id,
        "goal_id": milestone.goal_id,
        "name": milestone.name,
        "target_amount": float(milestone.target_amount),
        "target_date": _iso(milestone.target_date),
        "display_order": milestone.display_order,
        "is_achieved": milestone.is_achieved,
    }


def goal_to_record(goal: FinancialGoal) -> dict[str, Any]:
    return {
        "id": goal.id,
        "name": goal.name,
        "description": goal.description,
        "target_amount": float(goal.target_amount),
        "target_date": _iso(goal.target_date),
        "target_age": goal.target_age,
        "is_primary": goal.is_primary,
        "is_achieved": goal.is_achieved,
        "goal_type": goal.goal_type.value,
        "display_order": goal.display_order,
        "milestones": [milestone_to_record(m) for m in goal.milestones],
    }


def profile_to_record(profile: Optional[Profile]) -> dict[str, Any]:
    if profile is None:
        return {
            "full_name": None,
            "email": None,
            "currency": "CAD",
            "birthday": None,
            "onboarding_completed": False,
        }
    return {
        "full_name": profile.full_name,
        "email": profile.email,
        "currency": profile.currency.value,
        "birthday": _iso(profile.birthday),
        "onboarding_completed": profile.onboarding_completed,
    }


def _first_name(full_name: Optional[str]) -> Optional[str]:
    if not full_name:
        return None
    return full_name.split(" ")[0]


def _sum(values) -> Decimal:
    return sum((coerce_amount(v) for v in values), ZERO)


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_linked_asset(self, asset_id: Optional[int]) -> None:
        if asset_id is None:
            return
        asset = self.session.get(Asset, asset_id)
        if not asset or asset.user_id != self.user_id:
            raise ValueError("Linked asset not found")

    def _apply(self, txn: Transaction, data: TransactionIn) -> None:
        txn.date = data.date
        txn.type = data.type
        txn.amount = data.amount
        txn.currency = data.currency
        txn.category = data.category.strip()
        txn.description = data.description
        txn.notes = data.notes
        txn.is_recurring = data.is_recurring
        txn.recurring_frequency = data.recurring_frequency
        txn.linked_asset_id = data.linked_asset_id

    def create(self, data: TransactionIn) -> Transaction:
        self._check_linked_asset(data.linked_asset_id)
        txn = Transaction(user_id=self.user_id)
        self._apply(txn, data)
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: str) -> Transaction:
        """Look up a stored row; a projected instance id resolves to its series."""
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            original_id = original_id_of(transaction_id)
            if original_id is not None:
                txn = self.session.get(Transaction, original_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_linked_asset(data.linked_asset_id)
        self._apply(txn, data)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date, Transaction.created_at)
        )
        return list(self.session.scalars(stmt).all())

    def records(self) -> list[dict[str, Any]]:
        return [transaction_to_record(txn) for txn in self.list_all()]

    def list_recurring(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.is_recurring.is_(True),
            )
            .order_by(Transaction.amount.desc())
        )
        return list(self.session.scalars(stmt).all())


class InvestmentService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: InvestmentIn) -> Investment:
        investment = Investment(user_id=self.user_id)
        self._apply(investment, data)
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def _apply(self, investment: Investment, data: InvestmentIn) -> None:
        investment.symbol = data.symbol.strip().upper()
        investment.quantity = data.quantity
        investment.avg_cost = data.avg_cost
        investment.asset_type = data.asset_type
        investment.account_label = data.account_label or "Margin"
        investment.date = data.date

    def get(self, investment_id: int) -> Investment:
        investment = self.session.get(Investment, investment_id)
        if not investment or investment.user_id != self.user_id:
            raise NotFoundError("Investment not found")
        return investment

    def update(self, investment_id: int, data: InvestmentIn) -> Investment:
        investment = self.get(investment_id)
        self._apply(investment, data)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def delete(self, investment_id: int) -> None:
        self.session.delete(self.get(investment_id))
        self.session.commit()

    def list_all(self) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.user_id == self.user_id)
            .order_by(Investment.id)
        )
        return list(self.session.scalars(stmt).all())


class MarketPriceService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(self, symbol: str, price: Decimal) -> MarketPrice:
        key = symbol.strip().upper()
        row = self.session.get(MarketPrice, key)
        if row is None:
            row = MarketPrice(symbol=key, price=price)
            self.session.add(row)
        else:
            row.price = price
        self.session.commit()
        return row

    def price_map(self) -> dict[str, Decimal]:
        rows = self.session.scalars(select(MarketPrice)).all()
        return {row.symbol: coerce_amount(row.price) for row in rows}


class AssetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: AssetIn, *, today: Optional[date] = None) -> Asset:
        is_liability = data.is_liability or data.category == AssetCategory.liability
        asset = Asset(
            user_id=self.user_id,
            name=data.name,
            category=data.category,
            subcategory=data.subcategory,
            current_value=data.current_value,
            purchase_price=data.purchase_price,
            purchase_date=data.purchase_date,
            currency=data.currency,
            is_liability=is_liability,
            interest_rate=data.interest_rate,
            address=data.address,
            property_type=data.property_type,
            make=data.make,
            model=data.model,
            year=data.year,
            institution=data.institution,
            monthly_payment=data.monthly_payment if is_liability else None,
            payment_day=data.payment_day if is_liability else None,
            linked_asset_id=data.linked_asset_id,
        )
        self.session.add(asset)
        self.session.flush()

        if (
            data.create_recurring_transaction
            and is_liability
            and data.monthly_payment
            and data.payment_day
        ):
            asset.linked_transaction_id = self._create_payment_transaction(
                asset, today or local_today()
            ).id

        self.session.commit()
        self.session.refresh(asset)
        return asset

    def _create_payment_transaction(self, asset: Asset, today: date) -> Transaction:
        # first payment lands in the current month, clamped to its length
        day = min(asset.payment_day, days_in_month(today.year, today.month))
        txn = Transaction(
            user_id=self.user_id,
            date=date(today.year, today.month, day),
            type=TransactionType.expense,
            amount=asset.monthly_payment,
            currency=asset.currency,
            category=LIABILITY_TO_EXPENSE_CATEGORY.get(
                asset.subcategory or "other", "Other"
            ),
            description=f"{asset.name} payment",
            is_recurring=True,
            recurring_frequency=RecurringFrequency.monthly,
            linked_asset_id=asset.id,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def get(self, asset_id: int) -> Asset:
        asset = self.session.get(Asset, asset_id)
        if not asset or asset.user_id != self.user_id:
            raise NotFoundError("Asset not found")
        return asset

    def delete(self, asset_id: int) -> None:
        """Remove an asset with its generated payment series; other links are cleared."""
        asset = self.get(asset_id)
        if asset.linked_transaction_id:
            payment = self.session.get(Transaction, asset.linked_transaction_id)
            if payment is not None:
                self.session.delete(payment)
        linked_txns = self.session.scalars(
            select(Transaction).where(Transaction.linked_asset_id == asset.id)
        )
        for txn in linked_txns:
            txn.linked_asset_id = None
        linked_assets = self.session.scalars(
            select(Asset).where(Asset.linked_asset_id == asset.id)
        )
        for other in linked_assets:
            other.linked_asset_id = None
        self.session.flush()
        self.session.delete(asset)
        self.session.commit()

    def list_all(self) -> list[Asset]:
        stmt = (
            select(Asset)
            .where(Asset.user_id == self.user_id)
            .order_by(Asset.current_value.desc())
        )
        return list(self.session.scalars(stmt).all())


_REQUIRED_GOAL_FIELDS = frozenset(
    {"name", "target_amount", "is_primary", "is_achieved", "goal_type", "display_order"}
)
_REQUIRED_MILESTONE_FIELDS = frozenset(
    {"name", "target_amount", "display_order", "is_achieved"}
)


def _reject_nulls(changes: Mapping[str, Any], required: frozenset[str]) -> None:
    for field in required & changes.keys():
        if changes[field] is None:
            raise ValueError(f"{field} cannot be null")


class GoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: FinancialGoalIn) -> FinancialGoal:
        if data.is_primary:
            for goal in self.list_all():
                goal.is_primary = False
        goal = FinancialGoal(
            user_id=self.user_id,
            name=data.name,
            description=data.description,
            target_amount=data.target_amount,
            target_date=data.target_date,
            target_age=data.target_age,
            is_primary=data.is_primary,
            goal_type=data.goal_type,
            display_order=data.display_order,
        )
        goal.milestones = [
            GoalMilestone(
                user_id=self.user_id,
                name=m.name,
                target_amount=m.target_amount,
                target_date=m.target_date,
                display_order=m.display_order,
            )
            for m in data.milestones
        ]
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def list_all(self) -> list[FinancialGoal]:
        stmt = (
            select(FinancialGoal)
            .options(selectinload(FinancialGoal.milestones))
            .where(FinancialGoal.user_id == self.user_id)
            .order_by(FinancialGoal.display_order, FinancialGoal.id)
        )
        return list(self.session.scalars(stmt).all())

    def primary(self) -> Optional[FinancialGoal]:
        return next((g for g in self.list_all() if g.is_primary), None)

    def get(self, goal_id: int) -> FinancialGoal:
        goal = self.session.get(FinancialGoal, goal_id)
        if not goal or goal.user_id != self.user_id:
            raise NotFoundError("Goal not found")
        return goal

    def update(self, goal_id: int, data: FinancialGoalUpdate) -> FinancialGoal:
        goal = self.get(goal_id)
        changes = data.model_dump(exclude_unset=True)
        _reject_nulls(changes, _REQUIRED_GOAL_FIELDS)
        if changes.get("is_primary"):
            for other in self.list_all():
                if other.id != goal.id:
                    other.is_primary = False
        for field, value in changes.items():
            setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        self.session.delete(self.get(goal_id))
        self.session.commit()

    def add_milestone(self, goal_id: int, data: GoalMilestoneIn) -> GoalMilestone:
        goal = self.get(goal_id)
        milestone = GoalMilestone(
            user_id=self.user_id,
            name=data.name,
            target_amount=data.target_amount,
            target_date=data.target_date,
            display_order=data.display_order,
        )
        goal.milestones.append(milestone)
        self.session.commit()
        self.session.refresh(milestone)
        return milestone

    def get_milestone(self, milestone_id: int) -> GoalMilestone:
        milestone = self.session.get(GoalMilestone, milestone_id)
        if not milestone or milestone.user_id != self.user_id:
            raise NotFoundError("Milestone not found")
        return milestone

    def update_milestone(
        self, milestone_id: int, data: GoalMilestoneUpdate
    ) -> GoalMilestone:
        milestone = self.get_milestone(milestone_id)
        changes = data.model_dump(exclude_unset=True)
        _reject_nulls(changes, _REQUIRED_MILESTONE_FIELDS)
        for field, value in changes.items():
            setattr(milestone, field, value)
        self.session.commit()
        self.session.refresh(milestone)
        return milestone

    def delete_milestone(self, milestone_id: int) -> None:
        self.session.delete(self.get_milestone(milestone_id))
        self.session.commit()


class ProfileService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self) -> Optional[Profile]:
        return self.session.get(Profile, self.user_id)

    def upsert(self, data: ProfileIn) -> Profile:
        profile = self.get()
        if profile is None:
            profile = Profile(id=self.user_id)
            self.session.add(profile)
        profile.full_name = data.full_name
        profile.email = data.email
        profile.currency = data.currency
        profile.birthday = data.birthday
        profile.onboarding_completed = data.onboarding_completed
        self.session.commit()
        self.session.refresh(profile)
        return profile


@dataclass(frozen=True)
class Holding:
    symbol: str
    quantity: Decimal
    avg_cost: Decimal
    current_price: Decimal
    asset_type: Optional[str]
    account_label: Optional[str]

    @property
    def cost_basis(self) -> Decimal:
        return self.avg_cost * self.quantity

    @property
    def current_value(self) -> Decimal:
        return self.current_price * self.quantity


def build_holdings(
    investments: list[Investment], prices: Mapping[str, Decimal]
) -> list[Holding]:
    """Stored quote per symbol, or the average cost when no quote exists."""
    return [
        Holding(
            symbol=inv.symbol,
            quantity=coerce_amount(inv.quantity),
            avg_cost=coerce_amount(inv.avg_cost),
            current_price=prices.get(inv.symbol, coerce_amount(inv.avg_cost)),
            asset_type=inv.asset_type,
            account_label=inv.account_label,
        )
        for inv in investments
    ]


@dataclass(frozen=True)
class Balances:
    income: Decimal
    expenses: Decimal
    investment_value_usd: Decimal
    investment_cost_usd: Decimal
    usd_to_cad: Decimal

    @property
    def cash_balance(self) -> Decimal:
        return self.income - self.expenses

    @property
    def investment_value_cad(self) -> Decimal:
        return self.investment_value_usd * self.usd_to_cad

    @property
    def investment_cost_cad(self) -> Decimal:
        return self.investment_cost_usd * self.usd_to_cad

    @property
    def net_worth(self) -> Decimal:
        return self.cash_balance + self.investment_value_cad


class VoiceAgentService:
    """Read-only financial summaries for the voice assistant's tool calls.

    All figures are CAD. USD transactions and holdings are converted with
    ``usd_to_cad``; ``now`` anchors every period and recurrence horizon.
    """

    def __init__(
        self,
        session: Session,
        *,
        usd_to_cad: Optional[Decimal] = None,
        now: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.usd_to_cad = (
            usd_to_cad if usd_to_cad is not None else FxRateService().usd_to_cad()
        )
        self.now = now or local_now()
        self.ledger = TransactionService(session, self.user_id)

    def _records(self) -> list[dict[str, Any]]:
        return self.ledger.records()

    def _holdings(self) -> list[Holding]:
        investments = InvestmentService(self.session, self.user_id).list_all()
        prices = MarketPriceService(self.session).price_map()
        return build_holdings(investments, prices)

    def _balances(self) -> Balances:
        expanded = expand_recurring_transactions(self._records(), self.now)
        flow = cash_flow(expanded, self.usd_to_cad)
        holdings = self._holdings()
        return Balances(
            income=flow.income,
            expenses=flow.expenses,
            investment_value_usd=_sum(h.current_value for h in holdings),
            investment_cost_usd=_sum(h.cost_basis for h in holdings),
            usd_to_cad=self.usd_to_cad,
        )

    def _goal_current_amount(self, goal_type: GoalType, balances: Balances) -> Decimal:
        if goal_type == GoalType.savings:
            return balances.cash_balance
        if goal_type == GoalType.investment:
            return balances.investment_value_cad
        return balances.net_worth

    def spending(self, period: Optional[str]) -> dict[str, Any]:
        slug = parse_period(period)
        txns = filter_transactions_with_recurring(self._records(), slug, self.now)
        categories = sorted(
            (
                {"category": name, "amount": round_currency(bucket["amount"])}
                for name, bucket in category_totals(
                    txns, "expense", self.usd_to_cad
                ).items()
            ),
            key=lambda c: c["amount"],
            reverse=True,
        )
        total_spending = _sum(c["amount"] for c in categories)
        total_income = sum_by_type(txns, "income", self.usd_to_cad)
        savings = total_income - total_spending
        savings_rate = savings / total_income * HUNDRED if total_income > 0 else ZERO
        top = categories[0] if categories else None
        return {
            "period": slug.value,
            "label": period_label(slug, self.now),
            "categories": categories,
            "totalSpending": round_currency(total_spending),
            "totalIncome": round_currency(total_income),
            "savings": round_currency(savings),
            "savingsRate": round_percent(savings_rate),
            "topCategory": top["category"] if top else None,
            "topCategoryAmount": top["amount"] if top else 0,
        }

    def income(self, period: Optional[str]) -> dict[str, Any]:
        slug = parse_period(period)
        txns = filter_transactions_with_recurring(self._records(), slug, self.now)
        categories = sorted(
            (
                {
                    "category": name,
                    "amount": round_currency(bucket["amount"]),
                    "count": bucket["count"],
                }
                for name, bucket in category_totals(
                    txns, "income", self.usd_to_cad
                ).items()
            ),
            key=lambda c: c["amount"],
            reverse=True,
        )
        total_income = _sum(c["amount"] for c in categories)
        top = categories[0] if categories else None
        return {
            "period": slug.value,
            "label": period_label(slug, self.now),
            "categories": categories,
            "totalIncome": round_currency(total_income),
            "primarySource": top["category"] if top else None,
            "primarySourceAmount": top["amount"] if top else 0,
            "sourceCount": len(categories),
        }

    def compare(self) -> dict[str, Any]:
        records = self._records()
        this_month = filter_transactions_with_recurring(
            records, PeriodName.this_month, self.now
        )
        last_month = filter_transactions_with_recurring(
            records, PeriodName.last_month, self.now
        )
        current = cash_flow(this_month, self.usd_to_cad)
        previous = cash_flow(last_month, self.usd_to_cad)

        def stats(flow, count: int) -> dict[str, Any]:
            return {
                "income": round_currency(flow.income),
                "expenses": round_currency(flow.expenses),
                "savings": round_currency(flow.savings),
                "savingsRate": round_percent(flow.savings_rate),
                "transactionCount": count,
            }

        income_change = percent_change(current.income, previous.income)
        expense_change = percent_change(current.expenses, previous.expenses)
        savings_change = current.savings - previous.savings
        return {
            "thisMonth": stats(current, len(this_month)),
            "lastMonth": stats(previous, len(last_month)),
            "changes": {
                "incomeChange": round_percent(income_change),
                "expenseChange": round_percent(expense_change),
                "savingsChange": round_currency(savings_change),
                "savingsRateChange": round_percent(
                    current.savings_rate - previous.savings_rate
                ),
            },
            "summary": {
                "spendingUp": expense_change > 0,
                "incomeUp": income_change > 0,
                "savingsImproved": savings_change > 0,
            },
        }

    def overview(self) -> dict[str, Any]:
        balances = self._balances()
        this_month = filter_transactions_with_recurring(
            self._records(), PeriodName.this_month, self.now
        )
        month = cash_flow(this_month, self.usd_to_cad)
        by_category = category_totals(this_month, "expense", self.usd_to_cad)
        top = max(by_category.items(), key=lambda item: item[1]["amount"], default=None)

        gain_percent = (
            (balances.investment_value_usd - balances.investment_cost_usd)
            / balances.investment_cost_usd
            * HUNDRED
            if balances.investment_cost_usd > 0
            else ZERO
        )

        goal_progress = None
        goal = GoalService(self.session, self.user_id).primary()
        if goal is not None:
            target = coerce_amount(goal.target_amount)
            current_amount = self._goal_current_amount(goal.goal_type, balances)
            progress = current_amount / target * HUNDRED if target > 0 else ZERO
            goal_progress = {
                "name": goal.name,
                "progress": round_whole(progress),
                "remaining": round_whole(target - current_amount),
            }

        profile = ProfileService(self.session, self.user_id).get()
        return {
            "userName": _first_name(profile.full_name if profile else None),
            "netWorth": round_whole(balances.net_worth),
            "cashBalance": round_whole(balances.cash_balance),
            "investmentValue": round_whole(balances.investment_value_cad),
            "investmentGainPercent": round_whole(gain_percent),
            "holdingsCount": len(InvestmentService(self.session, self.user_id).list_all()),
            "thisMonth": {
                "income": round_whole(month.income),
                "expenses": round_whole(month.expenses),
                "savings": round_whole(month.savings),
                "savingsRate": round_whole(month.savings_rate),
                "topCategory": (
                    {"name": top[0], "amount": round_whole(top[1]["amount"])}
                    if top
                    else None
                ),
            },
            "goal": goal_progress,
            "currency": "CAD",
        }

    def financial_summary(self) -> dict[str, Any]:
        balances = self._balances()
        unrealized = balances.investment_value_cad - balances.investment_cost_cad
        profile = ProfileService(self.session, self.user_id).get()
        return {
            "netWorth": round_currency(balances.net_worth),
            "cashBalance": round_currency(balances.cash_balance),
            "investmentValue": round_currency(balances.investment_value_cad),
            "investmentCost": round_currency(balances.investment_cost_cad),
            "unrealizedPL": round_currency(unrealized),
            "unrealizedPLPercent": (
                round_currency(unrealized / balances.investment_cost_cad * HUNDRED)
                if balances.investment_cost_cad > 0
                else 0
            ),
            "totalIncome": round_currency(balances.income),
            "totalExpenses": round_currency(balances.expenses),
            "currency": profile.currency.value if profile else "CAD",
            "usdToCadRate": round_currency(self.usd_to_cad),
        }

    def net_worth(self) -> dict[str, Any]:
        balances = self._balances()
        assets = AssetService(self.session, self.user_id).list_all()
        physical = [a for a in assets if not a.counts_as_liability]
        liabilities = [a for a in assets if a.counts_as_liability]

        category_values = {
            category: _sum(a.current_value for a in physical if a.category == category)
            for category, _, _ in PHYSICAL_ASSET_CATEGORIES
        }
        total_physical = _sum(category_values.values())
        liabilities_total = _sum(a.current_value for a in liabilities)
        monthly_payments = _sum(a.monthly_payment for a in liabilities if a.monthly_payment)

        cash = balances.cash_balance
        securities = balances.investment_value_cad
        total_assets = cash + securities + total_physical
        net_worth = total_assets - liabilities_total

        allocation_rows = [("Cash Balance", cash), ("Securities", securities)] + [
            (label, category_values[category])
            for category, _, label in PHYSICAL_ASSET_CATEGORIES
        ]
        allocation = sorted(
            (
                {
                    "category": label,
                    "value": round_currency(value),
                    "percent": round_percent(
                        value / total_assets * HUNDRED if total_assets > 0 else ZERO
                    ),
                }
                for label, value in allocation_rows
                if value > 0
            ),
            key=lambda row: row["value"],
            reverse=True,
        )

        return {
            "netWorth": round_currency(net_worth),
            "totalAssets": round_currency(total_assets),
            "totalLiabilities": round_currency(liabilities_total),
            "breakdown": {
                "cashBalance": round_currency(cash),
                "securities": round_currency(securities),
                "physicalAssets": round_currency(total_physical),
                "liabilities": round_currency(liabilities_total),
            },
            "physicalAssetsBreakdown": {
                key: round_currency(category_values[category])
                for category, key, _ in PHYSICAL_ASSET_CATEGORIES
            },
            "assetAllocation": allocation,
            "liabilityDetails": {
                "total": round_currency(liabilities_total),
                "monthlyPayments": round_currency(monthly_payments),
                "count": len(liabilities),
                "estimatedPayoffMonths": (
                    math.ceil(liabilities_total / monthly_payments)
                    if monthly_payments > 0
                    else None
                ),
            },
            "counts": {
                "securities": len(InvestmentService(self.session, self.user_id).list_all()),
                "physicalAssets": len(physical),
                "liabilities": len(liabilities),
            },
            "usdToCadRate": round_currency(self.usd_to_cad),
        }

    def transactions(
        self,
        *,
        limit: int = 10,
        txn_type: Optional[str] = None,
        category: Optional[str] = None,
    ) -> dict[str, Any]:
        stored = self._records()
        txns = expand_recurring_transactions(stored, self.now)
        txns = sorted(txns, key=lambda t: record_datetime(t["date"]), reverse=True)

        if txn_type:
            txns = [t for t in txns if t["type"] == txn_type]
        if category:
            txns = _match_category(txns, category)
        txns = txns[: max(limit, 0)]

        formatted = [
            {
                "id": t["id"],
                "date": t["date"],
                "amount": float(coerce_amount(t["amount"])),
                "type": t["type"],
                "category": t["category"],
                "description": t.get("description") or t["category"],
                "currency": t.get("currency") or "CAD",
                "isProjected": bool(t.get("_is_projected", False)),
            }
            for t in txns
        ]
        return {
            "transactions": formatted,
            "count": len(formatted),
            "totalCount": len(stored),
        }

    def recurring(self) -> dict[str, Any]:
        recurring = [
            {
                "description": txn.description or txn.category,
                "amount": float(coerce_amount(txn.amount)),
                "type": txn.type.value,
                "category": txn.category,
                "frequency": (
                    txn.recurring_frequency.value
                    if txn.recurring_frequency
                    else RecurringFrequency.monthly.value
                ),
                "currency": txn.currency.value if txn.currency else "CAD",
            }
            for txn in self.ledger.list_recurring()
        ]
        expenses = [r for r in recurring if r["type"] == TransactionType.expense.value]
        income = [r for r in recurring if r["type"] == TransactionType.income.value]
        total_expenses = _sum(r["amount"] for r in expenses)
        total_income = _sum(r["amount"] for r in income)
        return {
            "recurring": recurring,
            "expenses": expenses,
            "income": income,
            "totalRecurringExpenses": round_currency(total_expenses),
            "totalRecurringIncome": round_currency(total_income),
            "netRecurring": round_currency(total_income - total_expenses),
            "count": len(recurring),
        }

    def goals(self) -> dict[str, Any]:
        balances = self._balances()
        goals = []
        for goal in GoalService(self.session, self.user_id).list_all():
            target = coerce_amount(goal.target_amount)
            current_amount = self._goal_current_amount(goal.goal_type, balances)
            progress = current_amount / target * HUNDRED if target > 0 else ZERO
            days_remaining = None
            if goal.target_date:
                delta = datetime.combine(goal.target_date, time.min) - self.now
                days_remaining = math.ceil(delta.total_seconds() / 86400)
            goals.append(
                {
                    "id": goal.id,
                    "name": goal.name,
                    "description": goal.description,
                    "goalType": goal.goal_type.value,
                    "targetAmount": round_currency(target),
                    "currentAmount": round_currency(current_amount),
                    "progress": round_percent(progress),
                    "remaining": round_currency(target - current_amount),
                    "targetDate": (
                        goal.target_date.isoformat() if goal.target_date else None
                    ),
                    "targetAge": goal.target_age,
                    "daysRemaining": days_remaining,
                    "isPrimary": goal.is_primary,
                    "isAchieved": goal.is_achieved or current_amount >= target,
                    "milestones": [
                        {
                            "name": m.name,
                            "targetAmount": float(coerce_amount(m.target_amount)),
                            "isAchieved": m.is_achieved
                            or current_amount >= coerce_amount(m.target_amount),
                        }
                        for m in goal.milestones
                    ],
                }
            )
        profile = ProfileService(self.session, self.user_id).get()
        return {
            "goals": goals,
            "primaryGoal": next((g for g in goals if g["isPrimary"]), None),
            "currentNetWorth": round_currency(balances.net_worth),
            "cashBalance": round_currency(balances.cash_balance),
            "investmentValue": round_currency(balances.investment_value_cad),
            "birthday": (
                profile.birthday.isoformat() if profile and profile.birthday else None
            ),
        }

    def investments(self) -> dict[str, Any]:
        holdings = []
        for h in self._holdings():
            cost_basis = h.cost_basis
            gain = h.current_value - cost_basis
            holdings.append(
                {
                    "symbol": h.symbol,
                    "quantity": float(h.quantity),
                    "avgCost": round_currency(h.avg_cost),
                    "currentPrice": round_currency(h.current_price),
                    "costBasis": round_currency(cost_basis),
                    "currentValue": round_currency(h.current_value),
                    "gain": round_currency(gain),
                    "gainPercent": round_percent(
                        gain / cost_basis * HUNDRED if cost_basis > 0 else ZERO
                    ),
                    "assetType": h.asset_type,
                    "accountLabel": h.account_label,
                }
            )
        holdings.sort(key=lambda h: h["currentValue"], reverse=True)

        total_value = _sum(h["currentValue"] for h in holdings)
        total_cost = _sum(h["costBasis"] for h in holdings)
        total_gain = total_value - total_cost

        by_asset_type: dict[str, dict[str, Any]] = {}
        for h in holdings:
            bucket = by_asset_type.setdefault(
                h["assetType"] or "other", {"value": ZERO, "count": 0}
            )
            bucket["value"] += coerce_amount(h["currentValue"])
            bucket["count"] += 1

        gainers = sorted(
            (h for h in holdings if h["gain"] > 0),
            key=lambda h: h["gainPercent"],
            reverse=True,
        )
        losers = sorted(
            (h for h in holdings if h["gain"] < 0), key=lambda h: h["gainPercent"]
        )
        return {
            "holdings": holdings,
            "totalValueUSD": round_currency(total_value),
            "totalValueCAD": round_currency(total_value * self.usd_to_cad),
            "totalCostUSD": round_currency(total_cost),
            "totalGainUSD": round_currency(total_gain),
            "totalGainPercent": (
                round_ratio_percent(total_gain / total_cost) if total_cost > 0 else 0
            ),
            "holdingsCount": len(holdings),
            "byAssetType": {
                key: {"value": round_currency(b["value"]), "count": b["count"]}
                for key, b in by_asset_type.items()
            },
            "topGainers": gainers[:3],
            "topLosers": losers[:3],
            "usdToCadRate": round_currency(self.usd_to_cad),
        }

    def assets(self) -> dict[str, Any]:
        physical = [
            a
            for a in AssetService(self.session, self.user_id).list_all()
            if not a.counts_as_liability
        ]

        by_category: dict[str, dict[str, Any]] = {}
        for asset in physical:
            bucket = by_category.setdefault(
                asset.category.value, {"total": ZERO, "count": 0}
            )
            bucket["total"] += coerce_amount(asset.current_value)
            bucket["count"] += 1

        total_value = _sum(a.current_value for a in physical)
        total_purchase = _sum(a.purchase_price or ZERO for a in physical)
        total_appreciation = total_value - total_purchase

        real_estate = [a for a in physical if a.category == AssetCategory.real_estate]
        vehicles = [a for a in physical if a.category == AssetCategory.vehicle]
        others = [
            a
            for a in physical
            if a.category not in (AssetCategory.real_estate, AssetCategory.vehicle)
        ]

        formatted = []
        for a in physical:
            value = coerce_amount(a.current_value)
            purchase = coerce_amount(a.purchase_price) if a.purchase_price else None
            formatted.append(
                {
                    "id": a.id,
                    "name": a.name,
                    "category": a.category.value,
                    "subcategory": a.subcategory,
                    "currentValue": round_currency(value),
                    "purchasePrice": optional_currency(purchase),
                    "purchaseDate": (
                        a.purchase_date.isoformat() if a.purchase_date else None
                    ),
                    "appreciation": (
                        round_currency(value - purchase) if purchase else None
                    ),
                    "appreciationPercent": (
                        round_ratio_percent((value - purchase) / purchase)
                        if purchase
                        else None
                    ),
                    "address": a.address,
                    "propertyType": a.property_type,
                    "year": a.year,
                    "make": a.make,
                    "model": a.model,
                    "institution": a.institution,
                }
            )

        return {
            "assets": formatted,
            "totalValue": round_currency(total_value),
            "totalPurchasePrice": round_currency(total_purchase),
            "totalAppreciation": round_currency(total_appreciation),
            "totalAppreciationPercent": (
                round_ratio_percent(total_appreciation / total_purchase)
                if total_purchase > 0
                else 0
            ),
            "assetCount": len(physical),
            "byCategory": [
                {
                    "category": category,
                    "total": round_currency(b["total"]),
                    "count": b["count"],
                }
                for category, b in by_category.items()
            ],
            "breakdown": {
                "realEstate": {
                    "total": round_currency(_sum(a.current_value for a in real_estate)),
                    "count": len(real_estate),
                    "properties": [
                        {
                            "name": a.name,
                            "value": round_currency(a.current_value),
                            "type": a.property_type,
                            "address": a.address,
                        }
                        for a in real_estate
                    ],
                },
                "vehicles": {
                    "total": round_currency(_sum(a.current_value for a in vehicles)),
                    "count": len(vehicles),
                    "vehicles": [
                        {
                            "name": a.name,
                            "value": round_currency(a.current_value),
                            "details": " ".join(
                                str(part)
                                for part in (a.year, a.make, a.model)
                                if part
                            ),
                        }
                        for a in vehicles
                    ],
                },
                "other": {
                    "total": round_currency(_sum(a.current_value for a in others)),
                    "count": len(others),
                },
            },
        }

    def liabilities(self) -> dict[str, Any]:
        liabilities = [
            a
            for a in AssetService(self.session, self.user_id).list_all()
            if a.counts_as_liability
        ]
        total_owed = _sum(a.current_value for a in liabilities)
        total_payments = _sum(a.monthly_payment for a in liabilities if a.monthly_payment)

        by_type: dict[str, dict[str, Any]] = {}
        for liability in liabilities:
            bucket = by_type.setdefault(
                liability.subcategory or "other",
                {"total": ZERO, "count": 0, "monthlyPayments": ZERO},
            )
            bucket["total"] += coerce_amount(liability.current_value)
            bucket["count"] += 1
            if liability.monthly_payment:
                bucket["monthlyPayments"] += coerce_amount(liability.monthly_payment)

        payoff_months = (
            math.ceil(total_owed / total_payments) if total_payments > 0 else None
        )
        payoff_years = (
            round_percent(Decimal(payoff_months) / 12) if payoff_months else None
        )

        formatted = sorted(
            (
                {
                    "id": item.id,
                    "name": item.name,
                    "type": item.subcategory or "other",
                    "amountOwed": round_currency(item.current_value),
                    "interestRate": optional_currency(item.interest_rate or None),
                    "monthlyPayment": optional_currency(item.monthly_payment or None),
                    "paymentDay": item.payment_day,
                    "institution": item.institution,
                    "linkedAssetId": item.linked_asset_id,
                    "estimatedPayoffMonths": (
                        math.ceil(
                            coerce_amount(item.current_value)
                            / coerce_amount(item.monthly_payment)
                        )
                        if item.monthly_payment and item.monthly_payment > 0
                        else None
                    ),
                }
                for item in liabilities
            ),
            key=lambda row: row["amountOwed"],
            reverse=True,
        )

        highest_interest = max(
            (item for item in liabilities if item.interest_rate),
            key=lambda item: coerce_amount(item.interest_rate),
            default=None,
        )
        largest = formatted[0] if formatted else None
        return {
            "liabilities": formatted,
            "totalOwed": round_currency(total_owed),
            "totalMonthlyPayments": round_currency(total_payments),
            "liabilityCount": len(liabilities),
            "estimatedPayoffMonths": payoff_months,
            "estimatedPayoffYears": payoff_years,
            "byType": [
                {
                    "type": key,
                    "total": round_currency(b["total"]),
                    "count": b["count"],
                    "monthlyPayments": round_currency(b["monthlyPayments"]),
                }
                for key, b in by_type.items()
            ],
            "insights": {
                "highestInterest": (
                    {
                        "name": highest_interest.name,
                        "rate": float(coerce_amount(highest_interest.interest_rate)),
                        "owed": round_currency(highest_interest.current_value),
                    }
                    if highest_interest
                    else None
                ),
                "largestDebt": (
                    {
                        "name": largest["name"],
                        "owed": largest["amountOwed"],
                        "type": largest["type"],
                    }
                    if largest
                    else None
                ),
                "debtToPaymentRatio": (
                    round_percent(total_owed / total_payments)
                    if total_payments > 0
                    else None
                ),
            },
        }

    def profile(self) -> dict[str, Any]:
        profile = ProfileService(self.session, self.user_id).get()
        full_name = profile.full_name if profile else None
        birthday = profile.birthday if profile else None
        return {
            "fullName": full_name,
            "firstName": _first_name(full_name),
            "email": profile.email if profile else None,
            "currency": profile.currency.value if profile else "CAD",
            "age": age_on(birthday, self.now.date()) if birthday else None,
            "hasBirthday": birthday is not None,
            "onboardingCompleted": bool(profile and profile.onboarding_completed),
        }


def age_on(birthday: date, today: date) -> int:
    age = today.year - birthday.year
    if (today.month, today.day) < (birthday.month, birthday.day):
        age -= 1
    return age


def _match_category(
    records: list[Mapping[str, Any]], query: str
) -> list[Mapping[str, Any]]:
    """Substring match on category; falls back to names within one edit."""
    needle = query.strip().lower()
    matches = [r for r in records if needle in (r["category"] or "").lower()]
    if matches:
        return matches

    best_distance: Optional[int] = None
    best: set[str] = set()
    for name in {(r["category"] or "").lower() for r in records}:
        dist = int(Levenshtein.distance(needle, name))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = {name}
        elif dist == best_distance:
            best.add(name)
    if best_distance is None or best_distance > 1:
        return []
    return [r for r in records if (r["category"] or "").lower() in best]


def period_overview(now: datetime) -> list[dict[str, Any]]:
    rows = []
    for slug in PeriodName:
        boundary = resolve_boundary(slug, now)
        rows.append(
            {
                "period": slug.value,
                "label": period_label(slug, now),
                "start": boundary.start.isoformat(),
                "end": boundary.end.isoformat(),
            }
        )
    return rows


def period_transactions(
    session: Session, period: Optional[str], now: datetime
) -> dict[str, Any]:
    slug = parse_period(period)
    records = TransactionService(session).records()
    items = filter_transactions_with_recurring(records, slug, now)
    return {
        "period": slug.value,
        "label": period_label(slug, now),
        "items": [
            {
                "id": t["id"],
                "originalId": t.get("_original_id", t["id"]),
                "date": t["date"],
                "type": t["type"],
                "amount": round_currency(t["amount"]),
                "currency": t.get("currency") or "CAD",
                "category": t["category"],
                "description": t.get("description"),
                "isProjected": bool(t.get("_is_projected", False)),
            }
            for t in items
        ],
    }
