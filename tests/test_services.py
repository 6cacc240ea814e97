from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import AssetCategory, CurrencyCode, GoalType, RecurringFrequency, TransactionType
from schemas import (
    AssetIn,
    FinancialGoalIn,
    GoalMilestoneIn,
    InvestmentIn,
    ProfileIn,
    TransactionIn,
)
from services import (
    AssetService,
    GoalService,
    InvestmentService,
    MarketPriceService,
    ProfileService,
    TransactionService,
    VoiceAgentService,
    age_on,
    period_transactions,
)

NOW = datetime(2025, 3, 15, 12, 0)
RATE = Decimal("1.4")


@pytest.fixture
def session():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


def _txn(session, **fields):
    fields.setdefault("currency", CurrencyCode.cad)
    return TransactionService(session).create(TransactionIn(**fields))


def _seed_ledger(session):
    _txn(
        session,
        date=date(2025, 1, 1),
        type=TransactionType.income,
        amount=Decimal("3000"),
        category="Salary",
        is_recurring=True,
    )
    _txn(
        session,
        date=date(2025, 1, 5),
        type=TransactionType.expense,
        amount=Decimal("1500"),
        category="Rent",
        is_recurring=True,
        recurring_frequency=RecurringFrequency.monthly,
    )
    _txn(
        session,
        date=date(2025, 3, 10),
        type=TransactionType.expense,
        amount=Decimal("50"),
        currency=CurrencyCode.usd,
        category="Software",
        description="Editor licence",
    )
    _txn(
        session,
        date=date(2025, 2, 20),
        type=TransactionType.expense,
        amount=Decimal("200"),
        category="Groceries",
    )


def _seed_holdings(session):
    InvestmentService(session).create(
        InvestmentIn(symbol="aapl", quantity=Decimal("10"), avg_cost=Decimal("100"))
    )
    MarketPriceService(session).upsert("AAPL", Decimal("150"))


def _seed_property(session):
    assets = AssetService(session)
    assets.create(
        AssetIn(
            name="House",
            category=AssetCategory.real_estate,
            current_value=Decimal("500000"),
            purchase_price=Decimal("400000"),
            property_type="detached",
        )
    )
    assets.create(
        AssetIn(
            name="Mortgage",
            category=AssetCategory.liability,
            subcategory="mortgage",
            current_value=Decimal("300000"),
            interest_rate=Decimal("4.5"),
            monthly_payment=Decimal("2000"),
            payment_day=1,
        )
    )


def _voice(session) -> VoiceAgentService:
    return VoiceAgentService(session, usd_to_cad=RATE, now=NOW)


def test_spending_this_month_includes_projected_rent(session):
    _seed_ledger(session)

    result = _voice(session).spending("this-month")

    assert result["period"] == "this-month"
    assert result["label"] == "March 2025"
    assert result["categories"] == [
        {"category": "Rent", "amount": 1500.0},
        {"category": "Software", "amount": 70.0},
    ]
    assert result["totalSpending"] == 1570.0
    assert result["totalIncome"] == 3000.0
    assert result["savings"] == 1430.0
    assert result["savingsRate"] == 47.7
    assert result["topCategory"] == "Rent"


def test_spending_unknown_period_is_all_time(session):
    _seed_ledger(session)

    result = _voice(session).spending("whenever")

    assert result["period"] == "all-time"
    assert result["label"] == "All Time"
    assert result["totalSpending"] == 4770.0
    assert result["totalIncome"] == 9000.0


def test_spending_empty_ledger(session):
    result = _voice(session).spending("this-month")
    assert result["categories"] == []
    assert result["topCategory"] is None
    assert result["topCategoryAmount"] == 0
    assert result["savingsRate"] == 0.0


def test_income_sources(session):
    _seed_ledger(session)

    result = _voice(session).income("last-month")

    assert result["label"] == "February 2025"
    assert result["categories"] == [
        {"category": "Salary", "amount": 3000.0, "count": 1}
    ]
    assert result["primarySource"] == "Salary"
    assert result["sourceCount"] == 1


def test_compare_months(session):
    _seed_ledger(session)

    result = _voice(session).compare()

    assert result["thisMonth"]["expenses"] == 1570.0
    assert result["thisMonth"]["transactionCount"] == 3
    assert result["lastMonth"]["expenses"] == 1700.0
    assert result["changes"]["expenseChange"] == -7.6
    assert result["changes"]["incomeChange"] == 0.0
    assert result["changes"]["savingsChange"] == 130.0
    assert result["summary"] == {
        "spendingUp": False,
        "incomeUp": False,
        "savingsImproved": True,
    }


def test_net_worth_combines_cash_securities_and_property(session):
    _seed_ledger(session)
    _seed_holdings(session)
    _seed_property(session)

    result = _voice(session).net_worth()

    assert result["breakdown"] == {
        "cashBalance": 4230.0,
        "securities": 2100.0,
        "physicalAssets": 500000.0,
        "liabilities": 300000.0,
    }
    assert result["netWorth"] == 206330.0
    assert result["totalAssets"] == 506330.0
    assert result["physicalAssetsBreakdown"]["realEstate"] == 500000.0
    assert result["assetAllocation"][0]["category"] == "Real Estate"
    assert result["liabilityDetails"]["estimatedPayoffMonths"] == 150
    assert result["counts"] == {"securities": 1, "physicalAssets": 1, "liabilities": 1}


def test_financial_summary_and_overview(session):
    _seed_ledger(session)
    _seed_holdings(session)
    ProfileService(session).upsert(ProfileIn(full_name="Sam Rivera"))

    summary = _voice(session).financial_summary()
    assert summary["cashBalance"] == 4230.0
    assert summary["investmentValue"] == 2100.0
    assert summary["investmentCost"] == 1400.0
    assert summary["unrealizedPL"] == 700.0
    assert summary["unrealizedPLPercent"] == 50.0
    assert summary["usdToCadRate"] == 1.4

    overview = _voice(session).overview()
    assert overview["userName"] == "Sam"
    assert overview["netWorth"] == 6330
    assert overview["investmentGainPercent"] == 50
    assert overview["thisMonth"]["topCategory"] == {"name": "Rent", "amount": 1500}
    assert overview["goal"] is None


def test_transactions_are_newest_first_with_projections(session):
    _seed_ledger(session)

    result = _voice(session).transactions(limit=3)

    assert [t["category"] for t in result["transactions"]] == [
        "Software",
        "Rent",
        "Salary",
    ]
    assert [t["isProjected"] for t in result["transactions"]] == [False, True, True]
    assert result["transactions"][0]["description"] == "Editor licence"
    assert result["transactions"][1]["description"] == "Rent"
    assert result["count"] == 3
    assert result["totalCount"] == 4


def test_transactions_category_filter_tolerates_typos(session):
    _seed_ledger(session)
    voice = _voice(session)

    assert {t["category"] for t in voice.transactions(category="soft")["transactions"]} == {
        "Software"
    }
    assert {t["category"] for t in voice.transactions(category="Rant")["transactions"]} == {
        "Rent"
    }
    assert voice.transactions(category="zzzzzz")["transactions"] == []


def test_transactions_type_filter(session):
    _seed_ledger(session)

    result = _voice(session).transactions(limit=50, txn_type="income")

    assert {t["type"] for t in result["transactions"]} == {"income"}
    assert result["count"] == 3


def test_recurring_summary(session):
    _seed_ledger(session)

    result = _voice(session).recurring()

    assert result["count"] == 2
    assert result["totalRecurringIncome"] == 3000.0
    assert result["totalRecurringExpenses"] == 1500.0
    assert result["netRecurring"] == 1500.0
    assert all(r["frequency"] == "monthly" for r in result["recurring"])


def test_liability_payment_creates_monthly_expense(session):
    asset = AssetService(session).create(
        AssetIn(
            name="Car loan",
            category=AssetCategory.liability,
            subcategory="car_loan",
            current_value=Decimal("20000"),
            monthly_payment=Decimal("450"),
            payment_day=31,
            create_recurring_transaction=True,
        ),
        today=date(2025, 2, 10),
    )

    txn = TransactionService(session).get(asset.linked_transaction_id)
    assert txn.date == date(2025, 2, 28)
    assert txn.type == TransactionType.expense
    assert txn.category == "Transportation"
    assert txn.is_recurring is True
    assert txn.recurring_frequency == RecurringFrequency.monthly
    assert txn.linked_asset_id == asset.id
    assert txn.description == "Car loan payment"


def test_non_liability_ignores_payment_fields(session):
    asset = AssetService(session).create(
        AssetIn(
            name="Boat",
            category=AssetCategory.vehicle,
            current_value=Decimal("9000"),
            monthly_payment=Decimal("100"),
            payment_day=3,
            create_recurring_transaction=True,
        ),
        today=date(2025, 2, 10),
    )

    assert asset.monthly_payment is None
    assert asset.linked_transaction_id is None
    assert TransactionService(session).list_all() == []


def test_liabilities_summary(session):
    _seed_property(session)

    result = _voice(session).liabilities()

    assert result["totalOwed"] == 300000.0
    assert result["totalMonthlyPayments"] == 2000.0
    assert result["estimatedPayoffMonths"] == 150
    assert result["estimatedPayoffYears"] == 12.5
    assert result["liabilities"][0]["interestRate"] == 4.5
    assert result["insights"]["highestInterest"]["name"] == "Mortgage"
    assert result["insights"]["debtToPaymentRatio"] == 150.0


def test_assets_summary(session):
    _seed_property(session)

    result = _voice(session).assets()

    assert result["assetCount"] == 1
    assert result["totalAppreciation"] == 100000.0
    assert result["totalAppreciationPercent"] == 25.0
    assert result["breakdown"]["realEstate"]["count"] == 1


def test_goals_progress_and_single_primary(session):
    _seed_ledger(session)
    _seed_holdings(session)
    goals = GoalService(session)
    goals.create(FinancialGoalIn(name="Old", target_amount=Decimal("1000"), is_primary=True))
    goals.create(
        FinancialGoalIn(
            name="Twelve K",
            target_amount=Decimal("12660"),
            is_primary=True,
            display_order=1,
            milestones=[GoalMilestoneIn(name="Half", target_amount=Decimal("6000"))],
        )
    )
    goals.create(
        FinancialGoalIn(
            name="Cash pile",
            target_amount=Decimal("8460"),
            goal_type=GoalType.savings,
            target_date=date(2025, 3, 25),
            display_order=2,
        )
    )

    result = _voice(session).goals()

    by_name = {g["name"]: g for g in result["goals"]}
    assert by_name["Old"]["isPrimary"] is False
    assert result["primaryGoal"]["name"] == "Twelve K"
    assert by_name["Twelve K"]["progress"] == 50.0
    assert by_name["Twelve K"]["milestones"][0]["isAchieved"] is True
    assert by_name["Cash pile"]["progress"] == 50.0
    assert by_name["Cash pile"]["daysRemaining"] == 10
    assert by_name["Old"]["isAchieved"] is True


def test_profile_age(session):
    ProfileService(session).upsert(
        ProfileIn(full_name="Sam Rivera", birthday=date(1990, 3, 16))
    )

    result = _voice(session).profile()

    assert result["firstName"] == "Sam"
    assert result["age"] == 34
    assert result["hasBirthday"] is True
    assert age_on(date(1990, 3, 16), date(2025, 3, 16)) == 35


def test_profile_missing(session):
    result = _voice(session).profile()
    assert result["fullName"] is None
    assert result["currency"] == "CAD"
    assert result["age"] is None


def test_period_transactions_marks_projections(session):
    _seed_ledger(session)

    result = period_transactions(session, "last-month", NOW)

    assert result["label"] == "February 2025"
    items = {i["category"]: i for i in result["items"]}
    assert set(items) == {"Salary", "Rent", "Groceries"}
    assert items["Rent"]["isProjected"] is True
    assert items["Rent"]["id"].endswith("-2025-02")
    assert items["Groceries"]["isProjected"] is False
    assert items["Groceries"]["originalId"] == items["Groceries"]["id"]


def test_linked_asset_must_exist(session):
    with pytest.raises(ValueError, match="Linked asset not found"):
        _txn(
            session,
            date=date(2025, 1, 1),
            type=TransactionType.expense,
            amount=Decimal("1"),
            category="Misc",
            linked_asset_id=42,
        )


def test_delete_unknown_transaction(session):
    with pytest.raises(ValueError, match="Transaction not found"):
        TransactionService(session).delete("missing")
