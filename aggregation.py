from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def coerce_amount(amount: Decimal | int | float | str | None) -> Decimal:
    if amount is None:
        return ZERO
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _currency_code(currency: Any) -> str:
    if currency is None:
        return "CAD"
    return str(getattr(currency, "value", currency)).upper() or "CAD"


def to_cad(
    amount: Decimal | int | float | str | None,
    currency: Any,
    usd_to_cad: Decimal,
) -> Decimal:
    """USD amounts are multiplied by the rate; CAD and missing currency pass through."""
    value = coerce_amount(amount)
    if _currency_code(currency) == "USD":
        return value * usd_to_cad
    return value


def _type_value(txn_type: Any) -> str:
    return str(getattr(txn_type, "value", txn_type))


def of_type(
    records: Iterable[Mapping[str, Any]], txn_type: str
) -> list[Mapping[str, Any]]:
    return [r for r in records if _type_value(r["type"]) == txn_type]


def sum_by_type(
    records: Iterable[Mapping[str, Any]], txn_type: str, usd_to_cad: Decimal
) -> Decimal:
    return sum(
        (to_cad(r["amount"], r.get("currency"), usd_to_cad) for r in of_type(records, txn_type)),
        ZERO,
    )


def category_totals(
    records: Iterable[Mapping[str, Any]], txn_type: str, usd_to_cad: Decimal
) -> dict[str, dict[str, Any]]:
    totals: dict[str, dict[str, Any]] = {}
    for record in of_type(records, txn_type):
        bucket = totals.setdefault(record["category"], {"amount": ZERO, "count": 0})
        bucket["amount"] += to_cad(record["amount"], record.get("currency"), usd_to_cad)
        bucket["count"] += 1
    return totals


@dataclass(frozen=True)
class CashFlow:
    income: Decimal
    expenses: Decimal

    @property
    def savings(self) -> Decimal:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> Decimal:
        if self.income > 0:
            return self.savings / self.income * HUNDRED
        return ZERO


def cash_flow(
    records: Iterable[Mapping[str, Any]], usd_to_cad: Decimal
) -> CashFlow:
    rows = list(records)
    return CashFlow(
        income=sum_by_type(rows, "income", usd_to_cad),
        expenses=sum_by_type(rows, "expense", usd_to_cad),
    )


def percent_change(current: Decimal, previous: Decimal) -> Decimal:
    if previous > 0:
        return (current - previous) / previous * HUNDRED
    return ZERO


# JavaScript's Math.round on a binary double: floor(x + 0.5). Halves go
# toward +infinity (-2.5 -> -2) and 1.005 * 100 stays just below 100.5.
def _js_round(value: float) -> int:
    return math.floor(value + 0.5)


def round_currency(value: Decimal | int | float | str | None) -> float:
    return _js_round(float(coerce_amount(value)) * 100) / 100


def round_percent(value: Decimal | int | float | str | None) -> float:
    return _js_round(float(coerce_amount(value)) * 10) / 10


def round_ratio_percent(ratio: Decimal | int | float | str | None) -> float:
    """round(ratio * 1000) / 10: a ratio expressed as a one-decimal percentage."""
    return _js_round(float(coerce_amount(ratio)) * 1000) / 10


def round_whole(value: Decimal | int | float | str | None) -> int:
    return int(_js_round(float(coerce_amount(value))))


def optional_currency(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return round_currency(value)
