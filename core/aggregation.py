"""
Transaction aggregation by month and by business, plus global totals.
Only Debit transactions count as spending; only Credit counts as income.
Sums are accumulated as Decimal and quantized to 2 places on output.
"""
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from core.logger import setup_logger
from core.merchants import DEFAULT_GROUP
from core.normalize import to_money
from core.schema import (
    BusinessSpending,
    MonthlyChartPoint,
    MonthlySpending,
    StandardTransaction,
    Totals,
)

logger = setup_logger(__name__)


def _debits(transactions: List[StandardTransaction]) -> List[StandardTransaction]:
    return [t for t in transactions if t.movement_type == "Debit"]


def aggregate_by_month(transactions: List[StandardTransaction]) -> List[MonthlySpending]:
    """
    Sum spending per month-year key.

    Args:
        transactions: Standard transactions

    Returns:
        Monthly buckets, most recent first by the date of each bucket's first
        transaction
    """
    buckets: Dict[str, List[StandardTransaction]] = {}
    for t in _debits(transactions):
        buckets.setdefault(t.month_year, []).append(t)

    monthly = [
        MonthlySpending(
            month=month,
            amount=to_money(sum((t.amount for t in txns), Decimal("0"))),
            transactions=txns,
        )
        for month, txns in buckets.items()
    ]
    monthly.sort(key=lambda m: m.transactions[0].date, reverse=True)
    return monthly


def aggregate_income_expense_by_month(transactions: List[StandardTransaction]) -> List[MonthlyChartPoint]:
    """Income and expenses per month, oldest first, for charting."""
    points: Dict[str, Dict] = {}
    for t in transactions:
        point = points.setdefault(
            t.month_year,
            {"month": t.month_year, "date": t.date, "income": Decimal("0"), "expenses": Decimal("0")},
        )
        if t.movement_type == "Credit":
            point["income"] += t.amount
        else:
            point["expenses"] += t.amount

    chart = [
        MonthlyChartPoint(
            month=p["month"],
            date=p["date"],
            income=to_money(p["income"]),
            expenses=to_money(p["expenses"]),
        )
        for p in points.values()
    ]
    chart.sort(key=lambda p: p.date)
    return chart


def aggregate_by_business(
    transactions: List[StandardTransaction],
    group_resolver: Optional[Callable[[str], str]] = None,
) -> List[BusinessSpending]:
    """
    Sum spending per resolved business name.

    Transactions whose raw counterpart names differ but resolve to the same
    business are merged; every distinct raw name is kept in original_names.

    Args:
        transactions: Standard transactions
        group_resolver: Maps a business name to its group; the default group
            is used when omitted

    Returns:
        Businesses by descending amount, ties in first-seen order
    """
    buckets: Dict[str, Dict] = {}
    for t in _debits(transactions):
        bucket = buckets.setdefault(
            t.business_name,
            {"original_names": [], "amount": Decimal("0"), "transactions": []},
        )
        if t.opposite_side_name not in bucket["original_names"]:
            bucket["original_names"].append(t.opposite_side_name)
        bucket["amount"] += t.amount
        bucket["transactions"].append(t)

    businesses = [
        BusinessSpending(
            name=name,
            original_names=bucket["original_names"],
            group=group_resolver(name) if group_resolver else DEFAULT_GROUP,
            amount=to_money(bucket["amount"]),
            transactions=bucket["transactions"],
        )
        for name, bucket in buckets.items()
    ]
    # list.sort is stable, so equal totals keep input order
    businesses.sort(key=lambda b: b.amount, reverse=True)
    return businesses


def calculate_totals(transactions: List[StandardTransaction]) -> Totals:
    """
    Total spent, total income and net balance.

    Args:
        transactions: Standard transactions

    Returns:
        Totals where net_balance == total_income - total_spent
    """
    total_spent = Decimal("0")
    total_income = Decimal("0")

    for t in transactions:
        if t.movement_type == "Debit":
            total_spent += t.amount
        elif t.movement_type == "Credit":
            total_income += t.amount

    total_spent = to_money(total_spent)
    total_income = to_money(total_income)
    logger.debug(f"Totals over {len(transactions)} transactions: spent={total_spent} income={total_income}")

    return Totals(
        total_spent=total_spent,
        total_income=total_income,
        net_balance=total_income - total_spent,
    )
