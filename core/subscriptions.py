"""
Recurring payment detection.

Eligible debits are grouped by business, then by amount (local amount, or
currency plus foreign amount), and each amount-group is scanned in date order.
Consecutive payments spaced within the monthly window extend a run; payments
arriving too soon are skipped; a longer gap closes the run and starts a new one.
"""
from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from functools import reduce
from typing import Dict, List, Optional, Tuple

from core.config import get_settings
from core.logger import setup_logger
from core.normalize import to_money
from core.schema import StandardTransaction, Subscription, SubscriptionPayment

logger = setup_logger(__name__)

Run = Tuple[StandardTransaction, ...]
RunState = Tuple[Tuple[Run, ...], Run]


class RunTransition(str, Enum):
    """What a new payment does to the run it is compared against."""
    EXTEND = "extend"
    SKIP = "skip"
    RESTART = "restart"


def classify_gap(gap_days: int, min_days: int, max_days: int) -> RunTransition:
    """
    Map the gap to the last confirmed payment of a run onto a transition.

    Args:
        gap_days: Days between the run's last payment and the candidate
        min_days: Shortest accepted interval (inclusive)
        max_days: Longest accepted interval (inclusive)

    Returns:
        SKIP below the window, EXTEND inside it, RESTART above it
    """
    if gap_days < min_days:
        return RunTransition.SKIP
    if gap_days <= max_days:
        return RunTransition.EXTEND
    return RunTransition.RESTART


def is_eligible(transaction: StandardTransaction) -> bool:
    """Debit card-style payments that may recur."""
    return (
        transaction.movement_type == "Debit"
        and not transaction.is_transfer
        and transaction.can_be_subscription
    )


def group_by_amount(
    transactions: List[StandardTransaction],
    foreign_tolerance: Decimal,
) -> List[List[StandardTransaction]]:
    """
    Split one business's transactions into amount-groups.

    Local-currency payments group by exact amount. Foreign-currency payments
    group by currency and join the first group of that currency whose
    reference amount is within foreign_tolerance, which absorbs FX rounding.

    Returns:
        Amount-groups in first-seen order
    """
    local_groups: Dict[Decimal, List[StandardTransaction]] = {}
    foreign_groups: List[Tuple[str, Decimal, List[StandardTransaction]]] = []
    ordered: List[List[StandardTransaction]] = []

    for t in transactions:
        fc = t.foreign_currency
        if fc is None:
            group = local_groups.get(t.amount)
            if group is None:
                group = local_groups[t.amount] = []
                ordered.append(group)
            group.append(t)
            continue

        for currency, reference, group in foreign_groups:
            if currency == fc.currency and abs(reference - fc.amount) <= foreign_tolerance:
                group.append(t)
                break
        else:
            group = [t]
            foreign_groups.append((fc.currency, fc.amount, group))
            ordered.append(group)

    return ordered


def _make_step(min_days: int, max_days: int):
    def step(state: RunState, transaction: StandardTransaction) -> RunState:
        closed, current = state
        if not current:
            return closed, (transaction,)

        gap = (transaction.date - current[-1].date).days
        transition = classify_gap(gap, min_days, max_days)
        if transition is RunTransition.EXTEND:
            return closed, current + (transaction,)
        if transition is RunTransition.SKIP:
            return closed, current
        return closed + (current,), (transaction,)

    return step


def build_runs(
    transactions: List[StandardTransaction],
    min_days: int,
    max_days: int,
) -> List[List[StandardTransaction]]:
    """
    Fold chronologically sorted payments of one amount-group into runs.

    Returns:
        Every run, including single-payment ones, in chronological order
    """
    ordered = sorted(transactions, key=lambda t: t.date)
    closed, current = reduce(_make_step(min_days, max_days), ordered, ((), ()))
    runs = closed + (current,) if current else closed
    return [list(run) for run in runs]


def build_subscription(
    business_name: str,
    run: List[StandardTransaction],
    now: date_type,
    active_days: int,
) -> Subscription:
    """Create an immutable Subscription from a qualifying run."""
    payments = [
        SubscriptionPayment(date=t.date, amount=t.amount, month_year=t.month_year, transaction=t)
        for t in run
    ]
    total = sum((p.amount for p in payments), Decimal("0"))
    last_payment = payments[-1].date

    return Subscription(
        business_name=business_name,
        payments=payments,
        average_amount=to_money(total / len(payments)),
        first_payment=payments[0].date,
        last_payment=last_payment,
        consecutive_months=len(payments),
        is_active=(now - last_payment).days <= active_days,
        foreign_currency=run[0].foreign_currency,
    )


def detect_subscriptions(
    transactions: List[StandardTransaction],
    now: Optional[date_type] = None,
    min_interval_days: Optional[int] = None,
    max_interval_days: Optional[int] = None,
    min_payments: Optional[int] = None,
    active_days: Optional[int] = None,
    foreign_tolerance: Optional[Decimal] = None,
) -> List[Subscription]:
    """
    Detect recurring monthly payments.

    Args:
        transactions: Standard transactions (any order)
        now: Reference date for the active flag (defaults to today)
        min_interval_days: Shortest gap that extends a run
        max_interval_days: Longest gap that extends a run
        min_payments: Payments a run needs to count as a subscription
        active_days: A subscription is active if its last payment is at most
            this many days before now
        foreign_tolerance: Allowed difference between foreign amounts of one group

    Returns:
        Subscriptions, most recent last payment first
    """
    settings = get_settings()
    now = now or date_type.today()
    min_days = min_interval_days if min_interval_days is not None else settings.subscription_min_interval_days
    max_days = max_interval_days if max_interval_days is not None else settings.subscription_max_interval_days
    min_payments = min_payments if min_payments is not None else settings.subscription_min_payments
    active_days = active_days if active_days is not None else settings.subscription_active_days
    if foreign_tolerance is None:
        foreign_tolerance = Decimal(str(settings.foreign_currency_tolerance))

    by_business: Dict[str, List[StandardTransaction]] = {}
    for t in transactions:
        if is_eligible(t):
            by_business.setdefault(t.business_name, []).append(t)

    subscriptions: List[Subscription] = []
    for business_name, txns in by_business.items():
        if len(txns) < min_payments:
            continue
        # Foreign amount-groups take their reference from the earliest payment
        chronological = sorted(txns, key=lambda t: (t.date, t.sequence))
        for amount_group in group_by_amount(chronological, foreign_tolerance):
            for run in build_runs(amount_group, min_days, max_days):
                if len(run) >= min_payments:
                    subscriptions.append(build_subscription(business_name, run, now, active_days))

    subscriptions.sort(key=lambda s: s.last_payment, reverse=True)
    logger.info(f"Detected {len(subscriptions)} subscriptions across {len(by_business)} eligible businesses")
    return subscriptions
