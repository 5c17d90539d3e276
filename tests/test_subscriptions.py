"""
Tests for recurring payment detection.
"""
from datetime import date
from decimal import Decimal

import pytest

from core.config import reset_settings
from core.schema import ForeignCurrency
from core.subscriptions import (
    RunTransition,
    build_runs,
    classify_gap,
    detect_subscriptions,
    group_by_amount,
    is_eligible,
)
from conftest import make_transaction

NOW = date(2024, 3, 20)


def monthly(business="Netflix", days=(date(2024, 1, 5), date(2024, 2, 4), date(2024, 3, 6)), amount="9.99"):
    return [make_transaction(business, day, amount) for day in days]


@pytest.mark.parametrize(
    "gap, expected",
    [
        (0, RunTransition.SKIP),
        (24, RunTransition.SKIP),
        (25, RunTransition.EXTEND),
        (30, RunTransition.EXTEND),
        (35, RunTransition.EXTEND),
        (36, RunTransition.RESTART),
        (90, RunTransition.RESTART),
    ],
)
def test_classify_gap(gap, expected):
    assert classify_gap(gap, 25, 35) is expected


class TestDetectSubscriptions:

    def test_monthly_sequence(self):
        (sub,) = detect_subscriptions(monthly(), now=NOW)

        assert sub.business_name == "Netflix"
        assert sub.consecutive_months == 3
        assert sub.first_payment == date(2024, 1, 5)
        assert sub.last_payment == date(2024, 3, 6)
        assert sub.average_amount == Decimal("9.99")
        assert sub.is_active is True
        assert [p.month_year for p in sub.payments] == ["Януари 2024", "Февруари 2024", "Март 2024"]

    def test_input_order_does_not_matter(self):
        forward = detect_subscriptions(monthly(), now=NOW)
        backward = detect_subscriptions(list(reversed(monthly())), now=NOW)
        assert forward == backward

    def test_early_payment_is_skipped_not_restarting(self):
        transactions = monthly(days=(date(2024, 1, 5), date(2024, 1, 20), date(2024, 2, 4)))
        (sub,) = detect_subscriptions(transactions, now=NOW)
        assert [p.date for p in sub.payments] == [date(2024, 1, 5), date(2024, 2, 4)]

    def test_trailing_early_payment_is_skipped(self):
        transactions = monthly(
            days=(date(2024, 1, 5), date(2024, 2, 4), date(2024, 3, 6), date(2024, 3, 20))
        )
        subs = detect_subscriptions(transactions, now=NOW)

        assert len(subs) == 1
        assert subs[0].consecutive_months == 3
        assert subs[0].last_payment == date(2024, 3, 6)
        assert date(2024, 3, 20) not in [p.date for p in subs[0].payments]

    def test_foreign_grouping_does_not_depend_on_input_order(self):
        transactions = [
            make_transaction("Netflix", day, "18.50", foreign=ForeignCurrency(amount=Decimal(fx), currency="USD"))
            for day, fx in (
                (date(2024, 1, 5), "10.02"),
                (date(2024, 2, 4), "10.00"),
                (date(2024, 3, 5), "10.04"),
            )
        ]
        forward = detect_subscriptions(transactions, now=NOW)
        backward = detect_subscriptions(list(reversed(transactions)), now=NOW)

        assert [s.consecutive_months for s in forward] == [3]
        assert backward == forward

    def test_long_gap_breaks_sequence(self):
        transactions = monthly(days=(date(2024, 1, 5), date(2024, 2, 14)))
        assert detect_subscriptions(transactions, now=NOW) == []

    def test_every_qualifying_run_is_reported(self):
        transactions = monthly(
            days=(date(2023, 9, 1), date(2023, 10, 1), date(2024, 1, 5), date(2024, 2, 4), date(2024, 3, 6))
        )
        subs = detect_subscriptions(transactions, now=NOW)
        assert [s.first_payment for s in subs] == [date(2024, 1, 5), date(2023, 9, 1)]
        assert [s.is_active for s in subs] == [True, False]

    def test_single_payment_is_not_a_subscription(self):
        assert detect_subscriptions(monthly(days=(date(2024, 3, 6),)), now=NOW) == []

    def test_inactive_after_45_days(self):
        (sub,) = detect_subscriptions(monthly(), now=date(2024, 4, 20))
        assert sub.is_active is True
        (sub,) = detect_subscriptions(monthly(), now=date(2024, 4, 21))
        assert sub.is_active is False

    def test_different_local_amounts_are_separate(self):
        transactions = [
            make_transaction("Spotify", date(2024, 1, 5), "9.99"),
            make_transaction("Spotify", date(2024, 2, 4), "10.99"),
        ]
        assert detect_subscriptions(transactions, now=NOW) == []

    def test_two_plans_of_one_business(self):
        transactions = monthly("Google") + monthly("Google", amount="1.99")
        subs = detect_subscriptions(transactions, now=NOW)
        assert sorted(s.average_amount for s in subs) == [Decimal("1.99"), Decimal("9.99")]

    def test_foreign_amounts_group_within_tolerance(self):
        usd = ForeignCurrency(amount=Decimal("9.99"), currency="USD")
        usd_rounded = ForeignCurrency(amount=Decimal("10.00"), currency="USD")
        transactions = [
            make_transaction("Netflix", date(2024, 1, 5), "18.20", foreign=usd),
            make_transaction("Netflix", date(2024, 2, 4), "18.35", foreign=usd_rounded),
        ]
        (sub,) = detect_subscriptions(transactions, now=NOW)
        assert sub.average_amount == Decimal("18.28")
        assert sub.foreign_currency == usd

    def test_foreign_currencies_do_not_mix(self):
        transactions = [
            make_transaction("Netflix", date(2024, 1, 5), "18.20", foreign=ForeignCurrency(amount=Decimal("9.99"), currency="USD")),
            make_transaction("Netflix", date(2024, 2, 4), "18.20", foreign=ForeignCurrency(amount=Decimal("9.99"), currency="EUR")),
        ]
        assert detect_subscriptions(transactions, now=NOW) == []

    @pytest.mark.parametrize(
        "overrides",
        [
            {"movement_type": "Credit"},
            {"account": "BG80BNBG96611020345678"},
            {"can_be_subscription": False},
        ],
    )
    def test_ineligible_transactions_ignored(self, overrides):
        transactions = [
            make_transaction("Netflix", day, "9.99", **overrides)
            for day in (date(2024, 1, 5), date(2024, 2, 4), date(2024, 3, 6))
        ]
        assert detect_subscriptions(transactions, now=NOW) == []

    def test_sorted_by_last_payment(self):
        transactions = monthly("Netflix") + monthly(
            "Spotify", days=(date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10))
        )
        subs = detect_subscriptions(transactions, now=NOW)
        assert [s.business_name for s in subs] == ["Spotify", "Netflix"]

    def test_min_payments_from_environment(self, monkeypatch):
        monkeypatch.setenv("SUBSCRIPTION_MIN_PAYMENTS", "3")
        reset_settings()
        two = monthly(days=(date(2024, 2, 4), date(2024, 3, 6)))
        assert detect_subscriptions(two, now=NOW) == []
        assert len(detect_subscriptions(monthly(), now=NOW)) == 1

    def test_explicit_window(self):
        weekly = monthly(days=(date(2024, 3, 1), date(2024, 3, 8), date(2024, 3, 15)))
        assert detect_subscriptions(weekly, now=NOW) == []
        (sub,) = detect_subscriptions(weekly, now=NOW, min_interval_days=6, max_interval_days=8)
        assert sub.consecutive_months == 3


def test_group_by_amount_keeps_first_seen_order():
    transactions = [
        make_transaction("X", date(2024, 1, 1), "5.00"),
        make_transaction("X", date(2024, 1, 2), "3.00"),
        make_transaction("X", date(2024, 1, 3), "5.00"),
    ]
    groups = group_by_amount(transactions, Decimal("0.02"))
    assert [[t.amount for t in g] for g in groups] == [
        [Decimal("5.00"), Decimal("5.00")],
        [Decimal("3.00")],
    ]


def test_build_runs_splits_on_restart():
    transactions = monthly(days=(date(2024, 1, 1), date(2024, 1, 31), date(2024, 5, 1)))
    runs = build_runs(transactions, 25, 35)
    assert [len(run) for run in runs] == [2, 1]
    assert build_runs([], 25, 35) == []


def test_is_eligible():
    assert is_eligible(make_transaction("Netflix", NOW))
    assert not is_eligible(make_transaction("Netflix", NOW, movement_type="Credit"))
