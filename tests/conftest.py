"""
Shared fixtures: ledger builders, a small merchant database and stores.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from core.config import reset_settings
from core.db import InMemoryMappingStore
from core.matching import MerchantResolver
from core.merchants import MerchantDatabase
from core.normalize import get_month_year
from core.schema import ForeignCurrency, StandardTransaction

MERCHANTS_CONFIG = {
    "Храна": [
        {"id": "lidl", "patterns": ["LIDL", "ЛИДЛ"], "name": "Lidl", "category": "Храна"},
        {"id": "billa", "patterns": ["BILLA"], "name": "Billa", "category": "Храна"},
    ],
    "Развлечения": [
        {"id": "netflix", "patterns": ["NETFLIX"], "name": "Netflix", "category": "Развлечения", "canBeSubscription": True},
        {"id": "spotify", "patterns": ["SPOTIFY"], "name": "Spotify", "category": "Развлечения", "canBeSubscription": True},
    ],
    "Техника": [
        {"id": "google", "patterns": ["GOOGLE"], "name": "Google", "category": "Техника", "canBeSubscription": True},
        {"id": "youtube", "patterns": ["GOOGLE YOUTUBE"], "name": "YouTube Premium", "category": "Развлечения", "canBeSubscription": True},
    ],
}


def movement(
    amount: str,
    value_date: str,
    name: str,
    movement_type: str = "Debit",
    reason: str = "Плащане с карта",
    account: Optional[str] = None,
) -> str:
    """Render one <AccountMovement> entry."""
    account_xml = f"<OppositeSideAccount>{account}</OppositeSideAccount>" if account is not None else ""
    return (
        "<AccountMovement>"
        f"<ValueDate>{value_date}</ValueDate>"
        f"<Amount>{amount}</Amount>"
        f"<MovementType>{movement_type}</MovementType>"
        f"<OppositeSideName>{name}</OppositeSideName>"
        f"{account_xml}"
        f"<Reason>{reason}</Reason>"
        "</AccountMovement>"
    )


def ledger(*movements: str) -> str:
    """Wrap entries in a DSK export document."""
    return '<?xml version="1.0" encoding="UTF-8"?>\n<AccountMovements>' + "".join(movements) + "</AccountMovements>"


def make_transaction(
    business: str,
    day: date,
    amount: str = "9.99",
    movement_type: str = "Debit",
    account: str = "",
    can_be_subscription: bool = True,
    foreign: Optional[ForeignCurrency] = None,
    name: Optional[str] = None,
) -> StandardTransaction:
    """Build a resolved transaction directly, bypassing the adapter."""
    return StandardTransaction(
        raw_date=day.strftime("%d.%m.%Y"),
        date=day,
        amount=Decimal(amount),
        movement_type=movement_type,
        opposite_side_name=name if name is not None else business.upper(),
        opposite_side_account=account,
        business_name=business,
        can_be_subscription=can_be_subscription,
        month_year=get_month_year(day),
        reason="",
        foreign_currency=foreign,
    )


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings per test, with storage under tmp_path."""
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "exports"))
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "settings.db"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def merchant_db() -> MerchantDatabase:
    return MerchantDatabase.from_config(MERCHANTS_CONFIG)


@pytest.fixture
def store() -> InMemoryMappingStore:
    return InMemoryMappingStore()


@pytest.fixture
def resolver(merchant_db) -> MerchantResolver:
    return MerchantResolver(merchant_db)
