"""
Pydantic models for the analysis pipeline.
Every ledger is converted into these types at the adapter boundary; no
downstream component sees raw XML elements.
"""
from datetime import date as date_type
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator

MovementType = Literal["Debit", "Credit"]
MatchSource = Literal["fee", "unnamed", "custom", "merchant", "fallback"]


def normalize_version(v):
    """Accept numeric versions written by hand-edited bundles."""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class ForeignCurrency(BaseModel):
    """Foreign-currency amount found in a transaction reason."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    currency: str


class Merchant(BaseModel):
    """One entry of the static merchant database."""
    model_config = ConfigDict(frozen=True)

    id: str
    patterns: List[str] = Field(..., min_length=1)
    name: str
    category: str
    can_be_subscription: bool = Field(
        default=False,
        validation_alias=AliasChoices("canBeSubscription", "can_be_subscription"),
    )

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v):
        """Reject blank patterns, which would match every counterpart."""
        if any(not p.strip() for p in v):
            raise ValueError("Merchant patterns cannot be blank")
        return v


class BusinessInfo(BaseModel):
    """Resolved business for a raw counterpart name."""
    model_config = ConfigDict(frozen=True)

    name: str
    can_be_subscription: bool
    source: MatchSource


class StandardTransaction(BaseModel):
    """Bank-agnostic transaction record produced by a bank adapter."""

    raw_date: str
    date: date_type
    amount: Decimal = Field(..., ge=0)
    movement_type: MovementType
    opposite_side_name: str
    opposite_side_account: str = ""
    business_name: str
    can_be_subscription: bool
    month_year: str
    reason: str = ""
    foreign_currency: Optional[ForeignCurrency] = None
    match_source: MatchSource = "fallback"
    # Position of the entry in the source ledger
    sequence: int = 0

    @field_validator("amount")
    @classmethod
    def round_to_cents(cls, v):
        """Amounts are kept in cents so every aggregate sums to the same total."""
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def is_transfer(self) -> bool:
        """True when the entry carries a destination account reference."""
        return bool(self.opposite_side_account.strip())


class MonthlySpending(BaseModel):
    month: str
    amount: Decimal
    transactions: List[StandardTransaction] = Field(default_factory=list)


class BusinessSpending(BaseModel):
    name: str
    original_names: List[str] = Field(default_factory=list)
    group: str
    amount: Decimal
    transactions: List[StandardTransaction] = Field(default_factory=list)


class MonthlyChartPoint(BaseModel):
    """Income and expenses of one month, for charting."""
    month: str
    date: date_type
    income: Decimal
    expenses: Decimal


class Totals(BaseModel):
    total_spent: Decimal
    total_income: Decimal
    net_balance: Decimal


class SubscriptionPayment(BaseModel):
    """One matched occurrence within a recurring sequence."""
    model_config = ConfigDict(frozen=True)

    date: date_type
    amount: Decimal
    month_year: str
    transaction: StandardTransaction


class Subscription(BaseModel):
    """
    A detected recurring payment sequence.

    Built once per qualifying run during detection and never mutated; every
    re-analysis discards and rebuilds the list.
    """
    model_config = ConfigDict(frozen=True)

    business_name: str
    payments: List[SubscriptionPayment] = Field(..., min_length=2)
    average_amount: Decimal
    first_payment: date_type
    last_payment: date_type
    consecutive_months: int
    is_active: bool
    foreign_currency: Optional[ForeignCurrency] = None


class AnalysisResult(BaseModel):
    """Everything the presentation layer needs for one ledger."""
    bank_id: str = ""
    total_spent: Decimal
    total_income: Decimal
    net_balance: Decimal
    monthly_spending: List[MonthlySpending]
    business_spending: List[BusinessSpending]
    subscriptions: List[Subscription]
    transactions: List[StandardTransaction]
    monthly_chart_data: List[MonthlyChartPoint]
    unmapped_businesses: List[str] = Field(default_factory=list)


class SettingsBundle(BaseModel):
    """
    Export/import bundle for the persisted mapping tables.

    Accepts both the camelCase keys written by earlier exports and the
    snake_case field names. Sections left as None are not applied on import.
    """
    model_config = ConfigDict(populate_by_name=True)

    version: Annotated[str, BeforeValidator(normalize_version)] = Field(..., min_length=1)
    export_date: Optional[str] = Field(default=None, alias="exportDate")
    custom_business_mappings: Optional[Dict[str, str]] = Field(
        default=None, alias="customBusinessMappings"
    )
    custom_groups: Optional[List[str]] = Field(default=None, alias="customGroups")
    business_group_mappings: Optional[Dict[str, str]] = Field(
        default=None, alias="businessGroupMappings"
    )
