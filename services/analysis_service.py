"""
Analysis pipeline orchestration.
Ledger text -> bank adapter -> standard transactions -> aggregation and
subscription detection -> AnalysisResult.
"""
from datetime import date as date_type
from typing import List, Optional

from core.aggregation import (
    aggregate_by_business,
    aggregate_by_month,
    aggregate_income_expense_by_month,
    calculate_totals,
)
from core.db import MappingStore
from core.logger import setup_logger
from core.matching import MerchantResolver
from core.merchants import MerchantDatabase, get_merchant_database
from core.parsing import BankAdapterRegistry, default_registry
from core.schema import AnalysisResult, StandardTransaction
from core.subscriptions import detect_subscriptions
from services.settings_service import SettingsService

logger = setup_logger(__name__)


class AnalysisService:
    """Runs the full analysis for a ledger and re-runs it after mapping edits."""

    def __init__(
        self,
        store: MappingStore,
        merchant_db: Optional[MerchantDatabase] = None,
        registry: Optional[BankAdapterRegistry] = None,
    ):
        """
        Initialize analysis service.

        Args:
            store: Persisted mapping tables
            merchant_db: Merchant database (defaults to the process-wide one)
            registry: Bank adapters (defaults to every built-in adapter)
        """
        self.store = store
        self.merchant_db = merchant_db if merchant_db is not None else get_merchant_database()
        self.registry = registry if registry is not None else default_registry()
        self.settings = SettingsService(store)

    def build_resolver(self) -> MerchantResolver:
        """Resolver over a fresh snapshot of the mapping tables."""
        return MerchantResolver.from_store(self.merchant_db, self.store)

    def analyze(self, raw_ledger: str, now: Optional[date_type] = None) -> AnalysisResult:
        """
        Parse and analyze a bank ledger export.

        Args:
            raw_ledger: Ledger file content
            now: Reference date for subscription activity (defaults to today)

        Returns:
            AnalysisResult

        Raises:
            UnsupportedFormatError: If no bank adapter recognizes the ledger
            ParseError: If the ledger or one of its entries is malformed
        """
        adapter = self.registry.require_adapter(raw_ledger)
        logger.info(f"Analyzing ledger with {adapter.bank_id} adapter")

        resolver = self.build_resolver()
        transactions = adapter.parse_ledger(raw_ledger, resolver)

        result = self.recompute(transactions, resolver, now)
        result.bank_id = adapter.bank_id
        return result

    def reclassify(
        self,
        transactions: List[StandardTransaction],
        now: Optional[date_type] = None,
        bank_id: str = "",
    ) -> AnalysisResult:
        """
        Re-resolve business names of cached transactions and recompute.

        Used after the user edits a mapping; the ledger is not parsed again.
        """
        resolver = self.build_resolver()
        updated = [resolver.apply(t) for t in transactions]
        result = self.recompute(updated, resolver, now)
        result.bank_id = bank_id
        return result

    def recompute(
        self,
        transactions: List[StandardTransaction],
        resolver: MerchantResolver,
        now: Optional[date_type] = None,
    ) -> AnalysisResult:
        """
        Aggregate and detect subscriptions over already-resolved transactions.

        Args:
            transactions: Standard transactions
            resolver: Resolver used for business group lookup
            now: Reference date for subscription activity

        Returns:
            AnalysisResult
        """
        # Cached transactions come back in display order; aggregate in ledger order
        transactions = sorted(transactions, key=lambda t: t.sequence)

        totals = calculate_totals(transactions)
        monthly_spending = aggregate_by_month(transactions)
        monthly_chart_data = aggregate_income_expense_by_month(transactions)
        business_spending = aggregate_by_business(transactions, resolver.resolve_group)
        subscriptions = detect_subscriptions(transactions, now=now)

        unmapped = sorted({
            t.business_name
            for t in transactions
            if t.movement_type == "Debit" and t.match_source == "fallback"
        })

        logger.info(
            f"Analysis complete: {len(transactions)} transactions, "
            f"{len(business_spending)} businesses, {len(subscriptions)} subscriptions"
        )

        return AnalysisResult(
            total_spent=totals.total_spent,
            total_income=totals.total_income,
            net_balance=totals.net_balance,
            monthly_spending=monthly_spending,
            business_spending=business_spending,
            subscriptions=subscriptions,
            # Stable sort keeps ledger order within a day
            transactions=sorted(transactions, key=lambda t: t.date, reverse=True),
            monthly_chart_data=monthly_chart_data,
            unmapped_businesses=unmapped,
        )
