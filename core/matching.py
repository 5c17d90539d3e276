"""
Merchant resolution for raw counterpart names.
Maps a counterpart name plus transaction reason to a canonical business,
then maps a business to a spending group.

Matching is deterministic: normalized substring tests against the merchant
database, ordered longest pattern first, with user overrides taking priority.
"""
from typing import Dict, List, Optional, Tuple

from core.db import MappingStore
from core.logger import setup_logger
from core.merchants import DEFAULT_GROUP, MerchantDatabase
from core.normalize import clean_business_name, normalize_text
from core.schema import BusinessInfo, StandardTransaction

logger = setup_logger(__name__)

BANK_FEES_NAME = "Банкови такси"
UNNAMED_BUSINESS = "Без име"

# Lower-cased reason markers for fees and cash deposits
FEE_MARKERS: Tuple[str, ...] = ("такса", "вн.на пари")

# Keyword families checked against the lower-cased business name, in order
GROUP_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    (
        "Храна",
        (
            "sladkarnitsa", "сладкарница", "magazin", "hranitelni",
            "хранителни", "supermarket", "супермаркет",
        ),
    ),
    (
        "Ресторанти",
        (
            "pizza", "restorant", "restaurant", "ресторант", "kafe", "cafe",
            "bar", "coffee", "bistro", "pizzeria", "kebab", "fast food", "food",
        ),
    ),
    ("Почивки", ("hotel", "хотел")),
]


def normalize_string(text: Optional[str]) -> str:
    """
    Normalize string for matching: transliterate, upper-case, collapse spaces.

    Args:
        text: Input string

    Returns:
        Normalized string
    """
    if not text or not isinstance(text, str):
        return ""

    return " ".join(normalize_text(text).split())


class MerchantResolver:
    """
    Resolves counterpart names against the merchant database and user overrides.

    The mapping tables are a snapshot taken when the resolver is built; the
    resolver never reads or writes the store during a resolution pass.
    """

    def __init__(
        self,
        database: MerchantDatabase,
        custom_mappings: Optional[Dict[str, str]] = None,
        group_mappings: Optional[Dict[str, str]] = None,
    ):
        self.database = database
        self.custom_mappings: Dict[str, str] = dict(custom_mappings or {})
        self.group_mappings: Dict[str, str] = dict(group_mappings or {})
        self._normalized_patterns = [
            (merchant, [normalize_string(p) for p in merchant.patterns])
            for merchant in database.candidates
        ]

    @classmethod
    def from_store(cls, database: MerchantDatabase, store: MappingStore) -> "MerchantResolver":
        """Build a resolver from the current state of a mapping store."""
        return cls(
            database,
            custom_mappings=store.get_custom_mappings(),
            group_mappings=store.get_business_group_mappings(),
        )

    def resolve(self, opposite_side_name: Optional[str], reason: Optional[str]) -> BusinessInfo:
        """
        Resolve a counterpart name to a business.

        Order: fee marker in reason, empty name, exact custom mapping,
        merchant pattern, cleanup fallback. First match wins.

        Args:
            opposite_side_name: Raw counterpart name from the ledger
            reason: Free-text transaction reason

        Returns:
            BusinessInfo with name, subscription eligibility and match source
        """
        lowercase_reason = (reason or "").lower()
        if any(marker in lowercase_reason for marker in FEE_MARKERS):
            return BusinessInfo(name=BANK_FEES_NAME, can_be_subscription=False, source="fee")

        if not opposite_side_name or not opposite_side_name.strip():
            return BusinessInfo(name=UNNAMED_BUSINESS, can_be_subscription=True, source="unnamed")

        # Exact, case-sensitive key; custom names are always subscription-eligible
        custom_name = self.custom_mappings.get(opposite_side_name)
        if custom_name:
            return BusinessInfo(name=custom_name, can_be_subscription=True, source="custom")

        normalized_input = normalize_string(opposite_side_name)
        for merchant, patterns in self._normalized_patterns:
            for pattern in patterns:
                if pattern in normalized_input:
                    return BusinessInfo(
                        name=merchant.name,
                        can_be_subscription=merchant.can_be_subscription,
                        source="merchant",
                    )

        cleaned = clean_business_name(opposite_side_name)
        logger.debug(f"No merchant pattern matched, using cleaned name '{cleaned}'")
        return BusinessInfo(name=cleaned, can_be_subscription=True, source="fallback")

    def resolve_group(self, business_name: str) -> str:
        """
        Resolve the spending group of a business.

        Order: explicit business-to-group override, merchant database category,
        keyword heuristics on the name, then the default group.

        Args:
            business_name: Resolved business name

        Returns:
            Group name
        """
        override = self.group_mappings.get(business_name)
        if override:
            return override

        category = self.database.category_by_name.get(business_name)
        if category:
            return category

        lowercase_name = business_name.lower()
        for group, keywords in GROUP_KEYWORDS:
            if any(keyword in lowercase_name for keyword in keywords):
                return group

        return DEFAULT_GROUP

    def apply(self, transaction: StandardTransaction) -> StandardTransaction:
        """
        Re-resolve a cached transaction without touching its ledger fields.

        Entries with a destination account stay ineligible for subscriptions.
        """
        info = self.resolve(transaction.opposite_side_name, transaction.reason)
        return transaction.model_copy(
            update={
                "business_name": info.name,
                "can_be_subscription": info.can_be_subscription and not transaction.is_transfer,
                "match_source": info.source,
            }
        )
