"""
Bank ledger parsing.
Each supported bank implements the BankAdapter contract; the registry tries
adapters in registration order and uses the first that claims the input.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from xml.etree import ElementTree as ET

from core.exceptions import ParseError, UnsupportedFormatError
from core.logger import setup_logger
from core.matching import MerchantResolver
from core.normalize import (
    extract_foreign_currency,
    get_month_year,
    parse_amount,
    parse_ledger_date,
)
from core.schema import StandardTransaction

logger = setup_logger(__name__)

# Reasons of transfers between the account holder's own accounts
INTERNAL_TRANSFER_REASONS = {
    "ТРАНСФЕР МЕЖДУ СВОИ СМЕТКИ",
    "ПРЕВОД МЕЖДУ МОИ СМЕТКИ",
}

MOVEMENT_TYPES = {"Debit", "Credit"}


def _local_name(tag: str) -> str:
    """Strip an XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _text(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def is_internal_transfer(reason: str) -> bool:
    """True for account-to-account transfers of the same holder."""
    return reason.strip().upper() in INTERNAL_TRANSFER_REASONS


class BankAdapter(ABC):
    """Contract every bank-specific ledger parser implements."""

    bank_id: str = ""
    bank_name: str = ""

    @abstractmethod
    def can_handle(self, raw_ledger: str) -> bool:
        """Cheap structural sniff; must return False on ambiguous input."""

    @abstractmethod
    def parse_ledger(self, raw_ledger: str, resolver: MerchantResolver) -> List[StandardTransaction]:
        """Parse the full ledger into standard transactions."""


class DSKBankAdapter(BankAdapter):
    """
    DSK Bank (Банка ДСК) XML export.

    Layout: an <AccountMovements> root holding <AccountMovement> entries with
    Amount, ValueDate, OppositeSideName, OppositeSideAccount (optional),
    MovementType and Reason children.
    """

    bank_id = "dsk"
    bank_name = "Банка ДСК"

    ROOT_TAG = "AccountMovements"
    ENTRY_TAG = "AccountMovement"
    REQUIRED_FIELDS = ("Amount", "ValueDate", "MovementType", "OppositeSideName")

    def can_handle(self, raw_ledger: str) -> bool:
        if not raw_ledger or not isinstance(raw_ledger, str):
            return False

        has_root = f"<{self.ROOT_TAG}" in raw_ledger or f":{self.ROOT_TAG}" in raw_ledger
        has_entry = (
            f"<{self.ENTRY_TAG}>" in raw_ledger
            or f"<{self.ENTRY_TAG} " in raw_ledger
            or f":{self.ENTRY_TAG}>" in raw_ledger
            or f":{self.ENTRY_TAG} " in raw_ledger
        )
        return has_root and has_entry

    def parse_ledger(self, raw_ledger: str, resolver: MerchantResolver) -> List[StandardTransaction]:
        """
        Parse a DSK export.

        Args:
            raw_ledger: XML text
            resolver: Merchant resolver built from the current mapping snapshot

        Returns:
            Standard transactions in ledger order, internal transfers removed

        Raises:
            ParseError: If the XML is malformed, the root is missing, or an
                entry lacks a required field
        """
        try:
            root = ET.fromstring(raw_ledger)
        except ET.ParseError as e:
            raise ParseError("Ledger is not well-formed XML", details={"error": str(e)})

        if _local_name(root.tag) != self.ROOT_TAG:
            raise ParseError(
                f"Missing <{self.ROOT_TAG}> root element",
                details={"root": _local_name(root.tag)},
            )

        entries = [child for child in root if _local_name(child.tag) == self.ENTRY_TAG]
        transactions: List[StandardTransaction] = []
        skipped_transfers = 0

        for index, entry in enumerate(entries, 1):
            transaction = self._parse_entry(entry, index, resolver)
            if is_internal_transfer(transaction.reason):
                skipped_transfers += 1
                continue
            transactions.append(transaction)

        logger.info(
            f"Parsed {len(entries)} {self.bank_id} ledger entries "
            f"({skipped_transfers} internal transfers removed)"
        )
        return transactions

    def _parse_entry(
        self,
        entry: ET.Element,
        index: int,
        resolver: MerchantResolver,
    ) -> StandardTransaction:
        missing = [name for name in self.REQUIRED_FIELDS if _child(entry, name) is None]
        if missing:
            raise ParseError(
                f"Ledger entry {index} is missing required fields",
                details={"entry": index, "missing_fields": missing},
            )

        amount_raw = _text(_child(entry, "Amount"))
        date_raw = _text(_child(entry, "ValueDate"))
        movement_type = _text(_child(entry, "MovementType"))
        opposite_side_name = _text(_child(entry, "OppositeSideName"))
        opposite_side_account = _text(_child(entry, "OppositeSideAccount"))
        reason = _text(_child(entry, "Reason"))

        try:
            amount = parse_amount(amount_raw)
        except ValueError as e:
            raise ParseError(
                f"Ledger entry {index} has an invalid amount",
                details={"entry": index, "amount": amount_raw, "error": str(e)},
            )

        try:
            value_date = parse_ledger_date(date_raw)
        except ValueError as e:
            raise ParseError(
                f"Ledger entry {index} has an invalid value date",
                details={"entry": index, "value_date": date_raw, "error": str(e)},
            )

        if movement_type not in MOVEMENT_TYPES:
            raise ParseError(
                f"Ledger entry {index} has an unknown movement type",
                details={"entry": index, "movement_type": movement_type},
            )

        info = resolver.resolve(opposite_side_name, reason)

        return StandardTransaction(
            raw_date=date_raw,
            date=value_date,
            amount=amount,
            movement_type=movement_type,
            opposite_side_name=opposite_side_name,
            opposite_side_account=opposite_side_account,
            business_name=info.name,
            # A destination account means a bank transfer, not a card purchase
            can_be_subscription=info.can_be_subscription and not opposite_side_account,
            month_year=get_month_year(value_date),
            reason=reason,
            foreign_currency=extract_foreign_currency(reason),
            match_source=info.source,
            sequence=index,
        )


class BankAdapterRegistry:
    """Ordered collection of bank adapters."""

    def __init__(self, adapters: Optional[List[BankAdapter]] = None):
        self._adapters: List[BankAdapter] = list(adapters or [])

    def register(self, adapter: BankAdapter) -> None:
        self._adapters.append(adapter)

    def get_all(self) -> List[BankAdapter]:
        return list(self._adapters)

    def get_by_id(self, bank_id: str) -> Optional[BankAdapter]:
        for adapter in self._adapters:
            if adapter.bank_id == bank_id:
                return adapter
        return None

    def find_adapter(self, raw_ledger: str) -> Optional[BankAdapter]:
        """Return the first adapter that claims the ledger, if any."""
        for adapter in self._adapters:
            if adapter.can_handle(raw_ledger):
                return adapter
        return None

    def require_adapter(self, raw_ledger: str) -> BankAdapter:
        """
        Like find_adapter, but fails when nothing claims the ledger.

        Raises:
            UnsupportedFormatError: If no registered adapter recognizes the input
        """
        adapter = self.find_adapter(raw_ledger)
        if adapter is None:
            supported = ", ".join(a.bank_name for a in self._adapters) or "none"
            raise UnsupportedFormatError(
                f"Unsupported bank format. Currently supported: {supported}",
                details={"supported_banks": [a.bank_id for a in self._adapters]},
            )
        return adapter


def default_registry() -> BankAdapterRegistry:
    """Registry with every built-in bank adapter."""
    return BankAdapterRegistry([DSKBankAdapter()])
