"""
Merchant database loading.
The static database ships as core/data/merchants.json, shaped {category: [merchant, ...]},
and is loaded once at process start. Categories double as default spending groups.
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.config import get_settings
from core.exceptions import ConfigurationError
from core.logger import setup_logger
from core.normalize import normalize_text
from core.schema import Merchant

logger = setup_logger(__name__)

DEFAULT_MERCHANTS_FILE = Path(__file__).parent / "data" / "merchants.json"

DEFAULT_GROUP = "Други"

DEFAULT_GROUPS: List[str] = [
    "Храна",
    "Техника",
    "Жилище",
    "Битови",
    "Транспорт",
    "Развлечения",
    "Ресторанти",
    "Онлайн пазаруване",
    "Здраве",
    "Облекло",
    "Почивки",
    DEFAULT_GROUP,
]


class MerchantDatabase:
    """Read-only collection of known merchants."""

    def __init__(self, merchants: List[Merchant]):
        self.merchants: List[Merchant] = list(merchants)
        # Longest normalized pattern first; sorted() is stable, so file order breaks ties
        self.candidates: List[Merchant] = sorted(
            self.merchants,
            key=lambda m: max(len(normalize_text(p)) for p in m.patterns),
            reverse=True,
        )
        self.category_by_name: Dict[str, str] = {}
        for merchant in self.merchants:
            self.category_by_name.setdefault(merchant.name, merchant.category)

    def __len__(self) -> int:
        return len(self.merchants)

    @classmethod
    def from_config(cls, config: Dict[str, List[Dict[str, Any]]]) -> "MerchantDatabase":
        """
        Build a database from the {category: [merchant, ...]} structure.

        Args:
            config: Parsed merchants.json content

        Returns:
            MerchantDatabase instance

        Raises:
            ConfigurationError: If an entry is missing fields or ids repeat
        """
        if not isinstance(config, dict):
            raise ConfigurationError(
                "Merchant configuration must be an object keyed by category",
                details={"type": type(config).__name__},
            )

        merchants: List[Merchant] = []
        seen_ids = set()
        for category, entries in config.items():
            for entry in entries:
                try:
                    merchant = Merchant.model_validate(entry)
                except PydanticValidationError as e:
                    raise ConfigurationError(
                        f"Invalid merchant entry in category '{category}'",
                        details={"entry": entry, "error": str(e)},
                    )
                if merchant.id in seen_ids:
                    raise ConfigurationError(
                        f"Duplicate merchant id: {merchant.id}",
                        details={"category": category},
                    )
                seen_ids.add(merchant.id)
                merchants.append(merchant)

        return cls(merchants)

    @classmethod
    def from_file(cls, path: Path) -> "MerchantDatabase":
        """
        Load the database from a JSON file.

        A missing file yields an empty database so the resolver falls back to
        name cleanup for every counterpart.
        """
        if not path.exists():
            logger.warning(f"Merchants file not found: {path}")
            logger.warning("All counterpart names will be resolved by cleanup only")
            return cls([])

        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Merchants file is not valid JSON: {path}",
                details={"error": str(e)},
            )

        database = cls.from_config(config)
        logger.info(f"Loaded {len(database)} merchants from {path.name}")
        return database


_database: Optional[MerchantDatabase] = None


def get_merchant_database() -> MerchantDatabase:
    """Get the process-wide merchant database, loading it on first use."""
    global _database
    if _database is None:
        override = get_settings().merchants_file
        _database = MerchantDatabase.from_file(Path(override) if override else DEFAULT_MERCHANTS_FILE)
    return _database


def reset_merchant_database() -> None:
    """Drop the cached database (useful for testing)."""
    global _database
    _database = None
