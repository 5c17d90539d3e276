"""
Text and value normalization.
Handles Cyrillic transliteration, merchant name cleanup, localized amounts,
ledger dates and embedded foreign-currency amounts.
"""
import re
from datetime import date as date_type
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from core.logger import setup_logger
from core.schema import ForeignCurrency

logger = setup_logger(__name__)

CENTS = Decimal("0.01")

# Bulgarian Cyrillic to Latin, applied after upper-casing
TRANSLITERATION_MAP: Dict[str, str] = {
    "А": "A",
    "Б": "B",
    "В": "V",
    "Г": "G",
    "Д": "D",
    "Е": "E",
    "Ж": "ZH",
    "З": "Z",
    "И": "I",
    "Й": "Y",
    "К": "K",
    "Л": "L",
    "М": "M",
    "Н": "N",
    "О": "O",
    "П": "P",
    "Р": "R",
    "С": "S",
    "Т": "T",
    "У": "U",
    "Ф": "F",
    "Х": "H",
    "Ц": "TS",
    "Ч": "CH",
    "Ш": "SH",
    "Щ": "SHT",
    "Ъ": "A",
    "Ь": "Y",
    "Ю": "YU",
    "Я": "YA",
}

# Longest first so "STARA ZAGORA" wins over any shorter prefix
BULGARIAN_CITIES: List[str] = sorted(
    [
        "SOFIA", "SOFIYA", "SOFIQ", "СОФИЯ",
        "VARNA", "ВАРНА",
        "BURGAS", "БУРГАС",
        "PLOVDIV", "ПЛОВДИВ",
        "RUSE", "РУСЕ",
        "STARA ZAGORA", "СТАРА ЗАГОРА",
        "PLEVEN", "ПЛЕВЕН",
        "SLIVEN", "СЛИВЕН",
        "DOBRICH", "ДОБРИЧ",
        "SHUMEN", "ШУМЕН",
        "PERNIK", "ПЕРНИК",
        "HASKOVO", "ХАСКОВО",
        "YAMBOL", "ЯМБОЛ",
        "PAZARDZHIK", "ПАЗАРДЖИК",
        "BLAGOEVGRAD", "БЛАГОЕВГРАД",
        "VELIKO TARNOVO", "ВЕЛИКО ТЪРНОВО",
        "VRACA", "ВРАЦА",
    ],
    key=len,
    reverse=True,
)

# ISO 3166 alpha-3 codes that card processors put in front of merchant names
COUNTRY_CODE_PREFIXES = {
    "BGR", "LUX", "DEU", "FRA", "USA", "GBR", "IRL", "NLD", "ITA", "ESP",
    "AUT", "CHE", "BEL", "PRT", "GRC", "ROU", "TUR", "POL", "CZE", "SVK",
    "HUN", "SRB", "MKD", "HRV", "SVN", "CYP", "MLT", "SWE", "DNK", "FIN",
    "NOR", "EST", "LVA", "LTU", "CAN", "AUS", "CHN", "JPN", "SGP", "HKG",
    "ARE", "ISR", "UKR",
}

# Bulgarian and international legal-entity suffixes, longest first
LEGAL_SUFFIXES: List[str] = sorted(
    ["EOOD", "OOD", "EAD", "AD", "LTD", "ЕООД", "ООД", "ЕАД", "АД"],
    key=len,
    reverse=True,
)

COUNTRY_NAME_SUFFIXES: List[str] = ["BULGARIA", "БЪЛГАРИЯ"]

MIN_CLEAN_NAME_LENGTH = 3

BULGARIAN_MONTHS: List[str] = [
    "Януари",
    "Февруари",
    "Март",
    "Април",
    "Май",
    "Юни",
    "Юли",
    "Август",
    "Септември",
    "Октомври",
    "Ноември",
    "Декември",
]

FOREIGN_CURRENCY_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(USD|EUR|GBP)\b", re.IGNORECASE)


def normalize_text(text: Optional[str]) -> str:
    """
    Upper-case and transliterate text for alphabet-agnostic matching.

    Args:
        text: Input string

    Returns:
        Upper-cased Latin string; empty string for empty input
    """
    if not text:
        return ""

    return "".join(TRANSLITERATION_MAP.get(char, char) for char in text.upper()).strip()


def _strip_country_code(name: str) -> str:
    # Known ISO alpha-3 codes only; an arbitrary three-letter first word is kept
    parts = name.split(None, 1)
    if len(parts) == 2 and parts[0].upper() in COUNTRY_CODE_PREFIXES:
        return parts[1]
    return name


def _strip_city_prefix(name: str) -> str:
    for city in BULGARIAN_CITIES:
        stripped = re.sub(rf"^{re.escape(city)}\s+", "", name, flags=re.IGNORECASE)
        if stripped != name:
            return stripped
    return name


def _strip_suffixes(name: str, suffixes: List[str]) -> str:
    for suffix in suffixes:
        name = re.sub(rf"\s+{re.escape(suffix)}$", "", name, flags=re.IGNORECASE)
    return name


def clean_business_name(name: str) -> str:
    """
    Clean up a raw counterpart name that matched no merchant pattern.

    Strips a leading country code, a leading city name, trailing legal-entity
    suffixes and a trailing country name, then title-cases the words. Only
    codes listed in COUNTRY_CODE_PREFIXES are stripped, so a leading
    three-letter word such as "THE" or "BAR" stays part of the name.

    Args:
        name: Raw counterpart name, e.g. "BGR SOFIA EXAMPLE EOOD"

    Returns:
        Readable business name, e.g. "Example". The original input is returned
        when cleanup leaves fewer than three characters.
    """
    cleaned = _strip_country_code(name.strip())
    cleaned = _strip_city_prefix(cleaned)
    cleaned = _strip_suffixes(cleaned, LEGAL_SUFFIXES)
    cleaned = _strip_suffixes(cleaned, COUNTRY_NAME_SUFFIXES)
    cleaned = cleaned.strip()

    if len(cleaned) < MIN_CLEAN_NAME_LENGTH:
        return name

    return " ".join(
        word[:1].upper() + word[1:] for word in cleaned.lower().split(" ")
    )


def parse_amount(value: Any) -> Decimal:
    """
    Parse a localized ledger amount ("1 234,56") into a non-negative Decimal.

    Args:
        value: Raw amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If the value has no numeric content
    """
    if value is None:
        raise ValueError("Amount is missing")

    amount_str = str(value).strip().replace(" ", "").replace("\xa0", "")
    if not amount_str:
        raise ValueError("Amount is empty")

    # With both separators present the dot is a thousands separator
    if "," in amount_str and "." in amount_str:
        amount_str = amount_str.replace(".", "")
    amount_str = amount_str.replace(",", ".")

    try:
        result = Decimal(amount_str)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: '{value}'")

    if not result.is_finite():
        raise ValueError(f"Invalid amount: '{value}'")

    if result < 0:
        logger.warning(f"Negative amount detected: {result}, using absolute value")
        return abs(result)
    return result


def parse_ledger_date(value: str) -> date_type:
    """
    Parse a DD.MM.YYYY ledger date.

    Raises:
        ValueError: If the string is not a valid DD.MM.YYYY date
    """
    return datetime.strptime(value.strip(), "%d.%m.%Y").date()


def get_month_year(value: date_type) -> str:
    """Return the Bulgarian month-year grouping key, e.g. "Март 2024"."""
    return f"{BULGARIAN_MONTHS[value.month - 1]} {value.year}"


def extract_foreign_currency(text: Optional[str]) -> Optional[ForeignCurrency]:
    """
    Find a "NUMBER CURRENCY" amount such as "14.99 USD" or "10,00 eur".

    Args:
        text: Free-text transaction reason

    Returns:
        ForeignCurrency or None if the text holds no supported amount
    """
    if not text or not isinstance(text, str):
        return None

    match = FOREIGN_CURRENCY_PATTERN.search(text)
    if not match:
        return None

    amount = Decimal(match.group(1).replace(",", "."))
    return ForeignCurrency(amount=amount, currency=match.group(2).upper())


def to_money(value: Decimal) -> Decimal:
    """Quantize to the 2-decimal reporting precision."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)
