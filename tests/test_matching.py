"""
Tests for merchant resolution and group lookup.
"""
from datetime import date

import pytest

from core.matching import BANK_FEES_NAME, UNNAMED_BUSINESS, MerchantResolver, normalize_string
from core.merchants import DEFAULT_GROUP, MerchantDatabase
from conftest import MERCHANTS_CONFIG, make_transaction


def test_normalize_string_collapses_spaces():
    assert normalize_string("  лидл   софия ") == "LIDL SOFIYA"
    assert normalize_string(None) == ""


class TestResolve:

    def test_fee_marker_in_reason(self, resolver):
        info = resolver.resolve("NETFLIX.COM", "Месечна ТАКСА обслужване")
        assert info.name == BANK_FEES_NAME
        assert info.can_be_subscription is False
        assert info.source == "fee"

    def test_cash_deposit_marker(self, resolver):
        info = resolver.resolve("", "Вн.на пари на каса")
        assert info.name == BANK_FEES_NAME

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_name_is_unnamed(self, resolver, name):
        info = resolver.resolve(name, "Плащане")
        assert info.name == UNNAMED_BUSINESS
        assert info.can_be_subscription is True
        assert info.source == "unnamed"

    def test_pattern_match_uses_merchant_flag(self, resolver):
        netflix = resolver.resolve("NETFLIX.COM AMSTERDAM", "")
        assert netflix.name == "Netflix"
        assert netflix.can_be_subscription is True
        assert netflix.source == "merchant"

        lidl = resolver.resolve("LIDL BULGARIA EOOD", "")
        assert lidl.name == "Lidl"
        assert lidl.can_be_subscription is False

    def test_pattern_match_is_alphabet_agnostic(self, resolver):
        assert resolver.resolve("Лидл София", "").name == "Lidl"
        assert resolver.resolve("billa sofia", "").name == "Billa"

    def test_longest_pattern_wins(self, resolver):
        # Both GOOGLE and GOOGLE YOUTUBE match; the longer pattern is more specific
        assert resolver.resolve("GOOGLE YOUTUBE PREMIUM", "").name == "YouTube Premium"
        assert resolver.resolve("GOOGLE CLOUD", "").name == "Google"

    def test_single_match_is_independent_of_order(self):
        forward = MerchantDatabase.from_config(MERCHANTS_CONFIG)
        backward = MerchantDatabase.from_config(
            {category: list(reversed(entries)) for category, entries in reversed(list(MERCHANTS_CONFIG.items()))}
        )
        for name in ("SPOTIFY AB", "BILLA 123", "LIDL VARNA"):
            assert MerchantResolver(forward).resolve(name, "") == MerchantResolver(backward).resolve(name, "")

    def test_custom_mapping_overrides_patterns(self, merchant_db):
        resolver = MerchantResolver(merchant_db, custom_mappings={"LIDL BULGARIA EOOD": "Супермаркет до нас"})
        info = resolver.resolve("LIDL BULGARIA EOOD", "")
        assert info.name == "Супермаркет до нас"
        assert info.can_be_subscription is True
        assert info.source == "custom"

    def test_custom_mapping_key_is_exact(self, merchant_db):
        resolver = MerchantResolver(merchant_db, custom_mappings={"LIDL BULGARIA EOOD": "Супермаркет до нас"})
        assert resolver.resolve("lidl bulgaria eood", "").name == "Lidl"

    def test_fee_marker_beats_custom_mapping(self, merchant_db):
        resolver = MerchantResolver(merchant_db, custom_mappings={"DSK": "Моята банка"})
        assert resolver.resolve("DSK", "такса поддръжка").name == BANK_FEES_NAME

    def test_fallback_cleans_name(self, resolver):
        info = resolver.resolve("BGR SOFIA EXAMPLE EOOD", "")
        assert info.name == "Example"
        assert info.can_be_subscription is True
        assert info.source == "fallback"

    def test_empty_database_falls_back(self):
        resolver = MerchantResolver(MerchantDatabase([]))
        assert resolver.resolve("NETFLIX.COM", "").source == "fallback"

    def test_resolve_does_not_mutate_mappings(self, merchant_db):
        mappings = {"A": "B"}
        resolver = MerchantResolver(merchant_db, custom_mappings=mappings)
        mappings["NETFLIX.COM"] = "Changed"
        assert resolver.resolve("NETFLIX.COM", "").name == "Netflix"


class TestResolveGroup:

    def test_override_wins(self, merchant_db):
        resolver = MerchantResolver(merchant_db, group_mappings={"Lidl": "Битови"})
        assert resolver.resolve_group("Lidl") == "Битови"

    def test_database_category(self, resolver):
        assert resolver.resolve_group("Netflix") == "Развлечения"
        assert resolver.resolve_group("YouTube Premium") == "Развлечения"

    @pytest.mark.parametrize(
        "name, group",
        [
            ("Супермаркет Изток", "Храна"),
            ("Hranitelni Stoki", "Храна"),
            ("Pizza Napoli", "Ресторанти"),
            ("Coffee Heaven", "Ресторанти"),
            ("Hotel Rila", "Почивки"),
        ],
    )
    def test_keyword_heuristics(self, resolver, name, group):
        assert resolver.resolve_group(name) == group

    def test_default_group(self, resolver):
        assert resolver.resolve_group("Неизвестен") == DEFAULT_GROUP


def test_apply_keeps_transfers_ineligible(merchant_db):
    transaction = make_transaction(
        "Old", date(2024, 1, 5), name="NETFLIX.COM", account="BG80BNBG96611020345678"
    )
    updated = MerchantResolver(merchant_db).apply(transaction)
    assert updated.business_name == "Netflix"
    assert updated.can_be_subscription is False
    assert updated.amount == transaction.amount
    assert transaction.business_name == "Old"


def test_from_store_snapshots_tables(merchant_db, store):
    store.set_custom_mappings({"NETFLIX.COM": "Филми"})
    resolver = MerchantResolver.from_store(merchant_db, store)
    store.set_custom_mappings({})
    assert resolver.resolve("NETFLIX.COM", "").name == "Филми"
