from __future__ import annotations

from pathlib import Path
import sys
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.pricing.models import ExtractedRegion, FxRates
from app.pricing.normalizer import (
    exchange_rate_label,
    format_currency,
    normalize_price,
    normalize_record,
    round_half_up,
)
from app.pricing.regions import DEFAULT_PRICING_CONFIG

FX = FxRates(rates={"USD": 1.0, "HKD": 7.85, "JPY": 150.0, "EUR": 0.92}, source="live")

US = DEFAULT_PRICING_CONFIG.region("US")
HK = DEFAULT_PRICING_CONFIG.region("Hong Kong")
JP = DEFAULT_PRICING_CONFIG.region("Japan")
FR = DEFAULT_PRICING_CONFIG.region("France")


class TestNormalizePrice(unittest.TestCase):
    def test_japan_tax_inclusive_price_is_de_taxed(self) -> None:
        price_numeric, price_usd = normalize_price(968000, True, JP, FX)
        self.assertEqual(price_numeric, 880000)
        self.assertEqual(price_usd, 5867)

    def test_france_tax_inclusive_price_is_de_taxed(self) -> None:
        price_numeric, price_usd = normalize_price(7140, True, FR, FX)
        self.assertEqual(price_numeric, 5950)
        self.assertEqual(price_usd, 6467)

    def test_taxed_region_without_tax_flag_is_unchanged(self) -> None:
        price_numeric, _ = normalize_price(880000, False, JP, FX)
        self.assertEqual(price_numeric, 880000)

    def test_untaxed_regions_ignore_tax_flag(self) -> None:
        for region, raw in ((US, 5200), (HK, 41000)):
            for flag in (True, False):
                price_numeric, _ = normalize_price(raw, flag, region, FX)
                self.assertEqual(price_numeric, raw)

    def test_us_is_identity_conversion(self) -> None:
        self.assertEqual(normalize_price(5200, False, US, FX), (5200, 5200))

    def test_hong_kong_conversion(self) -> None:
        _, price_usd = normalize_price(41000, False, HK, FX)
        self.assertEqual(price_usd, 5223)

    def test_missing_or_zero_price_is_unavailable(self) -> None:
        for raw in (None, 0):
            self.assertEqual(normalize_price(raw, True, JP, FX), (None, None))

    def test_same_inputs_give_same_outputs(self) -> None:
        first = normalize_price(968000, True, JP, FX)
        for _ in range(5):
            self.assertEqual(normalize_price(968000, True, JP, FX), first)

    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(3.5), 4)
        self.assertEqual(round_half_up(2.49), 2)


class TestFormatting(unittest.TestCase):
    def test_format_currency(self) -> None:
        self.assertEqual(format_currency(5200, "USD"), "$5,200")
        self.assertEqual(format_currency(41000, "HKD"), "HK$41,000")
        self.assertEqual(format_currency(880000, "JPY"), "¥880,000")
        self.assertEqual(format_currency(5950, "EUR"), "€5,950")
        self.assertEqual(format_currency(1200, "GBP"), "1,200 GBP")
        self.assertIsNone(format_currency(None, "USD"))

    def test_exchange_rate_labels(self) -> None:
        self.assertEqual(exchange_rate_label(US, FX), "Base currency")
        self.assertEqual(exchange_rate_label(HK, FX), "1 USD = 7.85 HKD")
        self.assertEqual(exchange_rate_label(JP, FX), "1 USD = 150.0 JPY")
        self.assertEqual(exchange_rate_label(FR, FX), "1 EUR = 1.0870 USD")


class TestNormalizeRecord(unittest.TestCase):
    def test_missing_price_forces_unavailable(self) -> None:
        record = normalize_record(
            ExtractedRegion(region="France", raw_price=None, confidence="high", official_url="https://www.chanel.com/fr_FR/"),
            FR,
            FX,
        )
        self.assertIsNone(record.raw_price)
        self.assertIsNone(record.price_numeric)
        self.assertIsNone(record.price_usd)
        self.assertEqual(record.confidence, "unavailable")
        self.assertEqual(record.official_url, "https://www.chanel.com/fr_FR/")
        self.assertIsNone(record.local_price)

    def test_price_with_unavailable_label_is_kept_as_medium(self) -> None:
        record = normalize_record(
            ExtractedRegion(region="US", raw_price=5200, confidence="unavailable"),
            US,
            FX,
        )
        self.assertEqual(record.raw_price, 5200)
        self.assertEqual(record.confidence, "medium")

    def test_record_carries_display_fields(self) -> None:
        record = normalize_record(
            ExtractedRegion(region="Japan", raw_price=968000, tax_inclusive=True, confidence="high"),
            JP,
            FX,
        )
        self.assertEqual(record.region, "Japan")
        self.assertEqual(record.currency, "JPY")
        self.assertEqual(record.local_price, "¥880,000")
        self.assertEqual(record.price_usd_formatted, "$5,867")
        self.assertEqual(record.tax_note, "Pre-tax price (ex 10% consumption tax)")
        self.assertAlmostEqual(record.price_usd_exact, 880000 / 150.0)

    def test_serialized_keys_are_camel_case(self) -> None:
        record = normalize_record(ExtractedRegion(region="US", raw_price=5200, confidence="high"), US, FX)
        data = record.model_dump(mode="json", by_alias=True)
        for key in ("rawPrice", "taxInclusive", "priceNumeric", "priceUSD", "priceUSDFormatted", "isBest", "officialUrl"):
            self.assertIn(key, data)
        self.assertNotIn("priceUsdExact", data)
