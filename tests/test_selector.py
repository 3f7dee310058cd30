from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import sys
import unittest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.pricing.assembler import assemble_result
from app.pricing.models import RegionPriceRecord
from app.pricing.selector import select_best_region

CURRENCIES = {"US": "USD", "Hong Kong": "HKD", "Japan": "JPY", "France": "EUR"}


def _record(region: str, price_usd, confidence: str = "high") -> RegionPriceRecord:
    return RegionPriceRecord(
        region=region,
        currency=CURRENCIES[region],
        raw_price=price_usd if confidence != "unavailable" else None,
        confidence=confidence,
        price_usd=price_usd if confidence != "unavailable" else None,
    )


class TestSelectBestRegion(unittest.TestCase):
    def test_cheapest_region_is_flagged(self) -> None:
        records = [
            _record("US", 5200),
            _record("Hong Kong", 5223),
            _record("Japan", 5800),
            _record("France", 6100),
        ]
        flagged, best = select_best_region(records)
        self.assertEqual(best, "US")
        self.assertEqual([r.is_best for r in flagged], [True, False, False, False])

    def test_all_unavailable_selects_nothing(self) -> None:
        records = [_record(name, None, "unavailable") for name in CURRENCIES]
        flagged, best = select_best_region(records)
        self.assertIsNone(best)
        self.assertFalse(any(r.is_best for r in flagged))

    def test_exact_tie_goes_to_first_region(self) -> None:
        records = [
            _record("US", 6000),
            _record("Hong Kong", 5000),
            _record("Japan", 5000),
            _record("France", 7000),
        ]
        flagged, best = select_best_region(records)
        self.assertEqual(best, "Hong Kong")
        self.assertEqual(sum(r.is_best for r in flagged), 1)

    def test_unavailable_regions_are_skipped(self) -> None:
        records = [
            _record("US", 5200),
            _record("Hong Kong", None, "unavailable"),
            _record("Japan", 4900, "medium"),
            _record("France", None, "unavailable"),
        ]
        _, best = select_best_region(records)
        self.assertEqual(best, "Japan")

    def test_price_rounding_to_zero_is_never_best(self) -> None:
        japan = RegionPriceRecord(region="Japan", currency="JPY", raw_price=50, confidence="medium", price_usd=0)
        records = [_record("US", 5200), _record("Hong Kong", None, "unavailable"), japan]
        flagged, best = select_best_region(records)
        self.assertEqual(best, "US")
        self.assertEqual([r.is_best for r in flagged], [True, False, False])

    def test_inputs_are_not_mutated(self) -> None:
        records = [_record("US", 5200), _record("Hong Kong", 5223)]
        select_best_region(records)
        self.assertFalse(any(r.is_best for r in records))


class TestAssembleResult(unittest.TestCase):
    def test_result_shape(self) -> None:
        flagged, best = select_best_region([_record("US", 5200), _record("Hong Kong", 5223)])
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        result = assemble_result(
            product="Classic Flap Bag",
            brand="Chanel",
            confirmed_query="Chanel Classic Flap Medium Caviar Gold",
            records=flagged,
            best_region=best,
            disclaimer="Prices may be stale.",
            now=now,
        )
        data = result.model_dump(mode="json", by_alias=True)
        self.assertEqual(data["bestRegion"], "US")
        self.assertEqual(data["confirmedQuery"], "Chanel Classic Flap Medium Caviar Gold")
        self.assertEqual(data["disclaimer"], "Prices may be stale.")
        self.assertTrue(data["searchedAt"].startswith("2026-01-02T03:04:05"))
        self.assertEqual([r["region"] for r in data["regions"]], ["US", "Hong Kong"])
