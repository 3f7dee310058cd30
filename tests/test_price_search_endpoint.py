from __future__ import annotations

import json
from pathlib import Path
import sys
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.config import Settings
from app.main import create_app
from app.pricing.models import FxRates

REGIONS_REPLY = {
    "product": "Classic Flap Bag",
    "brand": "Chanel",
    "regions": [
        {"region": "US", "currency": "USD", "rawPrice": 5200, "taxInclusive": False, "officialUrl": "https://www.chanel.com/us/", "confidence": "high", "notes": None},
        {"region": "Hong Kong", "currency": "HKD", "rawPrice": 41000, "taxInclusive": False, "officialUrl": "https://www.chanel.com/hk/", "confidence": "high", "notes": None},
        {"region": "Japan", "currency": "JPY", "rawPrice": 968000, "taxInclusive": True, "officialUrl": "https://www.chanel.com/ja_JP/", "confidence": "high", "notes": None},
        {"region": "France", "currency": "EUR", "rawPrice": None, "taxInclusive": False, "officialUrl": "https://www.chanel.com/fr_FR/", "confidence": "high", "notes": None},
    ],
}


class FakeUpstreams:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.search_queries: list[str] = []
        self.llm_calls = 0
        self.fx_calls = 0

    async def web_search(self, keywords, **kwargs):
        _ = kwargs
        self.search_queries.append(keywords)
        return [{"title": "Official", "url": "https://www.chanel.com", "content": f"price for {keywords}"}]

    async def chat_completion(self, **kwargs):
        _ = kwargs
        self.llm_calls += 1
        return self.reply

    async def fetch_fx_rates(self, **kwargs):
        _ = kwargs
        self.fx_calls += 1
        return FxRates(rates={"USD": 1.0, "HKD": 7.85, "JPY": 150.0, "EUR": 0.92}, source="live")


def _client(fake: FakeUpstreams, *, token: str | None = "test-token"):
    app = create_app(settings=Settings(ai_builder_token=token))
    patches = [
        patch("app.routes.v1.web_search", new=fake.web_search),
        patch("app.routes.v1.chat_completion", new=fake.chat_completion),
        patch("app.routes.v1.fetch_fx_rates", new=fake.fetch_fx_rates),
    ]
    return app, patches


class TestPriceSearchEndpoint(unittest.TestCase):
    def _post(self, fake: FakeUpstreams, payload: dict, *, token: str | None = "test-token"):
        app, patches = _client(fake, token=token)
        for p in patches:
            p.start()
        try:
            with TestClient(app) as client:
                return client.post("/v1/price-search", json=payload)
        finally:
            for p in patches:
                p.stop()

    def test_price_search_returns_ranked_regions(self) -> None:
        fake = FakeUpstreams("```json\n" + json.dumps(REGIONS_REPLY) + "\n```")
        res = self._post(fake, {"confirmedQuery": "Chanel Classic Flap Medium Caviar Gold", "brand": "Chanel"})

        self.assertEqual(res.status_code, 200)
        data = res.json()
        self.assertEqual(data["bestRegion"], "US")
        self.assertEqual(data["product"], "Classic Flap Bag")
        self.assertEqual(data["confirmedQuery"], "Chanel Classic Flap Medium Caviar Gold")
        self.assertIn("disclaimer", data)
        self.assertIn("searchedAt", data)

        regions = {r["region"]: r for r in data["regions"]}
        self.assertEqual(list(regions), ["US", "Hong Kong", "Japan", "France"])
        self.assertEqual(regions["Hong Kong"]["priceUSD"], 5223)
        self.assertEqual(regions["Japan"]["priceNumeric"], 880000)
        self.assertEqual(regions["Japan"]["localPrice"], "¥880,000")
        self.assertEqual(regions["France"]["confidence"], "unavailable")
        self.assertIsNone(regions["France"]["priceUSD"])
        self.assertTrue(regions["US"]["isBest"])
        self.assertEqual(sum(1 for r in data["regions"] if r["isBest"]), 1)

        self.assertEqual(fake.llm_calls, 1)
        self.assertEqual(fake.fx_calls, 1)
        self.assertEqual(len(fake.search_queries), 4)

    def test_missing_query_is_rejected_before_upstream_calls(self) -> None:
        fake = FakeUpstreams("{}")
        res = self._post(fake, {"brand": "Chanel"})

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json(), {"error": "confirmedQuery is required"})
        self.assertEqual(fake.search_queries, [])
        self.assertEqual(fake.llm_calls, 0)

    def test_unparseable_extraction_fails_whole_request(self) -> None:
        fake = FakeUpstreams("I am unable to help with that.")
        res = self._post(fake, {"confirmedQuery": "Chanel Classic Flap", "brand": "Chanel"})

        self.assertEqual(res.status_code, 500)
        self.assertIn("not valid JSON", res.json()["error"])

    def test_missing_token_is_reported(self) -> None:
        fake = FakeUpstreams("{}")
        res = self._post(fake, {"confirmedQuery": "Chanel Classic Flap"}, token=None)

        self.assertEqual(res.status_code, 500)
        self.assertIn("AI_BUILDER_TOKEN", res.json()["error"])
        self.assertEqual(fake.llm_calls, 0)

    def test_home_price_overrides_model_price(self) -> None:
        reply = json.loads(json.dumps(REGIONS_REPLY))
        reply["regions"][0].update({"rawPrice": 6900, "confidence": "medium"})
        fake = FakeUpstreams(json.dumps(reply))
        res = self._post(
            fake,
            {
                "confirmedQuery": "Harry Winston Ribbon Diamond Wedding Band",
                "brand": "Harry Winston",
                "homeRegion": "US",
                "homePrice": 7100,
                "homeCurrency": "USD",
                "productUrl": "https://www.harrywinston.com/en/products/ribbon",
            },
        )

        self.assertEqual(res.status_code, 200)
        us = res.json()["regions"][0]
        self.assertEqual(us["rawPrice"], 7100)
        self.assertEqual(us["confidence"], "high")
        self.assertEqual(us["officialUrl"], "https://www.harrywinston.com/en/products/ribbon")
        self.assertEqual(len(fake.search_queries), 3)

    def test_home_currency_mismatch_is_rejected(self) -> None:
        fake = FakeUpstreams("{}")
        res = self._post(
            fake,
            {"confirmedQuery": "Cartier Love Bracelet", "homeRegion": "Japan", "homePrice": 1000, "homeCurrency": "USD"},
        )
        self.assertEqual(res.status_code, 400)
        self.assertIn("homeCurrency", res.json()["error"])

    def test_home_region_detected_from_product_url(self) -> None:
        fake = FakeUpstreams(json.dumps(REGIONS_REPLY))
        res = self._post(
            fake,
            {
                "confirmedQuery": "Chanel Classic Flap",
                "homePrice": 1100000,
                "productUrl": "https://www.chanel.com/ja_JP/fashion/p/A01112/",
            },
        )
        self.assertEqual(res.status_code, 200)
        japan = res.json()["regions"][2]
        self.assertEqual(japan["rawPrice"], 1100000)
        self.assertTrue(japan["taxInclusive"])
        self.assertEqual(japan["priceNumeric"], 1000000)
        self.assertEqual(japan["confidence"], "high")


class TestErrorShape(unittest.TestCase):
    def test_invalid_body_is_a_400_with_error_key(self) -> None:
        app = create_app(settings=Settings(ai_builder_token="test-token"))
        with TestClient(app) as client:
            res = client.post(
                "/v1/price-search",
                content="not json",
                headers={"Content-Type": "application/json"},
            )
        self.assertEqual(res.status_code, 400)
        self.assertIn("error", res.json())
