from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from pydantic import ValidationError

from app.pricing.models import (
    ExtractedRegion,
    ExtractionPayload,
    FxRates,
    HomePriceSeed,
    RegionPriceRecord,
)
from app.pricing.normalizer import normalize_record
from app.pricing.regions import PricingConfig, RegionSpec
from app.services.llm import LLMParseError, parse_json_reply
from app.services.search import format_evidence

SearchFn = Callable[[str], Awaitable[list[dict[str, Any]]]]
CompleteFn = Callable[[list[dict[str, str]]], Awaitable[str]]
FxLoaderFn = Callable[[], Awaitable[FxRates]]

logger = logging.getLogger("luxe-price-agent.pricing")

EXTRACTION_SYSTEM_PROMPT = (
    "You are a luxury goods pricing expert. Extract prices from search results. "
    "Return ONLY valid JSON, no markdown. For each region return the price AS FOUND on the "
    "website (may be tax-inclusive). Set taxInclusive:true if the price includes tax. "
    'Use confidence "high" for the official brand site, "medium" for press or resale sources. '
    'If no price found set rawPrice:null and confidence:"unavailable".'
)


async def _search_quietly(search: SearchFn, query: str, *, region: str) -> list[dict[str, Any]]:
    try:
        return await search(query)
    except Exception as exc:
        logger.warning("region_search_failed region=%s query=%r err=%r", region, query, exc)
        return []


async def gather_region_evidence(
    *,
    query: str,
    brand: str,
    regions: Sequence[RegionSpec],
    search: SearchFn,
) -> dict[str, str]:
    """Search every region concurrently and return evidence text per region name."""

    async def _one(region: RegionSpec) -> tuple[str, str]:
        primary = region.search_query.format(query=query, brand=brand).strip()
        results = await _search_quietly(search, primary, region=region.name)
        if not results:
            fallback = " ".join(region.fallback_query.format(query=query, brand=brand).split())
            logger.info("region_search_fallback region=%s query=%r", region.name, fallback)
            results = await _search_quietly(search, fallback, region=region.name)
        return region.name, format_evidence(results)

    pairs = await asyncio.gather(*(_one(r) for r in regions))
    return dict(pairs)


def _example_payload(regions: Sequence[RegionSpec]) -> str:
    example = {
        "product": "full product name",
        "brand": "brand name",
        "regions": [
            {
                "region": r.name,
                "currency": r.currency,
                "rawPrice": 0,
                "taxInclusive": r.displays_tax_inclusive,
                "officialUrl": "https://...",
                "confidence": "high",
                "notes": None,
            }
            for r in regions
        ],
    }
    return json.dumps(example, ensure_ascii=False)


def build_extraction_messages(
    *,
    query: str,
    brand: str,
    regions: Sequence[RegionSpec],
    evidence: dict[str, str],
    home: Optional[HomePriceSeed] = None,
) -> list[dict[str, str]]:
    sections = [f"Product: {query}", f"Brand: {brand or 'unknown'}", ""]
    for region in regions:
        if home is not None and region.name == home.region:
            sections.append(
                f"{region.name} price is already known ({home.price:g} {region.currency}); "
                "still include the region in the output."
            )
            sections.append("")
            continue
        sections.append(f"{region.name} search results ({region.currency}):")
        sections.append(evidence.get(region.name) or "No results")
        sections.append("")
    sections.append(f"Return JSON: {_example_payload(regions)}")
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(sections)},
    ]


def parse_extraction(text: str) -> ExtractionPayload:
    obj = parse_json_reply(text, expect_keys=("regions",))
    try:
        return ExtractionPayload.model_validate(obj)
    except ValidationError as exc:
        raise LLMParseError(f"Model reply does not match the price schema: {exc}") from exc


def apply_home_override(
    extracted: dict[str, ExtractedRegion],
    home: HomePriceSeed,
    region: RegionSpec,
) -> None:
    proposed = extracted.get(region.name)
    tax_inclusive = home.tax_inclusive
    if tax_inclusive is None:
        tax_inclusive = region.displays_tax_inclusive
    official_url = home.official_url or (proposed.official_url if proposed else None)
    extracted[region.name] = ExtractedRegion(
        region=region.name,
        raw_price=home.price,
        tax_inclusive=tax_inclusive,
        confidence="high",
        official_url=official_url,
        notes=proposed.notes if proposed else None,
    )


def materialize_records(
    payload: ExtractionPayload,
    *,
    config: PricingConfig,
    fx: FxRates,
    home: Optional[HomePriceSeed] = None,
) -> list[RegionPriceRecord]:
    extracted: dict[str, ExtractedRegion] = {}
    for entry in payload.regions:
        spec = config.region(entry.region)
        if spec is None:
            logger.info("extraction_unknown_region region=%r", entry.region)
            continue
        # First mention wins when the model repeats a region.
        extracted.setdefault(spec.name, entry)

    if home is not None:
        home_spec = config.region(home.region)
        if home_spec is not None:
            apply_home_override(extracted, home, home_spec)

    records: list[RegionPriceRecord] = []
    for spec in config.regions:
        entry = extracted.get(spec.name) or ExtractedRegion(region=spec.name)
        records.append(normalize_record(entry, spec, fx))
    return records


async def aggregate_region_prices(
    *,
    query: str,
    brand: str,
    config: PricingConfig,
    search: SearchFn,
    complete: CompleteFn,
    fx_loader: FxLoaderFn,
    home: Optional[HomePriceSeed] = None,
) -> tuple[ExtractionPayload, list[RegionPriceRecord]]:
    home_name = None
    if home is not None:
        home_spec = config.region(home.region)
        home_name = home_spec.name if home_spec else None
    targets = [r for r in config.regions if r.name != home_name]

    fx, evidence = await asyncio.gather(
        fx_loader(),
        gather_region_evidence(query=query, brand=brand, regions=targets, search=search),
    )
    logger.info(
        "region_evidence_gathered query=%r regions_with_evidence=%d/%d fx_source=%s",
        query,
        sum(1 for v in evidence.values() if v),
        len(targets),
        fx.source,
    )

    messages = build_extraction_messages(
        query=query, brand=brand, regions=config.regions, evidence=evidence, home=home
    )
    reply = await complete(messages)
    payload = parse_extraction(reply)
    return payload, materialize_records(payload, config=config, fx=fx, home=home)
