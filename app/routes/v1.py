from __future__ import annotations

import functools
import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from app.config import Settings
from app.pricing.models import HomePriceSeed
from app.pricing.pipeline import compare_prices
from app.pricing.regions import DEFAULT_PRICING_CONFIG, PricingConfig
from app.services.fx import fetch_fx_rates
from app.services.identify import clarify_product, identify_product, is_url
from app.services.llm import LLMParseError, chat_completion
from app.services.location_scores import normalize_state_codes, score_locations
from app.services.search import web_search
from app.services.zip_drilldown import (
    DEFAULT_MAX_LISTINGS,
    DEFAULT_MAX_ZIPS,
    MAX_LISTINGS,
    MAX_ZIPS,
    bounded_count,
    find_zip_listings,
    suggest_zips,
)


router = APIRouter()

logger = logging.getLogger("luxe-price-agent.v1")


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _pricing_config(request: Request) -> PricingConfig:
    return getattr(request.app.state, "pricing_config", None) or DEFAULT_PRICING_CONFIG


def _require_token(settings: Settings) -> str:
    if not settings.ai_builder_token:
        raise HTTPException(status_code=500, detail="AI_BUILDER_TOKEN is not configured.")
    return settings.ai_builder_token


def _search_fn(settings: Settings, *, max_results: Optional[int] = None):
    async def _search(query: str) -> list[dict[str, Any]]:
        return await web_search(
            query,
            base_url=settings.ai_builders_base_url,
            token=settings.ai_builder_token,
            max_results=max_results or settings.search_max_results,
            timeout_s=settings.upstream_timeout_s,
        )

    return _search


def _complete_fn(settings: Settings, *, max_tokens: Optional[int] = None):
    async def _complete(messages: list[dict[str, str]]) -> str:
        return await chat_completion(
            base_url=settings.ai_builders_base_url,
            token=settings.ai_builder_token,
            model=settings.llm_model,
            messages=messages,
            timeout_s=settings.llm_timeout_s,
            max_tokens=max_tokens,
        )

    return _complete


def _error_response(exc: Exception, *, what: str) -> JSONResponse:
    if isinstance(exc, LLMParseError):
        logger.error("%s_parse_failed err=%s", what, exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    if isinstance(exc, httpx.HTTPError):
        logger.error("%s_upstream_failed err=%r", what, exc)
        return JSONResponse(status_code=502, content={"error": str(exc) or exc.__class__.__name__})
    logger.exception("%s_failed", what)
    return JSONResponse(status_code=500, content={"error": str(exc)})


def _parse_positive_number(value: Any, *, field: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"`{field}` must be a number")
    try:
        number = float(str(value).replace(",", ""))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"`{field}` must be a number") from exc
    if number <= 0:
        return None
    return number


def _home_seed_from_body(body: dict[str, Any], config: PricingConfig) -> Optional[HomePriceSeed]:
    home_price = _parse_positive_number(body.get("homePrice"), field="homePrice")
    home_region_raw = _as_str(body.get("homeRegion"))
    product_url = _as_str(body.get("productUrl")) or None

    if home_region_raw:
        spec = config.region(home_region_raw)
        if spec is None:
            raise HTTPException(status_code=400, detail=f"Unknown homeRegion: {home_region_raw}")
    elif home_price is not None:
        spec = config.home_region_for_url(product_url)
    else:
        return None

    if home_price is None:
        return None

    home_currency = _as_str(body.get("homeCurrency")).upper()
    if home_currency and home_currency != spec.currency:
        raise HTTPException(
            status_code=400,
            detail=f"homeCurrency {home_currency} does not match {spec.name} ({spec.currency})",
        )

    tax_flag = body.get("homeTaxInclusive")
    return HomePriceSeed(
        region=spec.name,
        price=home_price,
        tax_inclusive=tax_flag if isinstance(tax_flag, bool) else None,
        official_url=product_url if product_url and is_url(product_url) else None,
    )


@router.post("/identify")
async def identify(request: Request, body: dict[str, Any]):
    raw_input = _as_str(body.get("input"))
    if not raw_input:
        raise HTTPException(status_code=400, detail="input is required")

    settings = _settings(request)
    _require_token(settings)
    try:
        identity = await identify_product(
            raw_input,
            config=_pricing_config(request),
            search=_search_fn(settings, max_results=4),
            complete=_complete_fn(settings),
        )
    except Exception as exc:
        return _error_response(exc, what="identify")
    return identity.model_dump(mode="json", by_alias=True)


@router.post("/clarify")
async def clarify(request: Request, body: dict[str, Any]):
    query = _as_str(body.get("query"))
    if not query:
        raise HTTPException(status_code=400, detail="query is required")

    settings = _settings(request)
    _require_token(settings)
    try:
        clarification = await clarify_product(query, complete=_complete_fn(settings))
    except Exception as exc:
        return _error_response(exc, what="clarify")
    return clarification.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/price-search")
async def price_search(request: Request, body: dict[str, Any]):
    """
    Compare the confirmed product's price across the configured regions.

    Every region is always present in the reply; regions without evidence come
    back with confidence "unavailable". Only a failure to read the model's
    extraction (or an upstream LLM error) fails the whole request.
    """

    config = _pricing_config(request)
    confirmed_query = _as_str(body.get("confirmedQuery")) or _as_str(body.get("productUrl"))
    if not confirmed_query:
        raise HTTPException(status_code=400, detail="confirmedQuery is required")
    brand = _as_str(body.get("brand"))
    home = _home_seed_from_body(body, config)

    settings = _settings(request)
    _require_token(settings)
    fx_loader = functools.partial(
        fetch_fx_rates,
        url=settings.fx_rates_url,
        defaults=config.default_fx_rates,
        currencies=[r.currency for r in config.regions],
        timeout_s=settings.upstream_timeout_s,
    )

    try:
        result = await compare_prices(
            confirmed_query=confirmed_query,
            brand=brand,
            config=config,
            search=_search_fn(settings),
            complete=_complete_fn(settings),
            fx_loader=fx_loader,
            home=home,
        )
    except Exception as exc:
        return _error_response(exc, what="price_search")
    return result.model_dump(mode="json", by_alias=True)


@router.post("/location-scores")
async def location_scores(request: Request, body: Optional[dict[str, Any]] = None):
    state_codes = normalize_state_codes((body or {}).get("stateCodes"))

    settings = _settings(request)
    _require_token(settings)
    try:
        scores = await score_locations(
            state_codes,
            search=_search_fn(settings, max_results=20),
            complete=_complete_fn(settings, max_tokens=2000),
        )
    except Exception as exc:
        return _error_response(exc, what="location_scores")
    return scores.model_dump(mode="json", by_alias=True)


@router.post("/zip-suggestions")
async def zip_suggestions(request: Request, body: dict[str, Any]):
    state = _as_str(body.get("state")).upper()
    label = _as_str(body.get("label"))
    if not state or not label:
        raise HTTPException(status_code=400, detail="state and label are required")
    max_zips = bounded_count(body.get("maxZips"), default=DEFAULT_MAX_ZIPS, upper=MAX_ZIPS)

    settings = _settings(request)
    _require_token(settings)
    try:
        suggestions = await suggest_zips(
            state=state,
            label=label,
            location_id=_as_str(body.get("locationId")) or None,
            search=_search_fn(settings, max_results=max_zips),
            complete=_complete_fn(settings, max_tokens=2000),
        )
    except Exception as exc:
        return _error_response(exc, what="zip_suggestions")
    return suggestions.model_dump(mode="json", by_alias=True)


@router.post("/zip-listings")
async def zip_listings(request: Request, body: dict[str, Any]):
    zip_code = _as_str(body.get("zip"))
    if not zip_code:
        raise HTTPException(status_code=400, detail="zip is required")
    max_listings = bounded_count(body.get("maxListings"), default=DEFAULT_MAX_LISTINGS, upper=MAX_LISTINGS)

    settings = _settings(request)
    _require_token(settings)
    try:
        listings = await find_zip_listings(
            zip_code=zip_code,
            state=_as_str(body.get("state")).upper(),
            max_listings=max_listings,
            search=_search_fn(settings, max_results=max_listings),
            complete=_complete_fn(settings, max_tokens=2000),
        )
    except Exception as exc:
        return _error_response(exc, what="zip_listings")
    return listings.model_dump(mode="json", by_alias=True)
