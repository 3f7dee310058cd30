from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from app.pricing.aggregator import CompleteFn, FxLoaderFn, SearchFn, aggregate_region_prices
from app.pricing.assembler import assemble_result
from app.pricing.models import HomePriceSeed, PriceComparisonResult
from app.pricing.regions import PricingConfig
from app.pricing.selector import select_best_region

logger = logging.getLogger("luxe-price-agent.pricing")


async def compare_prices(
    *,
    confirmed_query: str,
    brand: str,
    config: PricingConfig,
    search: SearchFn,
    complete: CompleteFn,
    fx_loader: FxLoaderFn,
    home: Optional[HomePriceSeed] = None,
    now: Optional[datetime] = None,
) -> PriceComparisonResult:
    if home is not None:
        spec = config.region(home.region)
        if spec is None:
            raise ValueError(f"Unknown home region: {home.region}")
        home = home.model_copy(update={"region": spec.name})

    payload, records = await aggregate_region_prices(
        query=confirmed_query,
        brand=brand,
        config=config,
        search=search,
        complete=complete,
        fx_loader=fx_loader,
        home=home,
    )
    flagged, best_region = select_best_region(records)
    logger.info("price_comparison_done query=%r best_region=%s", confirmed_query, best_region)

    return assemble_result(
        product=(payload.product or "").strip() or confirmed_query,
        brand=(payload.brand or "").strip() or brand,
        confirmed_query=confirmed_query,
        records=flagged,
        best_region=best_region,
        disclaimer=config.disclaimer,
        now=now,
    )
