from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from app.pricing.models import PriceComparisonResult, RegionPriceRecord


def assemble_result(
    *,
    product: str,
    brand: str,
    confirmed_query: str,
    records: Sequence[RegionPriceRecord],
    best_region: Optional[str],
    disclaimer: str,
    now: Optional[datetime] = None,
) -> PriceComparisonResult:
    return PriceComparisonResult(
        product=product,
        brand=brand,
        confirmed_query=confirmed_query,
        regions=tuple(records),
        best_region=best_region,
        searched_at=now or datetime.now(timezone.utc),
        disclaimer=disclaimer,
    )
