from __future__ import annotations

from typing import Optional, Sequence

from app.pricing.models import RegionPriceRecord


def select_best_region(
    records: Sequence[RegionPriceRecord],
) -> tuple[list[RegionPriceRecord], Optional[str]]:
    """Flag the cheapest priced region in USD.

    Comparison uses the rounded ``price_usd`` shown to the user, and a price
    that rounds to nothing is not a candidate. On an exact tie the earlier
    region in ``records`` wins.
    """
    best_index: Optional[int] = None
    for i, record in enumerate(records):
        if record.confidence == "unavailable" or record.price_usd is None or record.price_usd <= 0:
            continue
        if best_index is None or record.price_usd < records[best_index].price_usd:
            best_index = i

    flagged = [
        record.model_copy(update={"is_best": i == best_index}) for i, record in enumerate(records)
    ]
    best_region = records[best_index].region if best_index is not None else None
    return flagged, best_region
