"""Reduce extracted candidates to one representative price per category."""

from __future__ import annotations

import logging
import statistics
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

from ..models import PRICED_CATEGORIES, ScrapeResult, ServiceCandidate, ServiceType
from .rules import PricingRules


def round_price(value: float) -> float:
    """Round half-up to a whole currency unit."""
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PriceAggregator:
    """Filter, bucket, range-check and take the median per category.

    The median is used instead of the mean so a single luxury service priced
    like a base service does not drag the category price.
    """

    def __init__(self, rules: PricingRules, logger: Optional[logging.Logger] = None):
        self.rules = rules
        self.logger = logger or logging.getLogger(__name__)

    def bucket(self, candidates: Iterable[ServiceCandidate]) -> Dict[ServiceType, List[float]]:
        """In-range prices per category after exclusions."""
        buckets: Dict[ServiceType, List[float]] = {category: [] for category in PRICED_CATEGORIES}

        for candidate in candidates:
            if self.rules.has_exclusion(candidate.text):
                self.logger.debug(f"Excluded ancillary service: {candidate.text!r}")
                continue

            for category in PRICED_CATEGORIES:
                tagged = candidate.service_type is category
                if not (tagged or self.rules.matches_category(category, candidate.text)):
                    continue
                if not self.rules.in_range(category, candidate.price):
                    self.logger.debug(f"Out of range for {category.value}: {candidate.price} ({candidate.text!r})")
                    continue
                buckets[category].append(candidate.price)

        return buckets

    def aggregate(self, candidates: List[ServiceCandidate], source_url: str) -> ScrapeResult:
        buckets = self.bucket(candidates)

        prices: Dict[str, Optional[float]] = {}
        for category, values in buckets.items():
            prices[category.value] = round_price(statistics.median(values)) if values else None

        found = sum(1 for value in prices.values() if value is not None)
        confidence = found / len(PRICED_CATEGORIES)

        return ScrapeResult(
            **prices,
            success=confidence > 0,
            confidence=confidence,
            source_url=source_url,
            candidates=list(candidates),
        )
