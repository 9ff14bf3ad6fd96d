"""Externally supplied pricing rules: keyword lists and plausible price ranges.

The bundled defaults live in ``pricescout/data/pricing_rules.json``; point
``PRICING_RULES_PATH`` at another file to override them without a release.
"""

from __future__ import annotations

import json
import logging
import pathlib
from importlib import resources
from typing import Dict, List, Optional, Pattern

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..models import PRICED_CATEGORIES, ServiceType
from ..reliability.errors import ConfigurationError
from .patterns import build_price_pattern, contains_any, contains_substring

logger = logging.getLogger(__name__)


class PriceRange(BaseModel):
    min: float
    max: float

    @model_validator(mode="after")
    def _check_bounds(self) -> "PriceRange":
        if self.min < 0 or self.max < self.min:
            raise ValueError(f"invalid price range [{self.min}, {self.max}]")
        return self

    def contains(self, price: float) -> bool:
        return self.min <= price <= self.max


class PricingRules(BaseModel):
    currency_symbols: List[str] = Field(default_factory=lambda: ["$"])
    service_keywords: List[str]
    category_keywords: Dict[ServiceType, List[str]]
    exclusion_keywords: List[str]
    price_ranges: Dict[ServiceType, PriceRange]

    @model_validator(mode="after")
    def _check_categories(self) -> "PricingRules":
        for category in PRICED_CATEGORIES:
            if not self.category_keywords.get(category):
                raise ValueError(f"no keywords configured for {category.value}")
            if category not in self.price_ranges:
                raise ValueError(f"no price range configured for {category.value}")
        if not self.currency_symbols:
            raise ValueError("at least one currency symbol is required")
        return self

    @property
    def price_pattern(self) -> Pattern[str]:
        return build_price_pattern(tuple(self.currency_symbols))

    def has_service_keyword(self, text: str) -> bool:
        return contains_substring(text, self.service_keywords)

    def has_exclusion(self, text: str) -> bool:
        return contains_any(text, self.exclusion_keywords)

    def matches_category(self, category: ServiceType, text: str) -> bool:
        return contains_any(text, self.category_keywords.get(category, []))

    def detect_service_type(self, text: str) -> ServiceType:
        """First category (in configured order) whose keyword appears in text."""
        for category, keywords in self.category_keywords.items():
            if category is ServiceType.OTHER:
                continue
            if contains_any(text, keywords):
                return category
        return ServiceType.OTHER

    def in_range(self, category: ServiceType, price: float) -> bool:
        price_range = self.price_ranges.get(category)
        return price_range is not None and price_range.contains(price)


def load_pricing_rules(path: Optional[str] = None) -> PricingRules:
    """Load rules from ``path`` or the bundled defaults."""
    try:
        if path:
            raw = pathlib.Path(path).read_text(encoding="utf-8")
            source = path
        else:
            raw = resources.files("pricescout.data").joinpath("pricing_rules.json").read_text(encoding="utf-8")
            source = "<bundled>"
        rules = PricingRules.model_validate(json.loads(raw))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Cannot load pricing rules from {path or '<bundled>'}: {e}", cause=e)

    logger.info(f"Loaded pricing rules from {source}: "
                f"{sum(len(v) for v in rules.category_keywords.values())} category keywords, "
                f"{len(rules.exclusion_keywords)} exclusions")
    return rules
