"""Candidate extraction and price aggregation."""

from .aggregator import PriceAggregator, round_price
from .rules import PricingRules, PriceRange, load_pricing_rules
from .strategies import (
    ExtractionPipeline, ExtractionStrategy,
    RenderedDomStrategy, StructuralStrategy, RawTextStrategy,
    default_strategies
)

__all__ = [
    'PriceAggregator', 'round_price',
    'PricingRules', 'PriceRange', 'load_pricing_rules',
    'ExtractionPipeline', 'ExtractionStrategy',
    'RenderedDomStrategy', 'StructuralStrategy', 'RawTextStrategy',
    'default_strategies'
]
