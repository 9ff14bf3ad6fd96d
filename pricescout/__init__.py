"""PriceScout: competitive price extraction for nail-salon websites."""

__version__ = "1.0.0"
