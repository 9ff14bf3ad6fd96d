# Scraping tasks
from .price_scraper import PriceScraper, LINK_VOCABULARY, STOP_THRESHOLDS

__all__ = [
    "PriceScraper",
    "LINK_VOCABULARY",
    "STOP_THRESHOLDS",
]
