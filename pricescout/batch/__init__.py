"""
Batch processing for scraping many businesses under a concurrency ceiling.
"""

from .manager import BatchScrapeManager, BatchJob, BatchReport, assign_identities

__all__ = [
    'BatchScrapeManager',
    'BatchJob',
    'BatchReport',
    'assign_identities',
]
