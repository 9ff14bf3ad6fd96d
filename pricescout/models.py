"""Data model shared by the extraction pipeline and the HTTP layer."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ServiceType(str, Enum):
    """Service categories priced by the scraper."""
    GEL = "gel"
    PEDICURE = "pedicure"
    ACRYLIC = "acrylic"
    OTHER = "other"


PRICED_CATEGORIES: Tuple[ServiceType, ...] = (ServiceType.GEL, ServiceType.PEDICURE, ServiceType.ACRYLIC)


class ExtractionSource(str, Enum):
    """Strategy that proposed a candidate."""
    RENDERED = "rendered"
    STRUCTURAL = "structural"
    RAW = "raw"


class ServiceCandidate(BaseModel):
    """A tentative (service, price) pair found on a page."""
    model_config = ConfigDict(frozen=True)

    text: str
    service_type: ServiceType
    price: float
    confidence_hint: float
    extraction_source: ExtractionSource

    @property
    def dedup_key(self) -> Tuple[ServiceType, float]:
        return (self.service_type, self.price)


class ScrapeResult(BaseModel):
    """Outcome of scraping one business website."""
    model_config = ConfigDict(frozen=True)

    gel: Optional[float] = None
    pedicure: Optional[float] = None
    acrylic: Optional[float] = None
    success: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source_url: str = ""
    candidates: List[ServiceCandidate] = Field(default_factory=list)

    @classmethod
    def failure(cls, source_url: str) -> "ScrapeResult":
        return cls(success=False, confidence=0.0, source_url=source_url or "")


class ScrapeTarget(BaseModel):
    """A business to scrape in a batch."""
    name: str
    url: str = ""
