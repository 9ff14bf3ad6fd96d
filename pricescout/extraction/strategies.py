"""Extraction strategies that propose priced service candidates from a loaded page.

Three strategies share one capability, ``propose(page, html, rules)``, and are
composed by ``ExtractionPipeline`` in order of reliability:

1. RenderedDomStrategy  - texts of rendered elements (weight 0.8)
2. StructuralStrategy   - BeautifulSoup selectors over captured HTML (weight 0.7)
3. RawTextStrategy      - visible text line by line, only when the first two
                          found fewer than 3 candidates (weight 0.6)
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup
from playwright.async_api import Page

from ..models import ExtractionSource, ServiceCandidate, ServiceType
from ..observability import CANDIDATES_PROPOSED
from .patterns import split_lines, split_priced_segments, unique_preserving_order
from .rules import PricingRules

logger = logging.getLogger(__name__)

DedupKey = Tuple[ServiceType, float]

ELEMENT_TEXT_MIN = 5
ELEMENT_TEXT_MAX = 300
LINE_MIN = 10
LINE_MAX = 200

STRUCTURAL_SELECTORS = (
    "table tr",
    "li",
    "[class*='service']",
    "[class*='price']",
    "[class*='menu']",
    "[class*='item']",
)

RENDERED_TEXTS_SCRIPT = """
([minLength, maxLength]) => {
    const skip = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE', 'svg']);
    const seen = new Set();
    const texts = [];
    if (!document.body) return texts;
    for (const el of document.body.querySelectorAll('*')) {
        if (skip.has(el.tagName)) continue;
        const text = (el.innerText || '').trim();
        if (text.length < minLength || text.length > maxLength || seen.has(text)) continue;
        seen.add(text);
        texts.push(text);
    }
    return texts;
}
"""

BODY_TEXT_SCRIPT = "() => document.body ? document.body.innerText : ''"


class ExtractionStrategy(Protocol):
    source: ExtractionSource
    weight: float
    run_below: Optional[int]

    async def propose(self, page: Optional[Page], html: str, rules: PricingRules) -> List[ServiceCandidate]:
        ...


def candidates_from_texts(
    texts: Iterable[str],
    rules: PricingRules,
    *,
    source: ExtractionSource,
    weight: float,
    require_category: bool = False,
) -> List[ServiceCandidate]:
    """Turn free texts into candidates, one per priced segment."""
    candidates = []
    for text in texts:
        if not rules.has_service_keyword(text):
            continue
        for segment in split_priced_segments(text, rules.price_pattern):
            if not rules.has_service_keyword(segment.text):
                continue
            service_type = rules.detect_service_type(segment.text)
            if require_category and service_type is ServiceType.OTHER:
                continue
            candidates.append(ServiceCandidate(
                text=segment.text,
                service_type=service_type,
                price=segment.price,
                confidence_hint=weight,
                extraction_source=source,
            ))
    return candidates


class RenderedDomStrategy:
    """Walk every rendered element and keep short priced service texts."""

    source = ExtractionSource.RENDERED
    weight = 0.8
    run_below: Optional[int] = None

    async def propose(self, page: Optional[Page], html: str, rules: PricingRules) -> List[ServiceCandidate]:
        if page is None:
            return []
        texts = await page.evaluate(RENDERED_TEXTS_SCRIPT, [ELEMENT_TEXT_MIN, ELEMENT_TEXT_MAX])
        texts = [t for t in (texts or []) if ELEMENT_TEXT_MIN <= len(t) <= ELEMENT_TEXT_MAX]
        return candidates_from_texts(texts, rules, source=self.source, weight=self.weight)


class StructuralStrategy:
    """Select likely price containers from the captured HTML."""

    source = ExtractionSource.STRUCTURAL
    weight = 0.7
    run_below: Optional[int] = None

    def __init__(self, selectors: Iterable[str] = STRUCTURAL_SELECTORS):
        self.selectors = tuple(selectors)

    def container_texts(self, html: str) -> List[str]:
        soup = BeautifulSoup(html or "", "html.parser")
        for tag in soup(["script", "style", "noscript", "template"]):
            tag.decompose()

        texts = []
        for selector in self.selectors:
            for element in soup.select(selector):
                text = element.get_text(" ", strip=True)
                if ELEMENT_TEXT_MIN <= len(text) <= ELEMENT_TEXT_MAX:
                    texts.append(text)
        return unique_preserving_order(texts)

    async def propose(self, page: Optional[Page], html: str, rules: PricingRules) -> List[ServiceCandidate]:
        return candidates_from_texts(self.container_texts(html), rules, source=self.source, weight=self.weight)


class RawTextStrategy:
    """Last resort: scan visible body text line by line."""

    source = ExtractionSource.RAW
    weight = 0.6
    run_below: Optional[int] = 3

    async def body_text(self, page: Optional[Page], html: str) -> str:
        if page is not None:
            try:
                text = await page.evaluate(BODY_TEXT_SCRIPT)
            except Exception as e:
                logger.debug(f"innerText unavailable, reading captured HTML: {e}")
            else:
                if text:
                    return text
        soup = BeautifulSoup(html or "", "html.parser")
        for tag in soup(["script", "style", "noscript", "template"]):
            tag.decompose()
        return soup.get_text("\n")

    async def propose(self, page: Optional[Page], html: str, rules: PricingRules) -> List[ServiceCandidate]:
        lines = split_lines(await self.body_text(page, html), LINE_MIN, LINE_MAX)
        return candidates_from_texts(
            lines, rules, source=self.source, weight=self.weight, require_category=True
        )


def default_strategies() -> List[ExtractionStrategy]:
    return [RenderedDomStrategy(), StructuralStrategy(), RawTextStrategy()]


class ExtractionPipeline:
    """Run strategies in order and merge their distinct candidates."""

    def __init__(self,
                 rules: PricingRules,
                 strategies: Optional[List[ExtractionStrategy]] = None,
                 logger: Optional[logging.Logger] = None):
        self.rules = rules
        self.strategies = strategies if strategies is not None else default_strategies()
        self.logger = logger or logging.getLogger(__name__)

    async def run(self,
                  page: Optional[Page],
                  html: str,
                  seen: Optional[Dict[DedupKey, ServiceCandidate]] = None) -> List[ServiceCandidate]:
        """Extract candidates from one loaded page.

        ``seen`` is the deduplication map shared across every page explored for
        a site; only candidates new to it are returned.
        """
        if seen is None:
            seen = {}

        page_keys = set()
        added: List[ServiceCandidate] = []

        for strategy in self.strategies:
            if strategy.run_below is not None and len(page_keys) >= strategy.run_below:
                continue

            try:
                proposals = await strategy.propose(page, html, self.rules)
            except Exception as e:
                self.logger.warning(f"{strategy.source.value} extraction failed: {e}")
                continue

            CANDIDATES_PROPOSED.labels(strategy.source.value).inc(len(proposals))

            for candidate in proposals:
                page_keys.add(candidate.dedup_key)
                if candidate.dedup_key in seen:
                    continue
                seen[candidate.dedup_key] = candidate
                added.append(candidate)

            self.logger.debug(f"{strategy.source.value}: {len(proposals)} proposals, {len(page_keys)} distinct on page")

        return added
