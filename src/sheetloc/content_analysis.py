# -*- coding: utf-8 -*-
"""
content_analysis.py - AI content quality verdict and cell scan

ContentAnalyzer asks the model for a short JSON verdict:
    {"isComplete": bool, "hasIssues": bool, "quality": "good|fair|poor",
     "suggestions": [str]}
When no client is configured, the call fails, or the reply is not that JSON,
a heuristic verdict is returned instead. Verdicts are memoized per analyzer
in an LRU cache keyed by content length and prefix.

analyze_grid combines the verdict for the first rows of a grid with
scan_cells counts (empty, HTML and entity cells) into one report.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .cache_manager import LRUCache, content_prefix_key
from .config import AnalysisConfig
from .errors import LLMError
from .models import Grid
from .text_normalize import clean_text

logger = logging.getLogger(__name__)

QUALITY_LEVELS = ("good", "fair", "poor")
ANALYSIS_SYSTEM_PROMPT = (
    'Analyze content quality. Return JSON: {"isComplete": boolean, '
    '"hasIssues": boolean, "quality": "good|fair|poor", "suggestions": ["string"]}'
)
DEFAULT_SAMPLE_ROWS = 1000


@dataclass
class ContentAnalysis:
    is_complete: bool
    has_issues: bool
    quality: str
    suggestions: List[str] = field(default_factory=list)
    source: str = "ai"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def fallback_analysis(content: str) -> ContentAnalysis:
    """Length and placeholder heuristics used when the model is unavailable."""
    has_placeholder = "undefined" in content or "null" in content
    suggestions = []
    if len(content) < 10:
        suggestions.append("Content seems too short")
    if has_placeholder:
        suggestions.append("Contains undefined/null values")
    if len(content) > 50:
        quality = "good"
    elif len(content) > 20:
        quality = "fair"
    else:
        quality = "poor"
    return ContentAnalysis(
        is_complete=len(content) > 10,
        has_issues=has_placeholder,
        quality=quality,
        suggestions=suggestions,
        source="fallback",
    )


def parse_analysis(text: str) -> Optional[ContentAnalysis]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    quality = str(data.get("quality", "")).lower()
    if quality not in QUALITY_LEVELS:
        return None
    suggestions = data.get("suggestions") or []
    if not isinstance(suggestions, list):
        suggestions = [str(suggestions)]
    return ContentAnalysis(
        is_complete=bool(data.get("isComplete", False)),
        has_issues=bool(data.get("hasIssues", False)),
        quality=quality,
        suggestions=[str(s) for s in suggestions],
    )


class ContentAnalyzer:
    def __init__(self, client=None, config: Optional[AnalysisConfig] = None,
                 cache: Optional[LRUCache] = None, max_size: int = 500):
        self.client = client
        self.config = config or AnalysisConfig()
        self.cache = cache if cache is not None else LRUCache(max_size)

    @property
    def available(self) -> bool:
        return self.client is not None and getattr(self.client, "configured", True)

    async def analyze(self, content: str) -> ContentAnalysis:
        key = content_prefix_key(content, "analysis")
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached analysis")
            return cached

        if not self.available:
            result = fallback_analysis(content)
        else:
            result = await self._ask_model(content)
        self.cache.set(key, result)
        return result

    async def _ask_model(self, content: str) -> ContentAnalysis:
        cleaned = clean_text(content)
        if len(cleaned) > self.config.max_item_chars:
            cleaned = cleaned[:self.config.max_item_chars] + "..."
        try:
            reply = await self.client.chat(
                system=ANALYSIS_SYSTEM_PROMPT,
                user=f'Analyze: "{cleaned}"',
                model=self.config.model,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
                metadata={"step": "analyze"},
            )
        except LLMError as e:
            logger.warning(f"Analysis API error ({e.kind}): {e}")
            return fallback_analysis(content)

        parsed = parse_analysis(reply.text)
        if parsed is None:
            logger.warning("Analysis reply was not the expected JSON; using heuristic verdict")
            return fallback_analysis(content)
        return parsed


@dataclass
class CellScan:
    total_rows: int = 0
    total_cells: int = 0
    empty_cells: int = 0
    html_cells: int = 0
    entity_cells: int = 0


def scan_cells(grid: Grid) -> CellScan:
    scan = CellScan(total_rows=grid.n_rows)
    for cell in grid.iter_cells():
        scan.total_cells += 1
        scan.empty_cells += cell.is_empty
        scan.html_cells += cell.has_html
        scan.entity_cells += cell.has_entities
    return scan


@dataclass
class GridAnalysis:
    data_quality: CellScan
    content_quality: ContentAnalysis
    sample_rows: int
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def analyze_grid(grid: Grid, analyzer: ContentAnalyzer,
                       sample_rows: int = DEFAULT_SAMPLE_ROWS) -> GridAnalysis:
    sample = grid.rows[:sample_rows]
    text = "\n".join(" ".join(c.cleaned for c in row) for row in sample)
    verdict = await analyzer.analyze(text)
    scan = scan_cells(grid)

    recommendations = list(verdict.suggestions)
    if scan.empty_cells:
        recommendations.append(f"{scan.empty_cells} empty cells need attention")
    if scan.html_cells:
        recommendations.append(f"{scan.html_cells} cells contain HTML")
    if scan.entity_cells:
        recommendations.append(f"{scan.entity_cells} cells contain HTML entities")
    return GridAnalysis(data_quality=scan, content_quality=verdict,
                        sample_rows=len(sample), recommendations=recommendations)
