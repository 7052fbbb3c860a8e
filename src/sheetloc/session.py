# -*- coding: utf-8 -*-
"""
session.py - One working session over one spreadsheet

A Session owns everything that used to be process-wide state: the
normalization and analysis LRU caches, the persistent translation cache,
the trace buffer, the chat client and the current job's cancel token.
Two sessions never share any of these.

Usage:
    async with Session.from_config("config/pipeline.yaml") as session:
        grid = await session.ingest(data)
        result = await session.translate_grid(grid, "ru")
        xlsx = export_grid(result.grid)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .batch_translate import BatchTranslationEngine, JobState, JobStats, ProgressCallback
from .cache_manager import LRUCache, TranslationCache
from .cancellation import CancelToken
from .config import PipelineConfig, load_pipeline_config
from .content_analysis import ContentAnalyzer, GridAnalysis, analyze_grid
from .dataset_qa import QualityReport, analyze_dataset
from .dedup import ContentFilter, collect_unique_content
from .ingest import ingest
from .llm_client import AsyncLLMClient
from .models import Grid
from .rehydrate import rehydrate
from .text_normalize import CellNormalizer
from .trace import TraceLog

logger = logging.getLogger(__name__)


@dataclass
class TranslationOutcome:
    grid: Grid
    translation_map: Dict[str, str]
    passthrough: List[str]
    stats: JobStats


class Session:
    def __init__(self, config: Optional[PipelineConfig] = None, client=None,
                 translation_cache: Optional[TranslationCache] = None,
                 trace: Optional[TraceLog] = None):
        self.config = config or PipelineConfig()
        self.trace = trace or TraceLog()
        self.client = client if client is not None else AsyncLLMClient(trace=self.trace)
        self.content_cache = LRUCache(self.config.cache.content_cache_size)
        self.normalizer = CellNormalizer(cache=self.content_cache)
        self.analyzer = ContentAnalyzer(
            self.client,
            config=self.config.analysis,
            cache=LRUCache(self.config.cache.analysis_cache_size),
        )
        self.translation_cache = translation_cache
        self.cancel_token = CancelToken()
        self.last_job: Optional[BatchTranslationEngine] = None

    @classmethod
    def from_config(cls, config_path: Optional[str] = None, **kwargs) -> "Session":
        config = load_pipeline_config(config_path)
        cache = TranslationCache(config.cache) if config.cache.enabled else None
        return cls(config=config, translation_cache=cache, **kwargs)

    async def ingest(self, data: bytes) -> Grid:
        return await ingest(data, normalizer=self.normalizer,
                            chunk_rows=self.config.ingest.chunk_rows)

    def new_engine(self, progress_callback: Optional[ProgressCallback] = None) -> BatchTranslationEngine:
        return BatchTranslationEngine(
            self.client,
            config=self.config,
            cache=self.translation_cache,
            trace=self.trace,
            progress_callback=progress_callback,
        )

    async def translate_grid(self, grid: Grid, target_language: str,
                             progress_callback: Optional[ProgressCallback] = None,
                             timeout_s: Optional[float] = None) -> TranslationOutcome:
        """
        Dedup, translate and rehydrate ``grid`` into a new grid.

        Raises:
            Cancelled: ``cancel()`` was called or ``timeout_s`` passed;
                ``partial`` holds the translations finished so far
            InvalidTargetLanguage
        """
        self.cancel_token = CancelToken(timeout_s=timeout_s)
        unique = collect_unique_content(grid)
        to_translate, passthrough = ContentFilter(
            self.config.translation.filter_trivial).split(unique)
        logger.info(f"{len(unique)} unique values, {len(to_translate)} to translate, "
                    f"{len(passthrough)} passed through")

        engine = self.new_engine(progress_callback)
        self.last_job = engine
        translated = await engine.translate_batch(to_translate, target_language, self.cancel_token)
        translation_map = dict(zip(to_translate, translated))
        return TranslationOutcome(
            grid=rehydrate(grid, translation_map),
            translation_map=translation_map,
            passthrough=passthrough,
            stats=engine.stats,
        )

    async def translate_content(self, content: str, target_language: str) -> str:
        """Translate a single value (same engine, one-item batch)."""
        engine = self.new_engine()
        self.last_job = engine
        result = await engine.translate_batch([content], target_language, CancelToken())
        return result[0]

    def cancel(self) -> None:
        self.cancel_token.cancel()

    @property
    def job_state(self) -> JobState:
        return self.last_job.state if self.last_job else JobState.IDLE

    async def analyze(self, grid: Grid) -> GridAnalysis:
        return await analyze_grid(grid, self.analyzer)

    def quality_report(self, grid: Grid) -> QualityReport:
        return analyze_dataset(grid, self.config.dataset_qa)

    def clear_caches(self) -> None:
        self.content_cache.clear()
        self.analyzer.cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "content": {"size": len(self.content_cache), **self.content_cache.stats.to_dict()},
            "analysis": {"size": len(self.analyzer.cache), **self.analyzer.cache.stats.to_dict()},
        }
        if self.translation_cache is not None:
            stats["translations"] = {**self.translation_cache.get_size(),
                                     **self.translation_cache.stats.to_dict()}
        return stats

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
        if self.translation_cache is not None:
            self.translation_cache.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
