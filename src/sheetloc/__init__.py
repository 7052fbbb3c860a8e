# -*- coding: utf-8 -*-
"""
sheetloc - clean, analyze and translate HTML-encoded spreadsheet content.
"""

from .batch_translate import BatchTranslationEngine, JobState, JobStats
from .cache_manager import LRUCache, TranslationCache
from .cancellation import CancelToken
from .dataset_qa import QualityReport, analyze_dataset
from .dedup import build_content_index, collect_unique_content
from .errors import (
    BatchTranslationFailure,
    Cancelled,
    DecodeAnomaly,
    InvalidTargetLanguage,
    LLMError,
    ParseError,
    ShapeMismatch,
)
from .ingest import export_grid, ingest
from .models import Cell, Grid
from .rehydrate import rehydrate
from .session import Session
from .text_normalize import normalize

__version__ = "0.3.0"

__all__ = [
    "BatchTranslationEngine",
    "BatchTranslationFailure",
    "Cancelled",
    "CancelToken",
    "Cell",
    "DecodeAnomaly",
    "Grid",
    "InvalidTargetLanguage",
    "JobState",
    "JobStats",
    "LLMError",
    "LRUCache",
    "ParseError",
    "QualityReport",
    "Session",
    "ShapeMismatch",
    "TranslationCache",
    "analyze_dataset",
    "build_content_index",
    "collect_unique_content",
    "export_grid",
    "ingest",
    "normalize",
    "rehydrate",
]
