# -*- coding: utf-8 -*-
"""
config.py - Pipeline configuration

Loads ``config/pipeline.yaml`` and merges it over built-in defaults.

Sections:
  translation: model, batch_size, max_item_chars, max_inflight, retries, filter_trivial
  analysis:    model, max_item_chars
  models:      per-model batch_size / max_tokens / structured_output
  cache:       see cache_manager.CacheConfig
  ingest:      chunk_rows
  dataset_qa:  record schema and tier thresholds
  store:       path of the JSON grid store

Env (OpenAI-compatible):
  LLM_BASE_URL, LLM_API_KEY, LLM_API_KEY_FILE, LLM_MODEL, LLM_TIMEOUT_S, LLM_TRACE_PATH
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .cache_manager import CacheConfig, load_cache_config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/pipeline.yaml"

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "ru": "Russian",
    "az": "Azerbaijani",
    "tr": "Turkish",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "zh": "Chinese",
    "ja": "Japanese",
    "ar": "Arabic",
}


@dataclass
class ModelProfile:
    """Request limits for one chat model."""
    name: str
    batch_size: int = 60
    max_tokens: int = 4000
    structured_output: bool = False


DEFAULT_MODELS: Dict[str, ModelProfile] = {
    "gpt-4o": ModelProfile("gpt-4o", batch_size=80, max_tokens=6000,
                           structured_output=True),
    "gpt-4-turbo": ModelProfile("gpt-4-turbo", batch_size=80, max_tokens=6000,
                                structured_output=True),
    "gpt-3.5-turbo-16k": ModelProfile("gpt-3.5-turbo-16k", batch_size=100, max_tokens=4000,
                                      structured_output=False),
    "gpt-3.5-turbo": ModelProfile("gpt-3.5-turbo", batch_size=60, max_tokens=2000,
                                  structured_output=False),
}


@dataclass
class TranslationConfig:
    model: str = "gpt-4o"
    batch_size: Optional[int] = None  # None: use the model profile
    max_item_chars: int = 1500
    max_inflight: int = 1
    retries: int = 1
    retry_backoff_s: float = 2.0
    temperature: float = 0.1
    filter_trivial: bool = False


@dataclass
class AnalysisConfig:
    model: str = "gpt-4o"
    max_tokens: int = 800
    max_item_chars: int = 1500
    temperature: float = 0.2


@dataclass
class IngestConfig:
    chunk_rows: int = 100


@dataclass
class RecordSchema:
    """Column layout of one quiz record (zero-based column indices)."""
    id_cols: List[int] = field(default_factory=lambda: [0, 1])
    question_col: int = 2
    variant_cols: List[int] = field(default_factory=lambda: [3, 5, 7, 9])
    code_cols: List[int] = field(default_factory=lambda: [4, 6, 8, 10])
    header_rows: int = 0

    def __post_init__(self):
        if len(self.variant_cols) > 4 or len(self.code_cols) > 4:
            raise ValueError("at most four variant and four code columns")
        if len(self.code_cols) != len(self.variant_cols):
            raise ValueError("code columns must pair with variant columns")


@dataclass
class DatasetQAConfig:
    schema: RecordSchema = field(default_factory=RecordSchema)
    poor_high_ratio: float = 0.10
    fair_any_ratio: float = 0.10
    max_issues: int = 100


@dataclass
class StoreConfig:
    path: str = "data/saved-data.json"


@dataclass
class PipelineConfig:
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    models: Dict[str, ModelProfile] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    cache: CacheConfig = field(default_factory=CacheConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    dataset_qa: DatasetQAConfig = field(default_factory=DatasetQAConfig)
    store: StoreConfig = field(default_factory=StoreConfig)

    def model_profile(self, model: str) -> ModelProfile:
        """Profile for ``model``; unknown models get conservative defaults."""
        return self.models.get(model) or ModelProfile(model)

    def batch_size_for(self, model: str) -> int:
        return self.translation.batch_size or self.model_profile(model).batch_size


def _apply(target: Any, values: Dict[str, Any]) -> None:
    for key, value in (values or {}).items():
        if hasattr(target, key):
            setattr(target, key, value)
        else:
            logger.warning(f"Unknown config key ignored: {type(target).__name__}.{key}")


def load_pipeline_config(config_path: Optional[str] = None) -> PipelineConfig:
    """
    Load pipeline configuration from YAML, falling back to defaults.

    Args:
        config_path: Path to pipeline.yaml. Defaults to ``config/pipeline.yaml``.
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH)
    config = PipelineConfig()
    data: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_model = os.getenv("LLM_MODEL", "").strip()

    _apply(config.translation, data.get("translation"))
    _apply(config.analysis, data.get("analysis"))
    _apply(config.ingest, data.get("ingest"))
    _apply(config.store, data.get("store"))
    if path.exists():
        config.cache = load_cache_config(str(path))

    for name, values in (data.get("models") or {}).items():
        profile = config.models.get(name) or ModelProfile(name)
        _apply(profile, values)
        config.models[name] = profile

    qa = data.get("dataset_qa") or {}
    if "schema" in qa:
        config.dataset_qa.schema = RecordSchema(**qa["schema"])
    _apply(config.dataset_qa, {k: v for k, v in qa.items() if k != "schema"})

    if env_model and "model" not in (data.get("translation") or {}):
        config.translation.model = env_model
    return config
