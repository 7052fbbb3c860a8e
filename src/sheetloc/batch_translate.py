# -*- coding: utf-8 -*-
"""
batch_translate.py - Batch translation engine

Purpose:
  Translate an ordered list of unique strings through a chat-completions
  model, one request per batch, and return a list of the same length aligned
  by index to the input.

Flow per job:
  1. validate target language (InvalidTargetLanguage -> FAILED)
  2. translation cache lookup; hits are never sent
  3. partition the rest into batches of ``batch_size``
  4. per batch: truncate long items, build prompt, call model, parse with
     the ordered parser chain, reconcile per index
  5. a batch that still fails after retries falls back to its source items
     and is recorded as a BatchTranslationFailure
  6. cancel token checked before each dispatch and after each response

States: IDLE -> RUNNING -> COMPLETED | CANCELLED | FAILED
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .cache_manager import TranslationCache
from .cancellation import CancelToken
from .config import LANGUAGE_NAMES, PipelineConfig
from .errors import (
    BatchTranslationFailure,
    Cancelled,
    InvalidTargetLanguage,
    LLMError,
    ShapeMismatch,
)
from .trace import TraceLog

logger = logging.getLogger(__name__)

LANGUAGE_TAG_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$")
CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
LINE_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+")
TRUNCATION_SUFFIX = "..."


class _Unparsed:
    def __repr__(self) -> str:
        return "UNPARSED"


UNPARSED = _Unparsed()


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class JobStats:
    """Counters for one translation job."""
    batches_total: int = 0
    batches_ok: int = 0
    batches_failed: int = 0
    items_translated: int = 0
    items_fallback: int = 0
    items_cached: int = 0
    failures: List[BatchTranslationFailure] = field(default_factory=list)
    elapsed_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batches_total": self.batches_total,
            "batches_ok": self.batches_ok,
            "batches_failed": self.batches_failed,
            "items_translated": self.items_translated,
            "items_fallback": self.items_fallback,
            "items_cached": self.items_cached,
            "failures": [str(f) for f in self.failures],
            "elapsed_s": round(self.elapsed_s, 3),
        }


# ============================================================================
# Response parsers
# ============================================================================

def _strip_code_fence(text: str) -> str:
    match = CODE_FENCE_RE.search(text)
    return match.group(1) if match else text.strip()


def _load_json(text: str) -> Any:
    try:
        return json.loads(_strip_code_fence(text))
    except ValueError:
        return UNPARSED


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


class StructuredArrayParser:
    """``{"translations": [...]}``, any object with one array field, or a bare array."""
    name = "structured_array"

    def parse(self, text: str) -> Any:
        data = _load_json(text)
        if isinstance(data, list):
            return [_as_text(v) for v in data]
        if isinstance(data, dict):
            if isinstance(data.get("translations"), list):
                return [_as_text(v) for v in data["translations"]]
            for value in data.values():
                if isinstance(value, list):
                    return [_as_text(v) for v in value]
        return UNPARSED


class ObjectValuesParser:
    """Object of scalar values, e.g. ``{"1": "...", "2": "..."}``, taken in order."""
    name = "object_values"

    def parse(self, text: str) -> Any:
        data = _load_json(text)
        if not isinstance(data, dict) or not data:
            return UNPARSED
        values = list(data.values())
        if any(isinstance(v, (dict, list)) for v in values):
            return UNPARSED
        return [_as_text(v) for v in values]


class LegacyLineParser:
    """One translation per line, with ``1.`` / ``1)`` / ``-`` markers removed."""
    name = "legacy_lines"

    def parse(self, text: str) -> Any:
        if not text or not text.strip():
            return UNPARSED
        lines = []
        for line in _strip_code_fence(text).splitlines():
            line = line.strip()
            if line:
                lines.append(LINE_MARKER_RE.sub("", line, count=1))
        return lines


STRUCTURED_PARSERS = (StructuredArrayParser(), ObjectValuesParser(), LegacyLineParser())
LEGACY_PARSERS = (LegacyLineParser(),)


def parse_response(text: str, parsers: Sequence = STRUCTURED_PARSERS) -> Tuple[Any, Optional[str]]:
    """First parser result that is not UNPARSED, with the parser's name."""
    for parser in parsers:
        result = parser.parse(text)
        if result is not UNPARSED:
            return result, parser.name
    return UNPARSED, None


# ============================================================================
# Prompts and reconciliation
# ============================================================================

def truncate_item(item: str, max_chars: int) -> str:
    if max_chars and len(item) > max_chars:
        return item[:max_chars] + TRUNCATION_SUFFIX
    return item


def build_structured_prompt(items: List[str], language_name: str) -> Tuple[str, str]:
    system = (
        f"Translate to {language_name}. "
        'Return JSON: {"translations": ["translated1", "translated2", ...]} '
        f"with exactly {len(items)} strings, in the same order as the input."
    )
    numbered = "\n".join(f"{i + 1}. {item}" for i, item in enumerate(items))
    user = f"Translate these {len(items)} items:\n\n{numbered}"
    return system, user


def build_legacy_prompt(items: List[str], language_name: str) -> Tuple[str, str]:
    system = (
        f"Translate each numbered line to {language_name}. "
        f"Reply with exactly {len(items)} lines in the same order, "
        "one translation per line, keeping the numbers. No commentary."
    )
    numbered = "\n".join(f"{i + 1}. {' '.join(item.split())}" for i, item in enumerate(items))
    return system, numbered


def reconcile(sources: List[str], parsed: List[str]) -> Tuple[List[str], List[bool]]:
    """
    Index-aligned merge of parsed translations over source items.

    Returns:
        (values, translated) where ``translated[i]`` is False for slots that
        fell back to the source item
    """
    values: List[str] = []
    translated: List[bool] = []
    for i, source in enumerate(sources):
        candidate = parsed[i] if i < len(parsed) else ""
        if candidate and candidate.strip():
            values.append(candidate)
            translated.append(True)
        else:
            values.append(source)
            translated.append(False)
    return values, translated


def repair_shape(values: List[str], sources: List[str]) -> List[str]:
    """Pad with sources or truncate so that ``len(values) == len(sources)``."""
    if len(values) == len(sources):
        return values
    logger.error(f"ShapeMismatch: {ShapeMismatch(len(sources), len(values))}")
    if len(values) > len(sources):
        return values[:len(sources)]
    return values + sources[len(values):]


def resolve_language(target_language: str) -> str:
    """
    Display name for a target language code.

    Raises:
        InvalidTargetLanguage: empty or not shaped like a language tag
    """
    code = (target_language or "").strip()
    if code in LANGUAGE_NAMES:
        return LANGUAGE_NAMES[code]
    base = code.split("-")[0].lower()
    if LANGUAGE_TAG_RE.match(code):
        return LANGUAGE_NAMES.get(base, code)
    raise InvalidTargetLanguage(f"Invalid target language: {target_language!r}")


# ============================================================================
# Engine
# ============================================================================

ProgressCallback = Callable[[int, int, JobStats], None]


@dataclass
class _BatchOutcome:
    values: List[str]
    translated: List[bool]
    failure: Optional[BatchTranslationFailure] = None


class BatchTranslationEngine:
    """
    Translates unique content in batches through a chat client.

    Args:
        client: object with ``async chat(system, user, model=..., ...)``
            returning a result with ``.text`` (see llm_client.AsyncLLMClient)
        config: pipeline configuration (model, batch size, retries, ...)
        cache: optional persistent translation cache
        trace: trace buffer for batch events
        progress_callback: called after every batch as (done, total, stats)
    """

    def __init__(self, client, config: Optional[PipelineConfig] = None,
                 cache: Optional[TranslationCache] = None,
                 trace: Optional[TraceLog] = None,
                 progress_callback: Optional[ProgressCallback] = None):
        self.client = client
        self.config = config or PipelineConfig()
        self.cache = cache
        self.trace = trace or TraceLog()
        self.progress_callback = progress_callback
        self.state = JobState.IDLE
        self.stats = JobStats()

    @property
    def model(self) -> str:
        return self.config.translation.model

    async def translate_batch(self, items: List[str], target_language: str,
                              cancel_token: Optional[CancelToken] = None) -> List[str]:
        """
        Translate ``items``; the result has the same length and order.

        Raises:
            Cancelled: the token was cancelled at a batch boundary
            InvalidTargetLanguage: the job moves to FAILED
        """
        token = cancel_token if cancel_token is not None else CancelToken()
        self.state = JobState.RUNNING
        self.stats = JobStats()
        t0 = time.time()
        try:
            language_name = resolve_language(target_language)
        except InvalidTargetLanguage:
            self.state = JobState.FAILED
            raise

        items = list(items)
        results: List[Optional[str]] = [None] * len(items)
        pending: List[int] = []
        for idx, item in enumerate(items):
            hit, cached = self._cache_get(item, target_language)
            if hit:
                results[idx] = cached
                self.stats.items_cached += 1
            else:
                pending.append(idx)

        batch_size = max(1, self.config.batch_size_for(self.model))
        batches = [pending[i:i + batch_size] for i in range(0, len(pending), batch_size)]
        self.stats.batches_total = len(batches)
        logger.info(
            f"Translating {len(items)} items to {language_name}: {len(batches)} batches "
            f"of up to {batch_size}, {self.stats.items_cached} from cache"
        )

        sem = asyncio.Semaphore(max(1, self.config.translation.max_inflight))
        outcomes: Dict[int, _BatchOutcome] = {}
        cancel_seen = False
        done = 0

        async def run(batch_num: int, indices: List[int]) -> None:
            nonlocal cancel_seen, done
            async with sem:
                if cancel_seen or token.cancelled:
                    cancel_seen = True
                    return
                sources = [items[i] for i in indices]
                outcome = await self._run_batch(batch_num, sources, language_name, token)
                outcomes[batch_num] = outcome
                self._record(outcome, sources, target_language)
                done += 1
                if self.progress_callback:
                    self.progress_callback(done, len(batches), self.stats)
                if token.cancelled:
                    cancel_seen = True

        try:
            await asyncio.gather(*(run(n, idx) for n, idx in enumerate(batches)))
        except Exception:
            self.state = JobState.FAILED
            raise

        for batch_num, outcome in outcomes.items():
            for i, value in zip(batches[batch_num], outcome.values):
                results[i] = value

        self.stats.elapsed_s = time.time() - t0
        if cancel_seen:
            self.state = JobState.CANCELLED
            partial = {items[i]: v for i, v in enumerate(results) if v is not None}
            logger.info(f"Translation cancelled after {len(outcomes)}/{len(batches)} batches")
            raise Cancelled(token.reason or "Translation cancelled by user",
                            partial=partial, completed_batches=len(outcomes))

        final = repair_shape([v if v is not None else items[i] for i, v in enumerate(results)],
                             items)
        self.state = JobState.COMPLETED
        logger.info(f"Translation complete: {self.stats.to_dict()}")
        return final

    async def _run_batch(self, batch_num: int, sources: List[str], language_name: str,
                         token: Optional[CancelToken] = None) -> _BatchOutcome:
        tcfg = self.config.translation
        profile = self.config.model_profile(self.model)
        prepared = [truncate_item(s, tcfg.max_item_chars) for s in sources]
        if profile.structured_output:
            system, user = build_structured_prompt(prepared, language_name)
            response_format = {"type": "json_object"}
            parsers = STRUCTURED_PARSERS
        else:
            system, user = build_legacy_prompt(prepared, language_name)
            response_format = None
            parsers = LEGACY_PARSERS

        attempts = 1 + max(0, tcfg.retries)
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            if attempt and token is not None and token.cancelled:
                logger.info(f"Batch {batch_num + 1}: cancelled, not retrying")
                break
            try:
                result = await self.client.chat(
                    system=system,
                    user=user,
                    model=self.model,
                    temperature=tcfg.temperature,
                    max_tokens=profile.max_tokens,
                    response_format=response_format,
                    metadata={"step": "translate", "batch_idx": batch_num},
                )
                parsed, parser_name = parse_response(result.text, parsers)
                if parsed is UNPARSED:
                    raise LLMError("parse", "No parser accepted the response")
                if len(parsed) != len(sources):
                    logger.warning(
                        f"Batch {batch_num + 1}: {parser_name} returned {len(parsed)} "
                        f"items for {len(sources)}; missing slots keep source text"
                    )
                values, translated = reconcile(sources, parsed)
                return _BatchOutcome(repair_shape(values, sources), translated)
            except LLMError as e:
                last_error = e
                if not e.retryable or attempt + 1 >= attempts:
                    break
                if token is not None and token.cancelled:
                    logger.info(f"Batch {batch_num + 1}: cancelled, not retrying")
                    break
                delay = tcfg.retry_backoff_s * (attempt + 1)
                logger.warning(f"Batch {batch_num + 1} attempt {attempt + 1} failed ({e.kind}): "
                               f"{e}; retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
            except Exception as e:
                # unexpected reply shape fails this batch only
                logger.warning(f"Batch {batch_num + 1}: unusable response ({type(e).__name__}: {e})")
                last_error = e
                break

        failure = BatchTranslationFailure(batch_num + 1, str(last_error), cause=last_error)
        logger.error(f"BatchTranslationFailure: {failure}")
        self.trace.record({
            "type": "batch_failure",
            "batch_num": batch_num + 1,
            "kind": getattr(last_error, "kind", type(last_error).__name__),
            "msg": str(last_error)[:500],
            "items": len(sources),
        })
        return _BatchOutcome(list(sources), [False] * len(sources), failure)

    def _record(self, outcome: _BatchOutcome, sources: List[str], target_language: str) -> None:
        if outcome.failure is not None:
            self.stats.batches_failed += 1
            self.stats.failures.append(outcome.failure)
        else:
            self.stats.batches_ok += 1
        for source, value, ok in zip(sources, outcome.values, outcome.translated):
            if ok:
                self.stats.items_translated += 1
                if self.cache is not None:
                    self.cache.set(source, value, target_language, self.model)
            else:
                self.stats.items_fallback += 1

    def _cache_get(self, item: str, target_language: str) -> Tuple[bool, Optional[str]]:
        if self.cache is None:
            return False, None
        return self.cache.get(item, target_language, self.model)
