# -*- coding: utf-8 -*-
"""
errors.py - Error taxonomy for the sheet localization pipeline.

Kinds:
  - ParseError: input bytes are not a tabular file (fatal to ingest)
  - DecodeAnomaly: malformed entity reference (recorded, never raised)
  - BatchTranslationFailure: one batch failed upstream (absorbed by the engine)
  - Cancelled: cooperative cancellation seen at a batch boundary
  - ShapeMismatch: reconciliation produced the wrong length (repaired, logged)
  - LLMError: transport-level failure with retry hints
"""

from dataclasses import dataclass
from typing import Dict, Optional


class SheetLocError(Exception):
    """Base class for pipeline errors."""


class ParseError(SheetLocError):
    """Input bytes could not be read as a spreadsheet."""


@dataclass(frozen=True)
class DecodeAnomaly:
    """A numeric character reference that could not be decoded.

    Non-fatal: the normalizer leaves the substring in place and logs one of
    these at warning level.
    """
    reference: str
    reason: str

    def __str__(self) -> str:
        return f"{self.reference!r}: {self.reason}"


class LLMError(SheetLocError):
    """
    Standardized LLM error with retry hints.

    Kinds:
      - config: Missing configuration (not retryable)
      - timeout: Request timeout (retryable)
      - network: Network error (retryable)
      - upstream: Server error 429/5xx (retryable)
      - http: Client error 4xx (not retryable)
      - parse: Response parse error (retryable)
    """
    def __init__(self, kind: str, message: str,
                 retryable: bool = True,
                 http_status: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable
        self.http_status = http_status


class BatchTranslationFailure(SheetLocError):
    """A whole batch failed; its items fall back to the source content."""

    def __init__(self, batch_num: int, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"batch {batch_num}: {message}")
        self.batch_num = batch_num
        self.cause = cause


class Cancelled(SheetLocError):
    """Translation job stopped by its cancel token.

    ``partial`` holds the content → translation pairs from batches that
    completed before the stop; they are not rolled back.
    """

    def __init__(self, message: str = "Translation cancelled by user",
                 partial: Optional[Dict[str, str]] = None,
                 completed_batches: int = 0):
        super().__init__(message)
        self.partial = partial or {}
        self.completed_batches = completed_batches


class ShapeMismatch(SheetLocError):
    """Reconciled output length differs from its input batch."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected {expected} items, got {actual}")
        self.expected = expected
        self.actual = actual


class InvalidTargetLanguage(SheetLocError):
    """Target language code is empty or not shaped like a language tag."""
