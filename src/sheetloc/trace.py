# -*- coding: utf-8 -*-
"""
trace.py - LLM call trace events

Every request/response/error event goes into a bounded in-memory ring buffer
(newest first) and, when LLM_TRACE_PATH is set, is appended to a JSONL file.
Tracing never breaks the main flow: write failures are logged and dropped.
"""

import json
import logging
import os
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class TraceLog:
    """Ring buffer of trace events owned by one session."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, path: Optional[str] = None):
        self.max_entries = max_entries
        if path is None:
            path = os.getenv("LLM_TRACE_PATH", "").strip()
        self.path = path or None
        self._entries: "deque[Dict[str, Any]]" = deque(maxlen=max_entries)

    def record(self, event: Dict[str, Any]) -> Dict[str, Any]:
        entry = dict(event)
        entry.setdefault("timestamp", datetime.now().isoformat())
        self._entries.appendleft(entry)
        if self.path:
            self._append_jsonl(entry)
        return entry

    def _append_jsonl(self, entry: Dict[str, Any]) -> None:
        try:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.debug(f"Trace write to {self.path} failed: {e}")

    def entries(self) -> List[Dict[str, Any]]:
        """Events newest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
