"""Pytest configuration and shared fixtures for sheet-localization-mvr tests."""
import json
import re
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

# Add src directory to Python path for imports
PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / 'src'
sys.path.insert(0, str(SRC_DIR))

from sheetloc.config import PipelineConfig  # noqa: E402
from sheetloc.ingest import build_cell  # noqa: E402
from sheetloc.llm_client import LLMResult  # noqa: E402
from sheetloc.models import Grid, GridMetadata  # noqa: E402
from sheetloc.text_normalize import CellNormalizer  # noqa: E402

NUMBERED_LINE_RE = re.compile(r"^(\d+)\. (.*)$")


def numbered_items(user: str) -> List[str]:
    """Items of a numbered prompt, in order."""
    items = []
    for line in user.splitlines():
        match = NUMBERED_LINE_RE.match(line)
        if match:
            items.append(match.group(2))
    return items


def echo_json(prefix: str = "T:") -> Callable[..., str]:
    """Reply handler that 'translates' each item as prefix + item."""
    def handler(system: str, user: str, **kwargs) -> str:
        return json.dumps({"translations": [f"{prefix}{item}" for item in numbered_items(user)]},
                          ensure_ascii=False)
    return handler


class ScriptedChatClient:
    """
    Stand-in for AsyncLLMClient.

    Replies come from ``handler(system, user, **kwargs)`` when given, else
    from the ``replies`` queue. A reply that is an exception is raised.
    """
    configured = True

    def __init__(self, replies: Optional[List[Any]] = None,
                 handler: Optional[Callable[..., Any]] = None):
        self.replies = list(replies or [])
        self.handler = handler
        self.calls: List[dict] = []
        self.closed = False

    async def chat(self, system: str, user: str, **kwargs) -> LLMResult:
        self.calls.append({"system": system, "user": user, **kwargs})
        reply = self.handler(system, user, **kwargs) if self.handler else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResult(text=reply, latency_ms=1, model=kwargs.get("model") or "fake")

    async def close(self) -> None:
        self.closed = True


class FakeResponse:
    """aiohttp response stand-in (async context manager)."""

    def __init__(self, status=200, body=None, text=None):
        self.status = status
        self._text = text if text is not None else json.dumps(body)

    async def text(self):
        return self._text

    async def json(self, content_type=None):
        return json.loads(self._text)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    aiohttp ClientSession stand-in.

    ``response`` is returned for every post; a list is consumed one per post.
    """

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests: List[dict] = []
        self.closed = False

    def post(self, url, headers=None, json=None):
        self.requests.append({"url": url, "headers": headers, "json": json})
        if self.error is not None:
            raise self.error
        if isinstance(self.response, list):
            return self.response.pop(0)
        return self.response

    async def close(self):
        self.closed = True


def ok_body(content: Any = "Bonjour") -> dict:
    return {
        "id": "req-1",
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 2},
    }


def use_session(client, session) -> None:
    """Make ``client`` post through ``session``."""
    async def get_session():
        return session
    client._get_session = get_session


def make_grid(values: List[List[Any]]) -> Grid:
    """Grid from raw values, normalized the way ingestion does it."""
    normalizer = CellNormalizer()
    rows = [[build_cell(v, r, c, normalizer) for c, v in enumerate(row)]
            for r, row in enumerate(values)]
    return Grid(rows=rows, metadata=GridMetadata(sheet_name="test",
                                                 source_columns=len(values[0]) if values else 0))


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def pipeline_config():
    """Defaults with batch size 100 and no retry delay."""
    config = PipelineConfig()
    config.translation.batch_size = 100
    config.translation.retries = 0
    config.translation.retry_backoff_s = 0
    config.cache.enabled = False
    return config


@pytest.fixture
def echo_client():
    return ScriptedChatClient(handler=echo_json())


@pytest.fixture
def quiz_grid():
    """Ten quiz records in [id, id2, question, v1, c1, ..., v4, c4] layout."""
    rows = []
    for i in range(10):
        rows.append([str(i + 1), f"Q{i + 1}", f"Question {i + 1}?",
                     "Alpha", "1", "Beta", "0", "Gamma", "0", "Delta", "0"])
    # two records with every variant empty
    for i in (2, 6):
        rows[i][3:11] = ["", "", "", "", "", "", "", ""]
    # one record with two correct answers
    rows[4][6] = "1"
    return make_grid(rows)


@pytest.fixture
def trace_path(tmp_path, monkeypatch):
    path = tmp_path / "trace.jsonl"
    monkeypatch.setenv("LLM_TRACE_PATH", str(path))
    return path
