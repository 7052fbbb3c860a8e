# -*- coding: utf-8 -*-
"""
llm_client.py - OpenAI-compatible chat client

Provides:
- AsyncLLMClient: aiohttp client used by the translation engine and analyzer
- ping: synchronous connectivity check (requests), used by the CLI

Env:
  LLM_BASE_URL      e.g. https://api.openai.com/v1
  LLM_API_KEY       bearer token
  LLM_API_KEY_FILE  file holding the key (plain, or an "api key: ..." line)
  LLM_MODEL         default model
  LLM_TIMEOUT_S     request timeout (default 60)

Errors are raised as LLMError with kind/retryable/http_status:
  429 and 5xx -> upstream (retryable), other 4xx -> http (not retryable),
  transport timeout -> timeout, connection failure -> network,
  unreadable body -> parse.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import requests

from .errors import LLMError
from .trace import TraceLog

logger = logging.getLogger(__name__)

UPSTREAM_STATUSES = (429, 500, 502, 503, 504)
CHARS_PER_TOKEN = 4


def _estimate_tokens(text: str) -> int:
    return max(1, len(text or "") // CHARS_PER_TOKEN)


def _load_api_key() -> str:
    """Load API key with file-based injection support."""
    key_file = os.getenv("LLM_API_KEY_FILE", "").strip()
    if key_file and os.path.exists(key_file):
        try:
            with open(key_file, "r", encoding="utf-8") as f:
                content = f.read().strip()
        except OSError as e:
            logger.warning(f"Cannot read LLM_API_KEY_FILE {key_file}: {e}")
            content = ""
        for line in content.splitlines():
            line = line.strip()
            if line.lower().startswith(("api key:", "api_key:")):
                return line.split(":", 1)[1].strip()
        if content and "\n" not in content and ":" not in content:
            return content
    return os.getenv("LLM_API_KEY", "")


@dataclass
class LLMResult:
    """Result of one chat completion."""
    text: str
    latency_ms: int
    model: str
    request_id: Optional[str] = None
    usage: Optional[dict] = None
    raw: Optional[dict] = None


class AsyncLLMClient:
    """
    Asynchronous chat-completions client.

    The aiohttp session belongs to the instance and is opened lazily; use the
    client as an async context manager or call ``close()``.

    Usage:
        async with AsyncLLMClient() as client:
            result = await client.chat(system="...", user="...", model="gpt-4o")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_s: Optional[float] = None,
        trace: Optional[TraceLog] = None,
    ):
        self.base_url = (base_url or os.getenv("LLM_BASE_URL", "")).strip().rstrip("/")
        self.api_key = (api_key or _load_api_key()).strip()
        self.default_model = (model or os.getenv("LLM_MODEL", "")).strip()
        self.timeout_s = timeout_s or float(os.getenv("LLM_TIMEOUT_S", "60"))
        self.trace = trace or TraceLog()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_s, connect=10)
            conn = aiohttp.TCPConnector(limit=20, enable_cleanup_closed=True)
            self._session = aiohttp.ClientSession(
                connector=conn,
                timeout=timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _error(self, kind: str, message: str, model: str, step: str,
               retryable: bool = True, http_status: Optional[int] = None) -> LLMError:
        self.trace.record({
            "type": "llm_error",
            "kind": kind,
            "msg": message[:500],
            "step": step,
            "selected_model": model,
            "http_status": http_status,
        })
        return LLMError(kind, message, retryable=retryable, http_status=http_status)

    async def chat(
        self,
        system: str,
        user: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        response_format: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LLMResult:
        """
        Send one chat completion request.

        Args:
            system: System prompt
            user: User message
            model: Model name (defaults to LLM_MODEL)
            response_format: e.g. {"type": "json_object"}
            metadata: Tracing context (step, batch_idx)

        Raises:
            LLMError
        """
        step = (metadata or {}).get("step", "_default")
        model = model or self.default_model
        if not self.configured:
            raise LLMError(
                "config",
                "Missing LLM configuration. Set env vars: LLM_BASE_URL, LLM_API_KEY",
                retryable=False,
            )
        if not model:
            raise LLMError("config", "No model configured (set LLM_MODEL)", retryable=False)

        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload: Dict[str, Any] = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if response_format:
            payload["response_format"] = response_format

        self.trace.record({
            "type": "llm_request",
            "step": step,
            "selected_model": model,
            "req_chars": len(system) + len(user),
            "batch_idx": (metadata or {}).get("batch_idx"),
        })

        session = await self._get_session()
        t0 = time.time()
        try:
            async with session.post(url, headers=headers, json=payload) as resp:
                latency_ms = int((time.time() - t0) * 1000)
                if resp.status in UPSTREAM_STATUSES:
                    text = await resp.text()
                    raise self._error("upstream", f"Upstream error HTTP {resp.status}: {text[:200]}",
                                      model, step, retryable=True, http_status=resp.status)
                if resp.status >= 400:
                    text = await resp.text()
                    raise self._error("http", f"HTTP error {resp.status}: {text[:200]}",
                                      model, step, retryable=False, http_status=resp.status)
                try:
                    data = await resp.json(content_type=None)
                    text_content = data["choices"][0]["message"]["content"] or ""
                except (ValueError, KeyError, IndexError, TypeError) as e:
                    raise self._error("parse", f"Response parse error: {e}", model, step) from e
                if not isinstance(text_content, str):
                    raise self._error(
                        "parse",
                        f"Response parse error: content is {type(text_content).__name__}, not text",
                        model, step,
                    )
        except asyncio.TimeoutError as e:
            raise self._error("timeout", f"Request timeout after {self.timeout_s}s",
                              model, step) from e
        except aiohttp.ClientError as e:
            raise self._error("network", f"Network error: {e}", model, step) from e

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else None
        if usage and usage.get("prompt_tokens"):
            prompt_tokens = usage["prompt_tokens"]
            completion_tokens = usage.get("completion_tokens", 0)
            usage_source = "api_usage"
        else:
            prompt_tokens = _estimate_tokens(system) + _estimate_tokens(user)
            completion_tokens = _estimate_tokens(text_content)
            usage_source = "local_estimate"

        self.trace.record({
            "type": "llm_response",
            "step": step,
            "request_id": data.get("id"),
            "latency_ms": latency_ms,
            "resp_chars": len(text_content),
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "usage_source": usage_source,
            "selected_model": model,
        })
        return LLMResult(
            text=text_content,
            latency_ms=latency_ms,
            model=model,
            request_id=data.get("id"),
            usage=usage,
            raw=data,
        )


def ping(base_url: Optional[str] = None, api_key: Optional[str] = None,
         model: Optional[str] = None, timeout_s: float = 30) -> LLMResult:
    """
    Synchronous one-shot request to verify base URL, key and model.

    Raises:
        LLMError
    """
    base_url = (base_url or os.getenv("LLM_BASE_URL", "")).strip().rstrip("/")
    api_key = (api_key or _load_api_key()).strip()
    model = (model or os.getenv("LLM_MODEL", "")).strip()
    if not base_url or not api_key or not model:
        raise LLMError("config", "Set LLM_BASE_URL, LLM_API_KEY and LLM_MODEL", retryable=False)

    payload = {
        "model": model,
        "messages": [{"role": "user", "content": "Reply with OK."}],
        "max_tokens": 5,
        "temperature": 0,
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    t0 = time.time()
    try:
        resp = requests.post(f"{base_url}/chat/completions", headers=headers,
                             json=payload, timeout=timeout_s)
    except requests.Timeout as e:
        raise LLMError("timeout", f"Request timeout after {timeout_s}s: {e}") from e
    except requests.RequestException as e:
        raise LLMError("network", f"Network error: {e}") from e

    if resp.status_code in UPSTREAM_STATUSES:
        raise LLMError("upstream", f"Upstream error HTTP {resp.status_code}: {resp.text[:200]}",
                       http_status=resp.status_code)
    if resp.status_code >= 400:
        raise LLMError("http", f"HTTP error {resp.status_code}: {resp.text[:200]}",
                       retryable=False, http_status=resp.status_code)
    try:
        data = resp.json()
        text = data["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise LLMError("parse", f"Response parse error: {e}") from e
    if not isinstance(text, str):
        raise LLMError("parse", f"Response parse error: content is {type(text).__name__}, not text")
    return LLMResult(text=text, latency_ms=int((time.time() - t0) * 1000), model=model,
                     request_id=data.get("id"), usage=data.get("usage"), raw=data)
