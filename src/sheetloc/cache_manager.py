# -*- coding: utf-8 -*-
"""
cache_manager.py - Caching layer for the sheet localization pipeline
Purpose:
  In-memory LRU caches for normalization and content-analysis results, plus a
  SQLite-backed translation cache for reuse across sessions.

Features:
  - LRUCache: bounded, recency refreshed on get, least recently used evicted
  - TranslationCache key: SHA256(content + target_language + model_name)
  - Configurable TTL (default 7 days) and size limit with LRU eviction
  - Hit/miss/eviction statistics on both cache kinds
  - Thread-safe SQLite access

Every cache is an object owned by a session; nothing here is process-wide.
"""

import hashlib
import logging
import sqlite3
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Hashable, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# Prefix length used for content keys
KEY_PREFIX_CHARS = 50


@dataclass
class CacheStats:
    """Cache performance statistics."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    total_size_bytes: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    @property
    def miss_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.misses / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "total_requests": self.total_requests,
            "hit_rate": f"{self.hit_rate:.2%}",
            "miss_rate": f"{self.miss_rate:.2%}",
            "total_size_mb": f"{self.total_size_bytes / (1024 * 1024):.2f}"
        }


def content_prefix_key(content: str, kind: str = "clean") -> str:
    """
    Build a cache key from content length and prefix.

    A short digest of the full text is appended so that two long strings
    sharing length and prefix do not collide.
    """
    text = content or ""
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:12]
    return f"{kind}_{len(text)}_{text[:KEY_PREFIX_CHARS]}_{digest}"


class LRUCache:
    """
    Bounded in-memory cache with least-recently-used eviction.

    ``get`` re-inserts the key to mark it as most recent; ``set`` on a full
    cache drops the oldest entry. Values are stored as given and replaced
    wholesale on re-set.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.stats = CacheStats()
        self._data: "OrderedDict[Hashable, Any]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[Any]:
        if key not in self._data:
            self.stats.misses += 1
            return None
        self._data.move_to_end(key)
        self.stats.hits += 1
        return self._data[key]

    def set(self, key: Hashable, value: Any) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        elif len(self._data) >= self.max_size:
            self._data.popitem(last=False)
            self.stats.evictions += 1
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()
        self.stats = CacheStats()

    def keys(self):
        """Keys from least to most recently used."""
        return list(self._data.keys())

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class CacheConfig:
    """Cache configuration settings."""
    enabled: bool = True
    ttl_days: int = 7
    max_size_mb: int = 100
    location: str = ".cache/translations.db"
    content_cache_size: int = 1000
    analysis_cache_size: int = 500

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_days * 24 * 60 * 60

    @property
    def max_size_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024


class TranslationCache:
    """
    SQLite-based persistent cache for translated content.

    Cache key format: SHA256(content|target_language|model_name)
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        self.config = config or CacheConfig()
        self.stats = CacheStats()
        self._local = threading.local()
        self._lock = threading.RLock()

        if self.config.enabled:
            self._ensure_cache_dir()
            self._init_db()

    def _ensure_cache_dir(self) -> None:
        """Create cache directory if it doesn't exist."""
        if self.config.location == ":memory:":
            return
        cache_dir = Path(self.config.location).parent
        if cache_dir and not cache_dir.exists():
            cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                self.config.location,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    def _init_db(self) -> None:
        """Initialize SQLite database schema."""
        with self._lock:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS translations (
                    cache_key TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    translated_text TEXT NOT NULL,
                    target_language TEXT NOT NULL,
                    model_name TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    accessed_at INTEGER NOT NULL,
                    access_count INTEGER DEFAULT 1,
                    size_bytes INTEGER NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_accessed_at ON translations(accessed_at)"
            )
            conn.commit()

    @staticmethod
    def make_key(content: str, target_language: str, model_name: str) -> str:
        key_string = f"{content}|{target_language}|{model_name}"
        return hashlib.sha256(key_string.encode("utf-8")).hexdigest()

    def _is_expired(self, created_at: int) -> bool:
        if self.config.ttl_seconds <= 0:
            return False
        return (int(time.time()) - created_at) > self.config.ttl_seconds

    def _evict_if_needed(self, new_entry_size: int) -> None:
        """Evict least recently accessed entries until the new entry fits."""
        with self._lock:
            conn = self._get_connection()
            current_size = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM translations"
            ).fetchone()[0]

            max_size = self.config.max_size_bytes
            excess = current_size + new_entry_size - max_size
            if max_size <= 0 or excess <= 0:
                return

            evicted = 0
            rows = conn.execute(
                "SELECT cache_key, size_bytes FROM translations "
                "ORDER BY accessed_at ASC, access_count ASC"
            ).fetchall()
            for row in rows:
                if excess <= 0:
                    break
                conn.execute("DELETE FROM translations WHERE cache_key = ?", (row["cache_key"],))
                excess -= row["size_bytes"]
                evicted += 1
            conn.commit()
            self.stats.evictions += evicted
            logger.info(f"Translation cache evicted {evicted} entries")

    def get(self, content: str, target_language: str,
            model_name: str = "default") -> Tuple[bool, Optional[str]]:
        """
        Look up a translation.

        Returns:
            Tuple of (cache_hit, translated_text or None)
        """
        if not self.config.enabled:
            self.stats.misses += 1
            return False, None

        cache_key = self.make_key(content, target_language, model_name)
        with self._lock:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT translated_text, created_at FROM translations WHERE cache_key = ?",
                (cache_key,)
            ).fetchone()

            if row is None:
                self.stats.misses += 1
                return False, None

            if self._is_expired(row["created_at"]):
                conn.execute("DELETE FROM translations WHERE cache_key = ?", (cache_key,))
                conn.commit()
                self.stats.misses += 1
                return False, None

            conn.execute(
                "UPDATE translations SET accessed_at = ?, access_count = access_count + 1 "
                "WHERE cache_key = ?",
                (int(time.time()), cache_key)
            )
            conn.commit()
            self.stats.hits += 1
            return True, row["translated_text"]

    def set(self, content: str, translated_text: str, target_language: str,
            model_name: str = "default") -> bool:
        """Store a translation. Empty content or empty translations are skipped."""
        if not self.config.enabled:
            return False
        if not content or not translated_text:
            return False

        cache_key = self.make_key(content, target_language, model_name)
        now = int(time.time())
        size_bytes = len(content.encode("utf-8")) + len(translated_text.encode("utf-8"))

        self._evict_if_needed(size_bytes)

        with self._lock:
            conn = self._get_connection()
            conn.execute("""
                INSERT OR REPLACE INTO translations
                (cache_key, content, translated_text, target_language, model_name,
                 created_at, accessed_at, access_count, size_bytes)
                VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)
            """, (cache_key, content, translated_text, target_language, model_name,
                  now, now, size_bytes))
            conn.commit()
            self.stats.total_size_bytes = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM translations"
            ).fetchone()[0]
        return True

    def clear(self) -> int:
        """Remove all entries. Returns the number removed."""
        if not self.config.enabled:
            return 0
        with self._lock:
            conn = self._get_connection()
            count = conn.execute("SELECT COUNT(*) FROM translations").fetchone()[0]
            conn.execute("DELETE FROM translations")
            conn.commit()
            self.stats = CacheStats()
            return count

    def get_size(self) -> Dict[str, Any]:
        """Current cache size information."""
        if not self.config.enabled:
            return {"entry_count": 0, "total_bytes": 0, "total_mb": 0.0,
                    "max_mb": self.config.max_size_mb, "usage_percent": 0}
        with self._lock:
            conn = self._get_connection()
            entry_count = conn.execute("SELECT COUNT(*) FROM translations").fetchone()[0]
            total_bytes = conn.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM translations"
            ).fetchone()[0]
            return {
                "entry_count": entry_count,
                "total_bytes": total_bytes,
                "total_mb": total_bytes / (1024 * 1024),
                "max_mb": self.config.max_size_mb,
                "usage_percent": (total_bytes / self.config.max_size_bytes * 100)
                    if self.config.max_size_bytes > 0 else 0,
            }

    def close(self) -> None:
        """Close database connections."""
        with self._lock:
            if getattr(self._local, "connection", None) is not None:
                self._local.connection.close()
                self._local.connection = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def load_cache_config(config_path: str = "config/pipeline.yaml") -> CacheConfig:
    """
    Load cache configuration from the ``cache:`` section of a YAML file.

    Missing file or missing keys fall back to CacheConfig defaults.
    """
    config = CacheConfig()
    path = Path(config_path)
    if not path.exists():
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Failed to load cache config {config_path}: {e}")
        return config

    section = data.get("cache", {}) or {}
    for key in ("enabled", "ttl_days", "max_size_mb", "location",
                "content_cache_size", "analysis_cache_size"):
        if key in section:
            setattr(config, key, section[key])
    return config
