# -*- coding: utf-8 -*-
"""
store.py - JSON-file key-value store for saved grids

The whole store is one JSON object on disk. Writes go to a temp file that is
then renamed over the original, so a crash never leaves a torn file.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles

from .models import Grid

logger = logging.getLogger(__name__)

GRID_KEY = "grid"


class GridStore:
    """Async get/put/delete over a single JSON file."""

    def __init__(self, path: str = "data/saved-data.json"):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            text = await f.read()
        if not text.strip():
            return {}
        return json.loads(text)

    async def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, ensure_ascii=False, default=str))
        os.replace(tmp, self.path)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            return (await self._read_all()).get(key)

    async def put(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._read_all()
            data[key] = value
            await self._write_all(data)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = await self._read_all()
            if key not in data:
                return False
            del data[key]
            await self._write_all(data)
            return True

    async def save_grid(self, grid: Grid, key: str = GRID_KEY) -> None:
        await self.put(key, grid.to_dict())
        logger.info(f"Saved grid {grid.n_rows}x{grid.n_cols} to {self.path} [{key}]")

    async def load_grid(self, key: str = GRID_KEY) -> Optional[Grid]:
        data = await self.get(key)
        if data is None:
            return None
        return Grid.from_dict(data)

    async def clear_grid(self, key: str = GRID_KEY) -> bool:
        return await self.delete(key)
