"""
Statistics sink.

Writes a snapshot of every TradeTiming record to a JSON file per day
(stats_YYYY-MM-DD.json in the log directory). Each write replaces the file
with the full current snapshot.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class JsonStatsSink:
    """
    Persists timing snapshots as pretty-printed JSON.

    Usage:
        sink = JsonStatsSink("./logs")
        path = await sink.write(registry.snapshot())
    """

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, now: Optional[datetime] = None) -> Path:
        now = now or datetime.now(timezone.utc)
        return self._directory / f"stats_{now.date().isoformat()}.json"

    async def write(self, records: List[dict], now: Optional[datetime] = None) -> Path:
        """Write the snapshot without blocking the event loop."""
        path = self.path_for(now)
        await asyncio.to_thread(self._write_sync, path, records)
        logger.debug(f"Statistics saved to: {path}")
        return path

    @staticmethod
    def _write_sync(path: Path, records: List[dict]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(records, indent=2), encoding="utf-8")
        tmp.replace(path)
