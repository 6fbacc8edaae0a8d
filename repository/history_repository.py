# repository/history_repository.py
import asyncio
import json
from pathlib import Path
from typing import List, Optional
from util.types import HistoricalRecord
import logging

logger = logging.getLogger(__name__)


class HistoryRepository:
    """
    Historical shipments: how often a UN number was actually chosen for
    this SKU or for products whose name contains the query text.
    """

    def __init__(self, records: Optional[List[HistoricalRecord]] = None) -> None:
        self._records = records

    async def _all(self) -> List[HistoricalRecord]:
        return list(self._records or [])

    async def count_agreeing(
        self, query_text: str, un_number: str, sku: Optional[str] = None
    ) -> int:
        if not un_number:
            return 0
        needle = (query_text or "").strip().lower()
        target = un_number.upper()
        count = 0
        for rec in await self._all():
            name = str(rec.get("product_name") or "").lower()
            same_product = (sku and rec.get("sku") == sku) or (needle and needle in name)
            chosen = str(rec.get("chosen_un") or "").upper()
            if same_product and chosen == target:
                count += 1
        return count


class JsonHistoryRepository(HistoryRepository):
    """Records file is optional; a missing or broken file means no history."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> List[HistoricalRecord]:
        if not self._path.exists():
            logger.info("history.missing path=%s", self._path)
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("history.read.error path=%s", self._path, exc_info=True)
            return []
        return [r for r in data if isinstance(r, dict)] if isinstance(data, list) else []

    async def _all(self) -> List[HistoricalRecord]:
        async with self._lock:
            if self._records is None:
                self._records = await asyncio.to_thread(self._read)
        return self._records
