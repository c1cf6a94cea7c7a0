"""
Settings provider - read-only adapter over the Settings collaborator.

Stored record (single document in ``settings``)::

    {
        "version": 3,
        "grading_scales": {"<program_id>": [{"grade": "A", "min_score": 80, "max_score": 100}, ...]},
        "report_card_theme": {"background_color": "#fff", ...}
    }
"""

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..cache import SettingsCache
from ..errors import ConfigurationError
from ..models import GradeBand
from .grading_scale import GradingScaleResolver

logger = logging.getLogger(__name__)


class SettingsSnapshot:
    """One version of the settings record."""

    def __init__(self, doc: Dict[str, Any]):
        self.version = doc.get("version", 0)
        self.grading_scales: Dict[str, Any] = doc.get("grading_scales") or {}
        self.report_card_theme: Dict[str, Any] = doc.get("report_card_theme") or {}

    def get_grading_scale(self, program_id: str) -> List[GradeBand]:
        raw = self.grading_scales.get(program_id)
        if not raw:
            raise ConfigurationError(f"No grading scale configured for program '{program_id}'")
        return GradingScaleResolver.load_bands(raw, program_id)

    def get_report_card_theme(self) -> Dict[str, Any]:
        return self.report_card_theme


class SettingsProvider:
    """Loads the settings record per operation, cached for a short TTL."""

    def __init__(self, db: AsyncIOMotorDatabase, cache: Optional[SettingsCache] = None):
        self.db = db
        self.cache = cache or SettingsCache(ttl_seconds=0)

    async def snapshot(self) -> SettingsSnapshot:
        doc = self.cache.get()
        if doc is None:
            doc = await self.db.settings.find_one({}, {"_id": 0}, sort=[("version", -1)])
            if doc is None:
                logger.warning("No settings record found; grading scales are unavailable")
                doc = {}
            self.cache.set(doc)
        return SettingsSnapshot(doc)

    async def get_grading_scale(self, program_id: str) -> List[GradeBand]:
        return (await self.snapshot()).get_grading_scale(program_id)

    async def get_report_card_theme(self) -> Dict[str, Any]:
        return (await self.snapshot()).get_report_card_theme()
