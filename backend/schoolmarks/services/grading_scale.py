"""
Grading scale resolver - maps a finalized score to a letter grade.
"""

from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..errors import ConfigurationError
from ..models import GradeBand

NO_GRADE = "N/A"

BandInput = Union[GradeBand, Dict[str, Any]]


class GradingScaleResolver:
    """Resolves grades against administrator-configured bands."""

    @staticmethod
    def load_bands(raw_bands: Optional[Iterable[BandInput]], program: str = "") -> List[GradeBand]:
        """
        Parse and check a stored scale.

        Accepts both ``min_score``/``max_score`` and the legacy camelCase keys.
        Bands come back sorted by ``min_score``. Overlapping or inverted bands
        mean the Settings record is broken and raise ConfigurationError.
        """
        if not raw_bands:
            raise ConfigurationError(f"No grading scale configured for program '{program}'")

        bands = []
        for raw in raw_bands:
            if isinstance(raw, GradeBand):
                bands.append(raw)
                continue
            try:
                bands.append(GradeBand(
                    grade=raw.get("grade"),
                    min_score=raw.get("min_score", raw.get("minScore")),
                    max_score=raw.get("max_score", raw.get("maxScore")),
                ))
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Malformed grading band for program '{program}': {raw}"
                ) from e

        bands.sort(key=lambda band: band.min_score)

        for band in bands:
            if band.min_score > band.max_score:
                raise ConfigurationError(
                    f"Grading band '{band.grade}' has min_score above max_score"
                )
        for lower, upper in zip(bands, bands[1:]):
            if upper.min_score <= lower.max_score:
                raise ConfigurationError(
                    f"Grading bands '{lower.grade}' and '{upper.grade}' overlap"
                )
        return bands

    @staticmethod
    def resolve(bands: Iterable[GradeBand], score: Optional[float]) -> str:
        """First band with min_score <= score <= max_score wins; otherwise N/A."""
        if score is None:
            return NO_GRADE
        for band in bands:
            if band.min_score <= score <= band.max_score:
                return band.grade
        return NO_GRADE
