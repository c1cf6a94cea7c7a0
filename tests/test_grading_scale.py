import pytest

from schoolmarks.errors import ConfigurationError
from schoolmarks.models import GradeBand
from schoolmarks.services.grading_scale import NO_GRADE, GradingScaleResolver

from conftest import PRIMARY_SCALE


def test_load_bands_sorts_by_min_score():
    bands = GradingScaleResolver.load_bands(list(reversed(PRIMARY_SCALE)), "prog_primary")
    assert [b.grade for b in bands] == ["F", "C", "B", "A"]


def test_load_bands_accepts_legacy_camel_case_keys():
    bands = GradingScaleResolver.load_bands(
        [{"grade": "A", "minScore": 160, "maxScore": 200}, {"grade": "B", "minScore": 120, "maxScore": 159}]
    )
    assert bands[0] == GradeBand(grade="B", min_score=120, max_score=159)


def test_resolve_picks_matching_band_inclusive_bounds():
    bands = GradingScaleResolver.load_bands(PRIMARY_SCALE)
    assert GradingScaleResolver.resolve(bands, 85) == "A"
    assert GradingScaleResolver.resolve(bands, 80) == "A"
    assert GradingScaleResolver.resolve(bands, 100) == "A"
    assert GradingScaleResolver.resolve(bands, 78) == "B"
    assert GradingScaleResolver.resolve(bands, 0) == "F"


def test_resolve_unmatched_score_falls_back_to_na():
    bands = GradingScaleResolver.load_bands(PRIMARY_SCALE)
    assert GradingScaleResolver.resolve(bands, 79.995) == NO_GRADE
    assert GradingScaleResolver.resolve(bands, 120) == NO_GRADE
    assert GradingScaleResolver.resolve(bands, None) == NO_GRADE


def test_missing_scale_is_configuration_error():
    with pytest.raises(ConfigurationError):
        GradingScaleResolver.load_bands([], "prog_x")


def test_overlapping_bands_are_configuration_error():
    with pytest.raises(ConfigurationError, match="overlap"):
        GradingScaleResolver.load_bands([
            {"grade": "A", "min_score": 70, "max_score": 100},
            {"grade": "B", "min_score": 60, "max_score": 70},
        ])


def test_inverted_band_is_configuration_error():
    with pytest.raises(ConfigurationError):
        GradingScaleResolver.load_bands([{"grade": "A", "min_score": 90, "max_score": 80}])


def test_malformed_band_is_configuration_error():
    with pytest.raises(ConfigurationError, match="Malformed"):
        GradingScaleResolver.load_bands([{"grade": "A", "min_score": "lots"}])
