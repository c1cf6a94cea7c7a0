import pytest

from schoolmarks.cache import SettingsCache
from schoolmarks.errors import ConfigurationError
from schoolmarks.services import SettingsProvider


async def test_snapshot_reads_latest_version(seeded):
    await seeded.settings.insert_one({
        "version": 2,
        "grading_scales": {"prog_primary": [{"grade": "P", "min_score": 0, "max_score": 100}]},
        "report_card_theme": {"accent_color": "#000000"},
    })
    snapshot = await SettingsProvider(seeded).snapshot()
    assert snapshot.version == 2
    assert [band.grade for band in snapshot.get_grading_scale("prog_primary")] == ["P"]
    assert snapshot.get_report_card_theme() == {"accent_color": "#000000"}


async def test_cached_snapshot_survives_edits_within_ttl(seeded):
    cache = SettingsCache(ttl_seconds=300)
    provider = SettingsProvider(seeded, cache)
    assert (await provider.snapshot()).version == 1

    await seeded.settings.update_one({"version": 1}, {"$set": {"version": 5}})
    assert (await provider.snapshot()).version == 1

    # An uncached reader sees the edit straight away.
    assert (await SettingsProvider(seeded).snapshot()).version == 5


async def test_missing_settings_record(db):
    provider = SettingsProvider(db)
    assert await provider.get_report_card_theme() == {}
    with pytest.raises(ConfigurationError):
        await provider.get_grading_scale("prog_primary")


def test_zero_ttl_disables_caching():
    cache = SettingsCache(ttl_seconds=0)
    cache.set({"version": 1})
    assert cache.get() is None

