import pytest
from mbc.config.models import AudioLevels, AudioSettings
from mbc.domain.models import InputFile, IntensityLevel, Pipeline
from mbc.pipeline.estimator import (
    audio_reduction_percent, estimate, estimate_all, raster_reduction_percent,
)

MB = 1024 * 1024


def _file(size, name="x.jpg"):
    return InputFile(data=b"\0" * size, name=name)


@pytest.mark.parametrize("level, size_mb, expected", [
    (IntensityLevel.LOW, 0.5, 10),
    (IntensityLevel.LOW, 4, 20),
    (IntensityLevel.LOW, 10, 30),
    (IntensityLevel.MEDIUM, 1, 30),
    (IntensityLevel.MEDIUM, 5, 50),
    (IntensityLevel.MEDIUM, 8, 60),
    (IntensityLevel.HIGH, 2, 50),
    (IntensityLevel.HIGH, 5, 75),
    (IntensityLevel.HIGH, 20, 85),
])
def test_raster_reduction_bounds(level, size_mb, expected):
    assert raster_reduction_percent(int(size_mb * MB), level) == pytest.approx(expected)


def test_raster_reduction_monotone_in_level_and_size():
    for size in (100, MB, 3 * MB, 10 * MB):
        low, medium, high = (raster_reduction_percent(size, lvl) for lvl in IntensityLevel)
        assert low <= medium <= high
    for level in IntensityLevel:
        values = [raster_reduction_percent(s * MB, level) for s in range(0, 12)]
        assert values == sorted(values)


def test_audio_reduction_from_bitrate():
    assert audio_reduction_percent(128) == 50
    assert audio_reduction_percent(64) == 75
    assert audio_reduction_percent(32) == 88
    assert audio_reduction_percent(16) == 90
    assert audio_reduction_percent(256) == 20


def test_audio_reduction_rounds_halves_up():
    assert audio_reduction_percent(96) == 63
    assert audio_reduction_percent(160) == 38


def test_estimate_audio_uses_level_bitrate():
    est = estimate(_file(1000, "a.wav"), IntensityLevel.MEDIUM, Pipeline.AUDIO)
    assert est.estimated_reduction_percent == 75
    assert est.estimated_bytes == pytest.approx(250)

    custom = AudioLevels(medium=AudioSettings(bitrate_kbps=96, sample_rate_hz=22050), high=AudioSettings(bitrate_kbps=32, sample_rate_hz=16000))
    assert estimate(_file(1000, "a.wav"), "medium", "audio", custom).estimated_reduction_percent == 63


def test_estimate_zero_bytes_is_zero_reduction():
    for pipeline in Pipeline:
        est = estimate(_file(0), IntensityLevel.HIGH, pipeline)
        assert est.estimated_reduction_percent == 0
        assert est.estimated_bytes == 0


def test_estimate_invariant_and_purity():
    f = _file(3 * MB)
    first = estimate(f, IntensityLevel.HIGH, Pipeline.WEBP)
    second = estimate(f, IntensityLevel.HIGH, Pipeline.WEBP)
    assert first == second
    assert 0 <= first.estimated_reduction_percent <= 95
    assert first.estimated_bytes == pytest.approx(f.size_bytes * (1 - first.estimated_reduction_percent / 100))


def test_pdf_follows_raster_heuristic():
    f = _file(2 * MB, "doc.pdf")
    assert estimate(f, "low", Pipeline.PDF) == estimate(f, "low", Pipeline.IMAGE)


def test_estimate_all_keeps_order():
    files = [_file(10, "b.jpg"), _file(20, "a.jpg")]
    assert [e.name for e in estimate_all(files, "low", "image")] == ["b.jpg", "a.jpg"]
