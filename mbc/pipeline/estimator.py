"""Heuristic size-reduction estimates shown before any real work happens.

Pure functions: no I/O, no state, identical inputs give identical outputs.
"""

from typing import Iterable, List, Optional, Tuple

from mbc.config.models import AudioLevels
from mbc.domain.models import InputFile, IntensityLevel, Pipeline, SizeEstimate, round_half_up

BYTES_PER_MB = 1024 * 1024
REFERENCE_AUDIO_BITRATE_KBPS = 256
MAX_REDUCTION_PERCENT = 95.0

# level -> (lower bound %, slope % per MB, upper bound %)
RASTER_COEFFICIENTS = {
    IntensityLevel.LOW: (10.0, 5.0, 30.0),
    IntensityLevel.MEDIUM: (30.0, 10.0, 60.0),
    IntensityLevel.HIGH: (50.0, 15.0, 85.0),
}

AUDIO_REDUCTION_BOUNDS: Tuple[float, float] = (20.0, 90.0)

_DEFAULT_AUDIO_LEVELS = AudioLevels()


def _clamp(low: float, value: float, high: float) -> float:
    return max(low, min(high, value))


def raster_reduction_percent(size_bytes: int, level: IntensityLevel) -> float:
    low, slope, high = RASTER_COEFFICIENTS[IntensityLevel(level)]
    size_mb = size_bytes / BYTES_PER_MB
    return _clamp(low, size_mb * slope, high)


def audio_reduction_percent(bitrate_kbps: int) -> float:
    ratio_percent = round_half_up((1 - bitrate_kbps / REFERENCE_AUDIO_BITRATE_KBPS) * 100)
    return _clamp(AUDIO_REDUCTION_BOUNDS[0], ratio_percent, AUDIO_REDUCTION_BOUNDS[1])


def estimate(
    file: InputFile,
    level: IntensityLevel,
    pipeline: Pipeline,
    audio_levels: Optional[AudioLevels] = None,
) -> SizeEstimate:
    """Predicts output size for one file.

    PDF follows the raster heuristic, as the selection screen always did; the
    PDF pipeline itself never recompresses.
    """
    original = file.size_bytes
    if original <= 0:
        reduction = 0.0
    elif Pipeline(pipeline) == Pipeline.AUDIO:
        settings = (audio_levels or _DEFAULT_AUDIO_LEVELS).for_level(level)
        reduction = audio_reduction_percent(settings.bitrate_kbps)
    else:
        reduction = raster_reduction_percent(original, level)

    reduction = _clamp(0.0, float(reduction), MAX_REDUCTION_PERCENT)
    return SizeEstimate(
        name=file.name,
        original_bytes=original,
        estimated_bytes=original * (1 - reduction / 100),
        estimated_reduction_percent=reduction,
    )


def estimate_all(
    files: Iterable[InputFile],
    level: IntensityLevel,
    pipeline: Pipeline,
    audio_levels: Optional[AudioLevels] = None,
) -> List[SizeEstimate]:
    return [estimate(f, level, pipeline, audio_levels) for f in files]
