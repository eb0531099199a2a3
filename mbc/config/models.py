from typing import Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, model_validator
from mbc.domain.models import IntensityLevel

class ImageSettings(BaseModel):
    """Raster compression parameters for one intensity level."""
    max_size_mb: float = Field(gt=0)
    max_long_edge_px: int = Field(gt=0)
    quality: float = Field(gt=0.0, le=1.0)

class AudioSettings(BaseModel):
    """MP3 transcode parameters for one intensity level.

    `channels` is carried for completeness; the transcoder always downmixes to mono.
    """
    bitrate_kbps: int = Field(gt=0, le=320)
    sample_rate_hz: int = Field(gt=0)
    channels: int = Field(default=1, ge=1, le=2)

class ImageLevels(BaseModel):
    low: ImageSettings = Field(default_factory=lambda: ImageSettings(max_size_mb=2.0, max_long_edge_px=2560, quality=0.95))
    medium: ImageSettings = Field(default_factory=lambda: ImageSettings(max_size_mb=1.0, max_long_edge_px=1920, quality=0.8))
    high: ImageSettings = Field(default_factory=lambda: ImageSettings(max_size_mb=0.5, max_long_edge_px=1280, quality=0.6))

    def for_level(self, level: IntensityLevel) -> ImageSettings:
        return getattr(self, IntensityLevel(level).value)

class AudioLevels(BaseModel):
    low: AudioSettings = Field(default_factory=lambda: AudioSettings(bitrate_kbps=128, sample_rate_hz=44100, channels=1))
    medium: AudioSettings = Field(default_factory=lambda: AudioSettings(bitrate_kbps=64, sample_rate_hz=22050, channels=1))
    high: AudioSettings = Field(default_factory=lambda: AudioSettings(bitrate_kbps=32, sample_rate_hz=16000, channels=1))

    def for_level(self, level: IntensityLevel) -> AudioSettings:
        return getattr(self, IntensityLevel(level).value)

    @model_validator(mode="after")
    def validate_bitrate_order(self):
        if not (self.low.bitrate_kbps >= self.medium.bitrate_kbps >= self.high.bitrate_kbps):
            raise ValueError("audio bitrate must not increase from low to high intensity")
        return self

class ArchiveConfig(BaseModel):
    compression: Literal["stored", "deflated"] = "stored"
    compress_level: Optional[int] = Field(default=None, ge=0, le=9)

class GeneralConfig(BaseModel):
    # CLI overrides are assigned after load and must hit the same bounds
    model_config = ConfigDict(validate_assignment=True)

    workers: int = Field(default=2, gt=0, le=16)
    file_timeout_s: float = Field(default=300.0, gt=0)
    upload_limit_mb: float = Field(default=4.5, gt=0)
    default_level: IntensityLevel = IntensityLevel.MEDIUM
    log_path: Optional[str] = Field(default="/tmp/mbc/compression.log")
    debug: bool = False

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    image: ImageLevels = Field(default_factory=ImageLevels)
    audio: AudioLevels = Field(default_factory=AudioLevels)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
