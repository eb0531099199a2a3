"""Error taxonomy for the media compression pipelines.

Per-file errors (decode/encode/codec/timeout) are converted into fallbacks by
the orchestrator when they happen inside a batch; single-file runs let them
propagate to the caller unchanged.
"""

from typing import Optional


class MbcError(Exception):
    """Base class for all MBC errors."""


class DecodeError(MbcError):
    """Input bytes are not a decodable raster image."""


class EncodeError(MbcError):
    """Target encoder rejected the configuration."""


class ConversionError(MbcError):
    """WebP conversion failed."""


class UnsupportedCodecError(MbcError):
    """Audio input could not be decoded by the host decoder."""

    def __init__(self, media_type: Optional[str], detail: Optional[str] = None):
        self.media_type = media_type or "unknown format"
        self.detail = detail
        super().__init__(
            f"Audio decoding failed: {self.media_type}. Use an MP3 or WAV file instead."
        )


class DecoderUnavailableError(MbcError):
    """The host has no audio decode facility (ffmpeg/ffprobe not installed)."""


class EmptyAudioError(MbcError):
    """Decoded audio has zero (or negative) duration."""

    def __init__(self, message: str = "Audio duration is zero."):
        super().__init__(message)


class EncodingProducedNoDataError(MbcError):
    """MP3 encoder finished without emitting a single byte."""

    def __init__(self, message: str = "MP3 encoding failed: the encoder produced no data."):
        super().__init__(message)


class NoProcessableFilesError(MbcError):
    """Nothing was produced that could be returned to the caller."""

    def __init__(self, message: str = "No files were processed."):
        super().__init__(message)


class FileTimeoutError(MbcError):
    """A single file exceeded the per-file processing timeout."""

    def __init__(self, name: str, timeout_s: float):
        self.name = name
        self.timeout_s = timeout_s
        super().__init__(f"Processing {name} exceeded {timeout_s:g}s timeout")


class InvalidStateError(MbcError):
    """Operation is not allowed in the orchestrator's current state."""


class RunInProgressError(InvalidStateError):
    """A run is already processing; the orchestrator is not reentrant."""


class RunCancelledError(MbcError):
    """The active run was cancelled and its partial results discarded."""
