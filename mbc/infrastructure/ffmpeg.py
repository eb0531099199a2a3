import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional

import numpy as np


def ffmpeg_available(binary: str = "ffmpeg") -> bool:
    """Check if ffmpeg is on PATH."""
    return shutil.which(binary) is not None


class FFmpegAdapter:
    """Wrapper around ffmpeg for decoding audio to raw PCM."""

    def __init__(self, binary: str = "ffmpeg", debug: bool = False):
        self.binary = binary
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_decode_command(self, input_path: Path, channels: int, sample_rate: int) -> List[str]:
        """Constructs the ffmpeg command line for float32 PCM on stdout.

        Rate and channel count are pinned to the source values so that all
        resampling and downmixing happens in one place (the transcoder).
        """
        return [
            self.binary,
            "-nostdin",
            "-v", "error",
            "-i", str(input_path),
            "-map", "0:a:0",
            "-vn",
            "-ac", str(channels),
            "-ar", str(sample_rate),
            "-f", "f32le",
            "-acodec", "pcm_f32le",
            "pipe:1",
        ]

    def decode_pcm(
        self,
        input_path: Path,
        channels: int,
        sample_rate: int,
        timeout: Optional[float] = None,
    ) -> np.ndarray:
        """Decodes the first audio stream into a (frames, channels) float32 array.

        Raises RuntimeError on a non-zero ffmpeg exit; subprocess.TimeoutExpired propagates.
        """
        if channels <= 0 or sample_rate <= 0:
            raise ValueError(f"Invalid stream layout: channels={channels}, sample_rate={sample_rate}")

        cmd = self._build_decode_command(input_path, channels, sample_rate)
        start_time = time.monotonic() if self.debug else None
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"ffmpeg decode failed (rc={result.returncode}): {stderr[-500:]}")

        raw = result.stdout
        usable = len(raw) - (len(raw) % (4 * channels))
        samples = np.frombuffer(raw[:usable], dtype="<f4").reshape(-1, channels)

        if self.debug and start_time is not None:
            self.logger.debug(
                f"FFMPEG_DECODE: {input_path.name} frames={samples.shape[0]} "
                f"elapsed={time.monotonic() - start_time:.2f}s"
            )
        return samples
