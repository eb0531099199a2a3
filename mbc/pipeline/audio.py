"""Audio transcoding: any decodable input -> mono MP3 at a reduced rate.

Decode is delegated to ffprobe/ffmpeg (float32 PCM at the source layout);
resampling, downmixing and sample conversion happen here in numpy; MP3
encoding uses LAME through lameenc, fed in 1152-sample blocks.
"""

import logging
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional

import lameenc
import numpy as np

from mbc.config.models import AudioSettings
from mbc.domain.errors import (
    DecoderUnavailableError,
    EmptyAudioError,
    EncodeError,
    EncodingProducedNoDataError,
    FileTimeoutError,
    UnsupportedCodecError,
)
from mbc.domain.models import round_half_up
from mbc.infrastructure.ffmpeg import FFmpegAdapter
from mbc.infrastructure.ffprobe import FFprobeAdapter

MP3_FRAME_SAMPLES = 1152
OUTPUT_CHANNELS = 1
LAME_QUALITY = 2  # 2 = near-best, 7 = fastest
LOWPASS_TAPS = 63


def downmix_to_mono(samples: np.ndarray) -> np.ndarray:
    """(frames, channels) -> (frames,) by averaging channels."""
    if samples.ndim == 1:
        return samples.astype(np.float32, copy=False)
    if samples.shape[1] == 1:
        return samples[:, 0].astype(np.float32, copy=False)
    return samples.mean(axis=1, dtype=np.float64).astype(np.float32)


def _lowpass(signal: np.ndarray, cutoff: float) -> np.ndarray:
    """Windowed-sinc FIR low-pass; cutoff is a fraction of the source Nyquist."""
    n = np.arange(LOWPASS_TAPS) - (LOWPASS_TAPS - 1) / 2
    kernel = cutoff * np.sinc(cutoff * n) * np.hamming(LOWPASS_TAPS)
    kernel /= kernel.sum()
    return np.convolve(signal, kernel, mode="same")


def resample(signal: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Resamples a mono signal to floor(duration * target_rate) samples.

    Only ever called with target_rate <= source_rate; an anti-alias
    low-pass runs before the linear interpolation.
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError(f"Invalid sample rates: {source_rate} -> {target_rate}")
    length = int(np.floor(len(signal) / source_rate * target_rate))
    if length <= 0:
        return np.zeros(0, dtype=np.float32)
    if target_rate == source_rate:
        return signal[:length].astype(np.float32, copy=False)

    filtered = signal.astype(np.float64)
    if len(filtered) >= LOWPASS_TAPS:
        filtered = _lowpass(filtered, target_rate / source_rate)
    positions = np.arange(length) * (source_rate / target_rate)
    return np.interp(positions, np.arange(len(filtered)), filtered).astype(np.float32)


def float_to_int16(samples: np.ndarray) -> np.ndarray:
    """[-1, 1] floats -> int16 with asymmetric full-scale (x32768 below zero, x32767 above)."""
    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return scaled.astype(np.int16)


class AudioTranscoder:
    """Transcodes arbitrary audio bytes into a mono MP3 byte stream.

    Args:
        ffprobe_adapter: used to read the source sample rate and channel count.
        ffmpeg_adapter: used to decode to float32 PCM.
        timeout_s: per-call subprocess timeout; None waits forever.
    """

    def __init__(
        self,
        ffprobe_adapter: Optional[FFprobeAdapter] = None,
        ffmpeg_adapter: Optional[FFmpegAdapter] = None,
        timeout_s: Optional[float] = None,
        debug: bool = False,
    ):
        self.ffprobe_adapter = ffprobe_adapter or FFprobeAdapter()
        self.ffmpeg_adapter = ffmpeg_adapter or FFmpegAdapter(debug=debug)
        self.timeout_s = timeout_s
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def decode(self, data: bytes, media_type: Optional[str], name: str = "input") -> tuple:
        """Returns (samples[frames, channels] float32, sample_rate)."""
        suffix = Path(name).suffix or ".bin"
        with tempfile.TemporaryDirectory(prefix="mbc-audio-") as tmp_dir:
            input_path = Path(tmp_dir) / f"source{suffix}"
            input_path.write_bytes(data)
            try:
                info = self.ffprobe_adapter.get_audio_info(input_path, timeout=self.timeout_s)
                sample_rate = int(info.get("sample_rate") or 0)
                channels = int(info.get("channels") or 0)
                if sample_rate <= 0 or channels <= 0:
                    raise ValueError(f"Unusable stream layout: rate={sample_rate}, channels={channels}")
                samples = self.ffmpeg_adapter.decode_pcm(
                    input_path, channels=channels, sample_rate=sample_rate, timeout=self.timeout_s
                )
            except subprocess.TimeoutExpired as exc:
                raise FileTimeoutError(name, self.timeout_s or 0) from exc
            except FileNotFoundError as exc:
                raise DecoderUnavailableError(
                    "Audio decoding requires ffmpeg and ffprobe on PATH"
                ) from exc
            except (RuntimeError, ValueError) as exc:
                self.logger.warning(f"Audio decode failed for {name} ({media_type}): {exc}")
                raise UnsupportedCodecError(media_type, detail=str(exc)) from exc
        return samples, sample_rate

    def encode_mp3(self, pcm: np.ndarray, sample_rate: int, bitrate_kbps: int) -> bytes:
        """Feeds int16 mono PCM to LAME in MP3_FRAME_SAMPLES blocks, then flushes."""
        encoder = lameenc.Encoder()
        chunks: List[bytes] = []
        try:
            encoder.set_bit_rate(bitrate_kbps)
            encoder.set_in_sample_rate(sample_rate)
            encoder.set_channels(OUTPUT_CHANNELS)
            encoder.set_quality(LAME_QUALITY)
            for start in range(0, len(pcm), MP3_FRAME_SAMPLES):
                block = pcm[start:start + MP3_FRAME_SAMPLES]
                chunk = encoder.encode(block.tobytes())
                if len(chunk) > 0:
                    chunks.append(bytes(chunk))
            tail = encoder.flush()
            if len(tail) > 0:
                chunks.append(bytes(tail))
        except (RuntimeError, ValueError) as exc:
            raise EncodeError(
                f"MP3 encoder rejected settings (bitrate={bitrate_kbps}kbps, rate={sample_rate}Hz): {exc}"
            ) from exc
        finally:
            del encoder
        return b"".join(chunks)

    def transcode(
        self,
        data: bytes,
        settings: AudioSettings,
        media_type: Optional[str] = None,
        name: str = "input",
    ) -> bytes:
        start_time = time.monotonic()
        samples, source_rate = self.decode(data, media_type, name)

        frames = samples.shape[0] if samples.ndim else 0
        duration = frames / source_rate if source_rate else 0.0
        if duration <= 0:
            raise EmptyAudioError()

        # Rate is only ever reduced; output is mono whatever settings.channels says.
        target_rate = min(source_rate, settings.sample_rate_hz)
        mono = resample(downmix_to_mono(samples), source_rate, target_rate)
        del samples
        if len(mono) <= 0:
            raise EmptyAudioError()

        pcm = float_to_int16(mono)
        del mono
        mp3 = self.encode_mp3(pcm, target_rate, settings.bitrate_kbps)
        if len(mp3) == 0:
            raise EncodingProducedNoDataError()

        reduction = round_half_up((1 - len(mp3) / len(data)) * 100) if data else 0
        self.logger.info(
            f"Audio transcoded: {name} {len(data)} -> {len(mp3)} bytes ({reduction}% reduction), "
            f"{source_rate}Hz -> {target_rate}Hz mono @ {settings.bitrate_kbps}kbps"
        )
        if self.debug:
            self.logger.debug(f"AUDIO_TIMING: {name} duration={duration:.2f}s elapsed={time.monotonic() - start_time:.2f}s")
        return mp3
