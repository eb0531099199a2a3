import subprocess
import json
from pathlib import Path
from typing import Dict, Any, Optional

class FFprobeAdapter:
    """Wrapper around ffprobe to extract audio stream information."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _to_int(value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    def _build_command(self, file_path: Path) -> list:
        return [
            self.binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

    def get_audio_info(self, file_path: Path, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Executes ffprobe and parses JSON output for the first audio stream.

        Raises RuntimeError when ffprobe rejects the file and ValueError when
        the container holds no audio stream. subprocess.TimeoutExpired propagates.
        """
        result = subprocess.run(self._build_command(file_path), capture_output=True, text=True, timeout=timeout)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed for {file_path}: {result.stderr}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"ffprobe returned invalid JSON for {file_path}: {exc}") from exc

        audio_stream = next((s for s in data.get("streams", []) if s.get("codec_type") == "audio"), None)
        if not audio_stream:
            raise ValueError(f"No audio stream found in {file_path}")

        # Duration fallback order: format.duration, format tags, stream.duration, stream tags
        fmt = data.get("format", {})
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = self._to_float(audio_stream.get("duration"))
        if duration <= 0:
            tags = audio_stream.get("tags", {}) or {}
            duration = self._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))

        return {
            "codec": audio_stream.get("codec_name", "unknown"),
            "sample_rate": self._to_int(audio_stream.get("sample_rate")),
            "channels": self._to_int(audio_stream.get("channels")),
            "duration": duration,
            "format": fmt.get("format_name"),
        }
