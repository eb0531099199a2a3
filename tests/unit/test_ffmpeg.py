import pytest
import numpy as np
from pathlib import Path
from unittest.mock import patch
from mbc.infrastructure.ffmpeg import FFmpegAdapter, ffmpeg_available

def test_build_decode_command_pins_source_layout():
    cmd = FFmpegAdapter(binary="/usr/bin/ffmpeg")._build_decode_command(Path("/tmp/in.m4a"), 2, 48000)
    assert cmd[0] == "/usr/bin/ffmpeg"
    assert cmd[cmd.index("-i") + 1] == "/tmp/in.m4a"
    assert cmd[cmd.index("-ac") + 1] == "2"
    assert cmd[cmd.index("-ar") + 1] == "48000"
    assert cmd[cmd.index("-f") + 1] == "f32le"
    assert cmd[-1] == "pipe:1"

def test_decode_pcm_reshapes_interleaved_samples():
    interleaved = np.array([0.1, -0.1, 0.2, -0.2, 0.3, -0.3], dtype="<f4")
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        mock_run.return_value.stdout = interleaved.tobytes() + b"\x00\x01"  # trailing partial frame

        samples = FFmpegAdapter().decode_pcm(Path("a.wav"), channels=2, sample_rate=44100, timeout=3)

    assert samples.shape == (3, 2)
    assert samples[:, 0] == pytest.approx([0.1, 0.2, 0.3])
    assert samples[:, 1] == pytest.approx([-0.1, -0.2, -0.3])
    assert mock_run.call_args.kwargs["timeout"] == 3

def test_decode_pcm_failure():
    with patch("subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        mock_run.return_value.stderr = b"Invalid data found when processing input"

        with pytest.raises(RuntimeError, match="Invalid data"):
            FFmpegAdapter().decode_pcm(Path("a.ogg"), channels=1, sample_rate=16000)

def test_decode_pcm_rejects_bad_layout():
    with pytest.raises(ValueError):
        FFmpegAdapter().decode_pcm(Path("a.ogg"), channels=0, sample_rate=16000)

def test_ffmpeg_available():
    with patch("shutil.which", return_value=None):
        assert ffmpeg_available() is False
    with patch("shutil.which", return_value="/usr/bin/ffmpeg"):
        assert ffmpeg_available() is True
