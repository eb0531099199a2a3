import io
import wave
import shutil
import pytest
import numpy as np
import yaml
from PIL import Image
from mbc.config.models import AppConfig
from mbc.domain.models import InputFile
from mbc.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "workers": 2,
            "file_timeout_s": 30,
            "upload_limit_mb": 4.5,
            "default_level": "medium",
            "debug": False,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file with nested level tables."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mbc.yaml"

    content = {
        'general': {
            'workers': 3,
            'file_timeout_s': 60,
            'default_level': 'high',
            'debug': False,
        },
        'image': {
            'levels': {
                'low': {'max_size_mb': 3.0, 'max_long_edge_px': 3000, 'quality': 0.9},
                'medium': {'max_size_mb': 1.0, 'max_long_edge_px': 1600, 'quality': 0.75},
                'high': {'max_size_mb': 0.25, 'max_long_edge_px': 800, 'quality': 0.5},
            }
        },
        'audio': {
            'levels': {
                'low': {'bitrate_kbps': 160, 'sample_rate_hz': 44100},
                'medium': {'bitrate_kbps': 96, 'sample_rate_hz': 32000},
                'high': {'bitrate_kbps': 48, 'sample_rate_hz': 16000},
            }
        },
        'archive': {'compression': 'deflated', 'compress_level': 6},
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# Media Fixtures
# ============================================================================

def _noisy_rgb(width, height, seed=0):
    """Noise keeps encoders from collapsing the image to a few bytes."""
    rng = np.random.default_rng(seed)
    return Image.fromarray(rng.integers(0, 256, (height, width, 3), dtype=np.uint8), "RGB")

@pytest.fixture
def make_jpeg():
    def _make(width=640, height=480, quality=95, seed=0):
        buffer = io.BytesIO()
        _noisy_rgb(width, height, seed).save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()
    return _make

@pytest.fixture
def make_png():
    def _make(width=64, height=48, mode="RGBA"):
        img = Image.new(mode, (width, height), (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30))
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()
    return _make

@pytest.fixture
def make_wav():
    """16-bit PCM WAV with a sine tone per channel."""
    def _make(seconds=1.0, sample_rate=44100, channels=2, freq=440.0):
        frames = int(seconds * sample_rate)
        t = np.arange(frames) / sample_rate
        tone = 0.5 * np.sin(2 * np.pi * freq * t)
        pcm = (np.repeat(tone[:, None], channels, axis=1) * 32767).astype("<i2")
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(channels)
            wav.setsampwidth(2)
            wav.setframerate(sample_rate)
            wav.writeframes(pcm.tobytes())
        return buffer.getvalue()
    return _make

@pytest.fixture
def make_input():
    def _make(data, name, media_type="application/octet-stream"):
        return InputFile(data=data, name=name, media_type=media_type)
    return _make

@pytest.fixture
def requires_ffmpeg():
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        pytest.skip("ffmpeg/ffprobe not installed")

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (real ffmpeg decode + MP3 encode)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
