import io
import zipfile
import pytest
from PIL import Image
from mbc.config.models import AppConfig
from mbc.domain.events import ProgressUpdated
from mbc.domain.models import IntensityLevel, Pipeline, RunState
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.file_scanner import FileScanner
from mbc.pipeline.orchestrator import Orchestrator
from mbc.ui.manager import UIManager
from mbc.ui.state import UIState

pytestmark = pytest.mark.integration


@pytest.fixture
def photo_dir(tmp_path, make_jpeg, make_png):
    d = tmp_path / "photos"
    d.mkdir()
    (d / "a_large.jpg").write_bytes(make_jpeg(width=3000, height=2000, seed=1))
    (d / "b_corrupt.jpg").write_bytes(b"\xff\xd8\xff\xe0 cut short")
    (d / "c_icon.png").write_bytes(make_png(width=32, height=32))
    (d / "readme.txt").write_text("not an image")
    return d


def test_image_batch_from_directory(photo_dir):
    bus = EventBus()
    ui_state = UIState()
    UIManager(bus, ui_state)
    progress = []
    bus.subscribe(ProgressUpdated, lambda e: progress.append(e.percent))

    files = FileScanner(Pipeline.IMAGE).scan([photo_dir])
    orchestrator = Orchestrator(config=AppConfig(general={"workers": 3}), event_bus=bus)
    estimates = orchestrator.select(files, Pipeline.IMAGE, IntensityLevel.HIGH)
    assert len(estimates) == 3

    result = orchestrator.run()
    orchestrator.close()

    assert orchestrator.state == RunState.COMPLETE
    assert result.file_name == "compressed_images.zip"
    with zipfile.ZipFile(io.BytesIO(result.downloadable_bytes)) as zf:
        assert zf.namelist() == ["a_large.jpg", "b_corrupt.jpg", "c_icon.png"]
        large = Image.open(io.BytesIO(zf.read("a_large.jpg")))
        assert large.size == (1280, 853)
        assert zf.read("b_corrupt.jpg") == (photo_dir / "b_corrupt.jpg").read_bytes()

    assert progress[-1] == 100
    assert max(progress[:-1]) == 90
    assert ui_state.completed_count == 2
    assert ui_state.fallback_count == 1
    assert ui_state.result_name == "compressed_images.zip"


def test_webp_single_file(photo_dir):
    files = FileScanner(Pipeline.WEBP).scan([photo_dir / "c_icon.png"])
    orchestrator = Orchestrator(config=AppConfig(), event_bus=EventBus())
    orchestrator.select(files, Pipeline.WEBP, IntensityLevel.MEDIUM)
    result = orchestrator.run()

    assert result.file_name == "c_icon.webp"
    assert Image.open(io.BytesIO(result.downloadable_bytes)).format == "WEBP"
