import logging
import typer
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from mbc.config.loader import load_config
from mbc.config.models import AppConfig
from mbc.domain.errors import MbcError, RunCancelledError
from mbc.domain.models import IntensityLevel, Pipeline
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.ffmpeg import ffmpeg_available
from mbc.infrastructure.file_scanner import FileScanner
from mbc.infrastructure.logging import setup_logging
from mbc.pipeline.estimator import estimate_all
from mbc.pipeline.orchestrator import Orchestrator
from mbc.ui.dashboard import Dashboard, format_size, render_estimates, render_report
from mbc.ui.manager import UIManager
from mbc.ui.state import UIState

app = typer.Typer(help="MBC (Media Batch Compression) - images, audio, PDF bundles and WebP conversion")

DEFAULT_CONFIG_PATH = Path("conf/mbc.yaml")

console = Console()


def _load_app_config(config_path: Optional[Path]) -> AppConfig:
    """Explicit --config must exist; the default location is optional."""
    if config_path is not None:
        return load_config(config_path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return AppConfig()


def _scan(paths: List[Path], pipeline: Pipeline):
    files = FileScanner(pipeline).scan(paths)
    if not files:
        typer.secho(
            f"Error: No {pipeline.value} files found in the given paths.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    return files


@app.command()
def estimate(
    paths: List[Path] = typer.Argument(..., help="Files or directories to estimate"),
    pipeline: Pipeline = typer.Option(Pipeline.IMAGE, "--pipeline", "-p", case_sensitive=False, help="image, audio, pdf or webp"),
    level: Optional[IntensityLevel] = typer.Option(None, "--level", "-l", case_sensitive=False, help="low, medium or high"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show predicted output sizes without processing anything."""
    try:
        config = _load_app_config(config_path)
        files = _scan(paths, pipeline)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    chosen = level or config.general.default_level
    estimates = estimate_all(files, chosen, pipeline, config.audio)
    console.print(render_estimates(estimates, title=f"ESTIMATE ({pipeline.value}, {chosen.value})"))


@app.command()
def compress(
    paths: List[Path] = typer.Argument(..., help="Files or directories to compress"),
    pipeline: Pipeline = typer.Option(Pipeline.IMAGE, "--pipeline", "-p", case_sensitive=False, help="image, audio, pdf or webp"),
    level: Optional[IntensityLevel] = typer.Option(None, "--level", "-l", case_sensitive=False, help="low, medium or high"),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Where to write the result"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Override number of worker threads"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Override per-file timeout in seconds"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Estimate, confirm, then compress the selection into one downloadable file."""
    orchestrator = None
    try:
        config = _load_app_config(config_path)
        # Apply CLI overrides
        if workers is not None: config.general.workers = workers
        if timeout is not None: config.general.file_timeout_s = timeout
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True
        chosen = level or config.general.default_level

        log_path_value = Path(config.general.log_path) if config.general.log_path else None
        logger = setup_logging(log_path_value, debug=config.general.debug)
        logger.info(f"Config: pipeline={pipeline.value}, level={chosen.value}, workers={config.general.workers}, "
                    f"timeout={config.general.file_timeout_s:g}s, debug={config.general.debug}")

        files = _scan(paths, pipeline)
        if pipeline == Pipeline.AUDIO and not ffmpeg_available():
            typer.secho("Error: audio compression requires ffmpeg and ffprobe on PATH.", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        bus = EventBus()
        ui_state = UIState()
        UIManager(bus, ui_state)
        orchestrator = Orchestrator(config=config, event_bus=bus)

        estimates = orchestrator.select(files, pipeline, chosen)
        console.print(render_estimates(estimates, title=f"ESTIMATE ({pipeline.value}, {chosen.value})"))
        if not yes and not typer.confirm("Start?", default=True):
            typer.secho("Nothing done.", fg=typer.colors.YELLOW)
            raise typer.Exit(code=0)

        with Dashboard(ui_state, console=console):
            future = orchestrator.start()
            try:
                result = future.result()
            except KeyboardInterrupt:
                orchestrator.cancel()
                future.exception()  # wait for the in-flight file to finish
                raise

        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / result.file_name
        output_path.write_bytes(result.downloadable_bytes)
        logger.info(f"Result written: {output_path} ({result.new_total_bytes} bytes)")

        console.print(render_report(result))
        typer.secho(
            f"✓ {output_path} ({format_size(result.original_total_bytes)} → "
            f"{format_size(result.new_total_bytes)}, {result.reduction_percent}% smaller)",
            fg=typer.colors.GREEN,
        )
        if result.fallback_count:
            typer.secho(
                f"{result.fallback_count} file(s) could not be processed and were kept as originals.",
                fg=typer.colors.YELLOW,
            )

    except (KeyboardInterrupt, RunCancelledError):
        typer.secho("\n✓ Compression stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except (MbcError, FileNotFoundError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        logging.getLogger(__name__).exception(f"Fatal error: {e}")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    finally:
        if orchestrator is not None:
            orchestrator.close()

if __name__ == "__main__":
    app()
