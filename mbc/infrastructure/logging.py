import logging
from pathlib import Path
from typing import Optional

DEFAULT_LOG_PATH = Path("/tmp/mbc/compression.log")

def setup_logging(log_path: Optional[Path] = None, debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for MBC.

    Logs go to a single file so the live dashboard owns the terminal.
    Returns configured logger instance.

    Args:
        log_path: Path to log file (parent directories are created)
        debug: If True, enable DEBUG level logging with per-file timings
    """
    log_file = Path(log_path) if log_path else DEFAULT_LOG_PATH
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file)],
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger
