"""Unit tests for logging infrastructure."""
import logging
from mbc.infrastructure.logging import setup_logging


def test_setup_logging_creates_log_file(tmp_path):
    """Test that setup_logging creates log file and parent directories."""
    log_file = tmp_path / "nested" / "logs" / "compression.log"

    logger = setup_logging(log_file, debug=False)

    assert isinstance(logger, logging.Logger)
    assert log_file.exists()
    assert "Logging initialized" in log_file.read_text()


def test_setup_logging_debug_mode(tmp_path):
    """Test setup_logging in debug mode."""
    logger = setup_logging(tmp_path / "debug.log", debug=True)

    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_normal_mode(tmp_path):
    """Test setup_logging in normal mode."""
    logger = setup_logging(tmp_path / "normal.log", debug=False)

    assert logger.getEffectiveLevel() == logging.INFO


def test_setup_logging_format(tmp_path):
    log_file = tmp_path / "fmt.log"
    setup_logging(log_file)
    logging.getLogger("mbc.test").warning("something odd")
    for handler in logging.getLogger().handlers:
        handler.flush()

    line = [l for l in log_file.read_text().splitlines() if "something odd" in l][0]
    assert " - WARNING - something odd" in line
