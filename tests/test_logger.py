"""
Unit tests for centralized logging system.

Tests cover:
- Logger initialization and configuration
- Structured JSON logging format
- Context variables (station_id, order_id, operator_id)
- Log file creation and rotation
- Cleanup of old log files
"""

import configparser
import json
import logging
import os
import shutil
import sys
import tempfile
import time
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from logger import (
    AppLogger,
    StructuredJSONFormatter,
    clear_logging_context,
    get_logger,
    set_operator_context,
    set_order_context,
    set_station_context,
)


@pytest.fixture
def temp_dir_with_cleanup():
    """Create temp directory with proper cleanup of file handlers."""
    temp_dir = tempfile.mkdtemp()

    yield temp_dir

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    try:
        shutil.rmtree(temp_dir)
    except PermissionError:
        time.sleep(0.1)
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def reset_logger():
    """Reset logger state so the next get_logger() configures again."""
    AppLogger._initialized = False
    saved_config_path = AppLogger._config_path
    saved_app_handlers = AppLogger._handlers
    root_logger = logging.getLogger()
    saved_handlers = root_logger.handlers[:]
    saved_level = root_logger.level
    for handler in saved_handlers:
        root_logger.removeHandler(handler)
    clear_logging_context()

    yield

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    for handler in saved_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(saved_level)
    AppLogger._config_path = saved_config_path
    AppLogger._handlers = saved_app_handlers
    AppLogger._initialized = True
    clear_logging_context()


def make_config(data_dir: str, level: str = 'INFO', **logging_options) -> configparser.ConfigParser:
    config = configparser.ConfigParser()
    config.add_section('Paths')
    config.set('Paths', 'DataDir', data_dir)
    config.add_section('Logging')
    config.set('Logging', 'LogLevel', level)
    for key, value in logging_options.items():
        config.set('Logging', key, value)
    return config


def make_record(msg="Test message", level=logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="TestLogger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
        func="test_function"
    )


def read_log_lines(data_dir: str):
    for handler in logging.getLogger().handlers[:]:
        handler.flush()
    log_file = Path(data_dir) / "logs" / f"{datetime.now():%Y-%m-%d}.log"
    with open(log_file, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


class TestStructuredJSONFormatter:
    """Test the JSON formatter for structured logging."""

    def test_basic_json_format(self):
        log_data = json.loads(StructuredJSONFormatter().format(make_record()))

        assert log_data["level"] == "INFO"
        assert log_data["tool"] == "dispatch_station"
        assert log_data["module"] == "TestLogger"
        assert log_data["function"] == "test_function"
        assert log_data["line"] == 42
        assert log_data["message"] == "Test message"
        datetime.fromisoformat(log_data["timestamp"])

    def test_json_format_with_context(self):
        set_station_context("STATION-1")
        set_order_context("ord-17")
        set_operator_context("u-4")
        try:
            log_data = json.loads(StructuredJSONFormatter().format(make_record("With context")))
        finally:
            clear_logging_context()

        assert log_data["station_id"] == "STATION-1"
        assert log_data["order_id"] == "ord-17"
        assert log_data["operator_id"] == "u-4"

    def test_json_format_with_exception(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        log_data = json.loads(StructuredJSONFormatter().format(
            make_record("Error occurred", level=logging.ERROR, exc_info=exc_info)))

        assert "ValueError" in log_data["exc_info"]
        assert "Test exception" in log_data["exc_info"]


class TestContextVariables:
    """Test context variable management."""

    def test_set_order_context(self):
        from logger import _order_id
        set_order_context("ord-1")
        assert _order_id.get() == "ord-1"

        set_order_context(None)
        assert _order_id.get() is None

    def test_clear_logging_context(self):
        set_station_context("STATION-1")
        set_order_context("ord-1")
        set_operator_context("u-4")

        clear_logging_context()

        from logger import _operator_id, _order_id, _station_id
        assert _station_id.get() is None
        assert _order_id.get() is None
        assert _operator_id.get() is None


@pytest.mark.usefixtures("reset_logger")
class TestAppLogger:
    """Test AppLogger class and logging setup."""

    def test_logger_creates_log_file(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config', return_value=make_config(temp_dir_with_cleanup)):
            logger = get_logger("Test")
            logger.info("Test message")

        log_file = Path(temp_dir_with_cleanup) / "logs" / f"{datetime.now():%Y-%m-%d}.log"
        assert log_file.exists()

    def test_logger_writes_json_with_context(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config', return_value=make_config(temp_dir_with_cleanup)):
            logger = get_logger("Test")
            set_order_context("ord-17")
            logger.info("JSON test message")

        last = read_log_lines(temp_dir_with_cleanup)[-1]
        assert last["message"] == "JSON test message"
        assert last["order_id"] == "ord-17"
        assert last["tool"] == "dispatch_station"

    def test_startup_banner_logged(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config', return_value=make_config(temp_dir_with_cleanup)):
            get_logger("Test")

        messages = [entry["message"] for entry in read_log_lines(temp_dir_with_cleanup)]
        assert "Dispatch Station Started" in messages

    def test_logger_rotation_settings(self, temp_dir_with_cleanup):
        config = make_config(temp_dir_with_cleanup, MaxLogSizeMB='5')
        with patch('logger.AppLogger._load_config', return_value=config):
            get_logger("Test")

        rotating = [h for h in logging.getLogger().handlers if hasattr(h, 'maxBytes')]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 5 * 1024 * 1024
        assert rotating[0].backupCount == 30

    def test_log_level_from_config(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config', return_value=make_config(temp_dir_with_cleanup, 'WARNING')):
            get_logger("Test")

        assert logging.getLogger().level == logging.WARNING

    def test_cleanup_old_logs(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir)

            old_date = datetime.now() - timedelta(days=35)
            old_log = log_dir / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            recent_date = datetime.now() - timedelta(days=5)
            recent_log = log_dir / f"{recent_date:%Y-%m-%d}.log"
            recent_log.write_text("recent log")
            os.utime(recent_log, (recent_date.timestamp(), recent_date.timestamp()))

            AppLogger._cleanup_old_logs(log_dir, retention_days=30)

            assert not old_log.exists()
            assert recent_log.exists()

    def test_cleanup_respects_zero_retention(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            old_date = datetime.now() - timedelta(days=100)
            old_log = Path(temp_dir) / f"{old_date:%Y-%m-%d}.log"
            old_log.write_text("old log")
            os.utime(old_log, (old_date.timestamp(), old_date.timestamp()))

            AppLogger._cleanup_old_logs(Path(temp_dir), retention_days=0)

            assert old_log.exists()

    def test_configure_reads_given_config_file(self, temp_dir_with_cleanup):
        config_path = Path(temp_dir_with_cleanup) / "station-2.ini"
        config_path.write_text(
            f"[Paths]\nDataDir = {temp_dir_with_cleanup}\n\n"
            "[Logging]\nLogLevel = WARNING   ; quiet station\n",
            encoding='utf-8'
        )

        AppLogger.configure(config_path)
        get_logger("Test").warning("From the second station")

        assert logging.getLogger().level == logging.WARNING
        assert read_log_lines(temp_dir_with_cleanup)[-1]["message"] == "From the second station"

    def test_configure_replaces_earlier_handlers(self, temp_dir_with_cleanup):
        with patch('logger.AppLogger._load_config', return_value=make_config(temp_dir_with_cleanup)):
            get_logger("Test")
            first = list(AppLogger._handlers)
            AppLogger.configure(Path(temp_dir_with_cleanup) / "config.ini")

        root_handlers = logging.getLogger().handlers
        assert all(handler in root_handlers for handler in AppLogger._handlers)
        assert not any(handler in root_handlers for handler in first)
