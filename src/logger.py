"""
Centralized logging configuration for Dispatch Station.

This module provides the logging setup shared by every station module:
- Structured JSON lines in a daily log file (easy to grep and to ship)
- Automatic rotation when a file exceeds MaxLogSizeMB
- Cleanup of files older than LogRetentionDays
- Human-readable console output for the operator terminal
- Context fields (station_id, order_id, operator_id) attached to every entry

The log is the audit trail of the station: when a customer claims a missing
item, it shows which codes were scanned for the order, by whom, and which
label was attached.

Log file location: <DataDir>/logs/ (DataDir from config.ini, default ~/.dispatch_station)
Log file format: YYYY-MM-DD.log

Example log entry (JSON format):
    {"timestamp": "2026-03-02T09:12:45.120", "level": "INFO", "tool": "dispatch_station",
     "station_id": "STATION-1", "order_id": "ord-17", "operator_id": "u-4",
     "module": "dispatch_logic", "function": "transition", "line": 212,
     "message": "Item accepted: SKU-A 1/2"}
"""

import logging
import json
import os
from datetime import datetime, timedelta
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any, List
import configparser
from contextvars import ContextVar


# Context variables for structured logging
_station_id: ContextVar[Optional[str]] = ContextVar('station_id', default=None)
_order_id: ContextVar[Optional[str]] = ContextVar('order_id', default=None)
_operator_id: ContextVar[Optional[str]] = ContextVar('operator_id', default=None)

DEFAULT_DATA_DIR = Path(os.path.expanduser("~")) / ".dispatch_station"


class StructuredJSONFormatter(logging.Formatter):
    """
    Formats log records as one JSON object per line.

    Fields: timestamp, level, tool, station_id, order_id, operator_id,
    module, function, line, message, plus exc_info / extra when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'tool': 'dispatch_station',
            'station_id': _station_id.get(),
            'order_id': _order_id.get(),
            'operator_id': _operator_id.get(),
            'module': record.name,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_data['exc_info'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data['extra'] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False)


class AppLogger:
    """
    Application-wide logging configuration, set up once on first use.

    Every module calls get_logger(__name__); the first call configures the
    root logger (file + console handlers), later calls only return named
    loggers that share those handlers.

    Settings come from the [Logging] and [Paths] sections of config.ini:
    - LogLevel: DEBUG, INFO, WARNING, ERROR, CRITICAL
    - MaxLogSizeMB: size at which the daily file is rotated
    - LogRetentionDays: age after which old files are deleted
    - DataDir: base directory; logs go to DataDir/logs

    Attributes:
        _initialized: Whether logging has been configured (class-level)
        _config_path: config.ini the settings are read from
        _handlers: Handlers installed on the root logger by the last setup
    """

    _initialized: bool = False
    _config_path: Path = Path('config.ini')
    _handlers: List[logging.Handler] = []

    @classmethod
    def configure(cls, config_path) -> None:
        """
        Re-read logging settings from config_path.

        Modules create their loggers at import time, before the command line
        is parsed, so the first setup always uses ./config.ini. The entry
        point calls this once it knows the real file; the handlers installed
        earlier are replaced.
        """
        cls._config_path = Path(config_path)
        root_logger = logging.getLogger()
        for handler in cls._handlers:
            handler.close()
            root_logger.removeHandler(handler)
        cls._handlers = []
        cls._setup_logging()
        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str = 'DispatchStation') -> logging.Logger:
        """
        Get a named logger, configuring logging on the first call.

        Usage in modules:
            from logger import get_logger
            logger = get_logger(__name__)
            logger.info("Order acquired")

        Args:
            name: Logger name, typically the module name (__name__)

        Returns:
            Logger instance sharing the application handlers
        """
        if not cls._initialized:
            cls._setup_logging()
            cls._initialized = True

        return logging.getLogger(name)

    @classmethod
    def _setup_logging(cls):
        """
        Configure the root logger from config.ini.

        When a file exceeds MaxLogSizeMB it is rotated:
            2026-03-02.log       (current)
            2026-03-02.log.1     (previous, rotated)
            ... up to backupCount=30 files
        """
        config = cls._load_config(cls._config_path)

        data_dir = config.get('Paths', 'DataDir', fallback=str(DEFAULT_DATA_DIR))
        log_dir = Path(os.path.expanduser(data_dir)) / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            # Configured directory not writable (e.g. unmounted share)
            log_dir = DEFAULT_DATA_DIR / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            print(f"Warning: Could not create log directory {data_dir}. Using local: {log_dir}. Error: {e}")

        log_file = log_dir / f"{datetime.now():%Y-%m-%d}.log"

        log_level_str = config.get('Logging', 'LogLevel', fallback='INFO')
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        max_log_size = config.getint('Logging', 'MaxLogSizeMB', fallback=10) * 1024 * 1024

        json_formatter = StructuredJSONFormatter()

        # Example: 2026-03-02 09:12:45 | dispatch_logic | INFO | transition:212 | Item accepted
        console_formatter = logging.Formatter(
            fmt='%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=30,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(json_formatter)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(console_formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(file_handler)
        root_logger.addHandler(console_handler)
        cls._handlers = [file_handler, console_handler]

        retention_days = config.getint('Logging', 'LogRetentionDays', fallback=30)
        cls._cleanup_old_logs(log_dir, retention_days)

        logger = logging.getLogger('DispatchStation')
        logger.info("=" * 80)
        logger.info("Dispatch Station Started")
        logger.info(f"Log Level: {log_level_str}")
        logger.info(f"Log File: {log_file}")
        logger.info("=" * 80)

    @staticmethod
    def _load_config(config_path: Path = Path('config.ini')) -> configparser.ConfigParser:
        """
        Load the station's config.ini (./config.ini unless configure() named another).

        Returns an empty ConfigParser when the file is absent, so every
        setting falls back to its default (INFO, 10MB, 30 days).
        """
        config = configparser.ConfigParser(inline_comment_prefixes=(';', '#'))

        if Path(config_path).exists():
            config.read(config_path, encoding='utf-8')

        return config

    @staticmethod
    def _cleanup_old_logs(log_dir: Path, retention_days: int):
        """
        Delete log files older than retention_days.

        Args:
            log_dir: Directory containing the *.log* files
            retention_days: 0 or negative disables cleanup
        """
        if retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=retention_days)

        try:
            for log_file in log_dir.glob("*.log*"):
                file_mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
                if file_mtime < cutoff_date:
                    log_file.unlink()
                    logging.getLogger('DispatchStation').debug(f"Deleted old log: {log_file.name}")

        except Exception as e:
            # File in use or permission problem; cleanup is retried next start
            logging.getLogger('DispatchStation').warning(f"Failed to cleanup old logs: {e}")


def get_logger(name: str = 'DispatchStation') -> logging.Logger:
    """
    Get application logger.

    Example:
        >>> from logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Waiting for scan")
    """
    return AppLogger.get_logger(name)


def configure_logging(config_path) -> None:
    """Apply the [Logging] and [Paths] settings of config_path."""
    AppLogger.configure(config_path)


def set_station_context(station_id: Optional[str]) -> None:
    """Set the scanning station id included in subsequent log entries."""
    _station_id.set(station_id)


def set_order_context(order_id: Optional[str]) -> None:
    """
    Set the active order id for structured logging context.

    The station controller sets this when an order is acquired and clears it
    when the session resets, so every scan logged in between can be traced
    back to its order.
    """
    _order_id.set(order_id)


def set_operator_context(operator_id: Optional[str]) -> None:
    """Set the acting operator id included in subsequent log entries."""
    _operator_id.set(operator_id)


def clear_logging_context() -> None:
    """Clear all logging context (station_id, order_id, operator_id)."""
    _station_id.set(None)
    _order_id.set(None)
    _operator_id.set(None)
