"""
Station Config - reads config.ini for a dispatch station.

Example config.ini:

    [Network]
    ApiBaseUrl = http://192.168.1.20:5000
    ConnectionTimeout = 10

    [Station]
    StationId = STATION-1
    OperatorId = u-4
    Backend = http

    [Paths]
    DataDir = ~/.dispatch_station
    OrdersFile =
    InventoryFile =

A missing file or missing keys fall back to the defaults below.
"""
import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dispatch_history import HISTORY_FILE_NAME
from exceptions import ValidationError
from logger import get_logger

logger = get_logger(__name__)

BACKEND_HTTP = "http"
BACKEND_LOCAL = "local"
BACKENDS = (BACKEND_HTTP, BACKEND_LOCAL)


@dataclass
class StationConfig:
    """
    Settings of one scanning station.

    Attributes:
        api_base_url: Order server root (http backend)
        connection_timeout: Request timeout in seconds
        station_id: Identifier of this station, used in logs and history
        operator_id: Operator signed in at the station (may be set later)
        backend: "http" (order server) or "local" (JSON order file)
        data_dir: Directory for history and logs
        orders_file: JSON order file (local backend)
        inventory_file: Optional Excel/CSV inventory export
    """
    api_base_url: str = "http://localhost:5000"
    connection_timeout: float = 10.0
    station_id: str = "STATION-1"
    operator_id: Optional[str] = None
    backend: str = BACKEND_HTTP
    data_dir: Path = Path(os.path.expanduser("~")) / ".dispatch_station"
    orders_file: Optional[Path] = None
    inventory_file: Optional[Path] = None

    @property
    def history_path(self) -> Path:
        return self.data_dir / HISTORY_FILE_NAME

    def validate(self) -> None:
        """
        Raises:
            ValidationError: If the backend is unknown or lacks its settings
        """
        if self.backend not in BACKENDS:
            raise ValidationError(f"Unknown backend '{self.backend}', expected one of {', '.join(BACKENDS)}")
        if self.backend == BACKEND_LOCAL and not self.orders_file:
            raise ValidationError("Backend 'local' requires [Paths] OrdersFile")
        if self.backend == BACKEND_HTTP and not self.api_base_url:
            raise ValidationError("Backend 'http' requires [Network] ApiBaseUrl")
        if self.connection_timeout <= 0:
            raise ValidationError(f"ConnectionTimeout must be positive, got {self.connection_timeout}")

    @classmethod
    def load(cls, config_path: str = "config.ini") -> 'StationConfig':
        """
        Load and validate settings from config_path.

        Raises:
            ValidationError: If a value is malformed or the result is invalid
        """
        config = _load_config(config_path)
        defaults = cls()

        def _path(section: str, key: str) -> Optional[Path]:
            value = config.get(section, key, fallback='').strip()
            return Path(os.path.expanduser(value)) if value else None

        try:
            station = cls(
                api_base_url=config.get('Network', 'ApiBaseUrl', fallback=defaults.api_base_url).strip(),
                connection_timeout=config.getfloat('Network', 'ConnectionTimeout',
                                                   fallback=defaults.connection_timeout),
                station_id=config.get('Station', 'StationId', fallback=defaults.station_id).strip(),
                operator_id=config.get('Station', 'OperatorId', fallback='').strip() or None,
                backend=config.get('Station', 'Backend', fallback=defaults.backend).strip().lower(),
                data_dir=_path('Paths', 'DataDir') or defaults.data_dir,
                orders_file=_path('Paths', 'OrdersFile'),
                inventory_file=_path('Paths', 'InventoryFile'),
            )
        except ValueError as e:
            raise ValidationError(f"Invalid value in {config_path}: {e}")

        station.validate()
        logger.info(f"Station {station.station_id} configured with backend '{station.backend}'")
        return station


def _load_config(config_path: str) -> configparser.ConfigParser:
    """Load configuration from config.ini; ';' and '#' start inline comments."""
    config = configparser.ConfigParser(inline_comment_prefixes=(';', '#'))

    if not Path(config_path).exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return config

    try:
        config.read(config_path, encoding='utf-8')
        logger.info(f"Configuration loaded from {config_path}")
    except configparser.Error as e:
        logger.error(f"Failed to load config: {e}")
        raise ValidationError(f"Cannot parse {config_path}: {e}")

    return config
