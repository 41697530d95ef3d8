"""
Dispatch History - local, append-only log of orders this station dispatched.

After every successful commit the station appends a DispatchRecord so the
operator can see what left the bench during the shift. The order server
remains authoritative; this file is a confirmation aid and survives
restarts of the station.

File format (dispatch_history.json):
{
    "version": "1.0",
    "timestamp": "2026-03-02T09:15:02",
    "station_id": "STATION-1",
    "data": [ {DispatchRecord.to_dict()}, ... ]      # newest first
}
"""
import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from exceptions import ValidationError
from json_files import atomic_write_json, read_json
from logger import get_logger
from models import DispatchRecord

logger = get_logger(__name__)

HISTORY_FILE_NAME = "dispatch_history.json"


class DispatchHistory:
    """
    Append-only Dispatch Record store backed by a JSON file.

    Passing history_path=None keeps the history in memory only.

    Attributes:
        history_path (Path | None): JSON file the history is persisted to
        station_id (str | None): Station written into the file header
    """

    def __init__(self, history_path: Optional[Path] = None, station_id: Optional[str] = None):
        self.history_path = Path(history_path) if history_path else None
        self.station_id = station_id
        self._records: List[DispatchRecord] = []
        self._load()

    def _load(self):
        if self.history_path is None or not self.history_path.exists():
            logger.debug("No dispatch history found, starting fresh")
            return

        try:
            data = read_json(self.history_path)
            raw_records = data.get('data', []) if isinstance(data, dict) else data
            self._records = [DispatchRecord.from_dict(raw) for raw in raw_records]
            logger.info(f"Dispatch history loaded: {len(self._records)} record(s)")

        except (json.JSONDecodeError, OSError, KeyError, ValidationError) as e:
            logger.error(f"Error loading dispatch history: {e}, starting fresh")
            self._records = []

    def _save(self):
        if self.history_path is None:
            return

        data = {
            'version': '1.0',
            'timestamp': datetime.now().isoformat(),
            'station_id': self.station_id,
            'data': [record.to_dict() for record in self._records],
        }

        try:
            atomic_write_json(self.history_path, data, prefix='.tmp_history_')
            logger.debug("Dispatch history saved")
        except Exception as e:
            # The commit already succeeded server-side; keep the in-memory record
            logger.error(f"CRITICAL: Failed to save dispatch history: {e}", exc_info=True)

    def append(self, record: DispatchRecord) -> None:
        """Add a record at the head of the history and persist it."""
        self._records.insert(0, record)
        logger.info(f"Dispatch recorded: order {record.order.order_number} by {record.operator_id}")
        self._save()

    def records(self, limit: Optional[int] = None) -> List[DispatchRecord]:
        """Records newest first, optionally limited to the latest `limit`."""
        if limit is None:
            return list(self._records)
        return self._records[:limit]

    def __len__(self) -> int:
        return len(self._records)
