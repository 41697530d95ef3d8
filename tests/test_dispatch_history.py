"""Tests for the local dispatch history and the atomic JSON writer it uses."""
import json
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from conftest import make_order
from dispatch_history import HISTORY_FILE_NAME, DispatchHistory
from json_files import atomic_write_json, read_json
from models import DispatchRecord


def make_record(order_id="ord-1", minutes=0, operator_id="u-4"):
    return DispatchRecord(
        order=make_order(order_id),
        dispatched_at=datetime(2026, 3, 2, 9, 0) + timedelta(minutes=minutes),
        operator_id=operator_id,
        scanned_codes=["111", "SKU-A", "SKU-B"],
        station_id="STATION-1",
    )


@pytest.fixture
def history_path(tmp_path):
    return tmp_path / HISTORY_FILE_NAME


class TestDispatchHistory:
    def test_append_newest_first(self, history_path):
        history = DispatchHistory(history_path, station_id="STATION-1")
        history.append(make_record("ord-1", 0))
        history.append(make_record("ord-2", 5))

        assert [r.order.id for r in history.records()] == ["ord-2", "ord-1"]
        assert [r.order.id for r in history.records(limit=1)] == ["ord-2"]
        assert len(history) == 2

    def test_persisted_file_format(self, history_path):
        DispatchHistory(history_path, station_id="STATION-1").append(make_record())

        data = read_json(history_path)
        assert data['version'] == '1.0'
        assert data['station_id'] == 'STATION-1'
        assert data['data'][0]['order']['id'] == 'ord-1'
        assert data['data'][0]['scanned_codes'] == ["111", "SKU-A", "SKU-B"]

    def test_survives_restart(self, history_path):
        DispatchHistory(history_path).append(make_record("ord-7"))

        reloaded = DispatchHistory(history_path)
        assert len(reloaded) == 1
        assert reloaded.records()[0] == make_record("ord-7")

    def test_corrupt_file_starts_fresh(self, history_path):
        history_path.write_text("{not json", encoding='utf-8')
        assert len(DispatchHistory(history_path)) == 0

    def test_in_memory_history(self):
        history = DispatchHistory()
        history.append(make_record())
        assert len(history) == 1

    def test_save_failure_keeps_record(self, history_path):
        history = DispatchHistory(history_path)
        with patch('dispatch_history.atomic_write_json', side_effect=OSError("disk full")):
            history.append(make_record())
        assert len(history) == 1


class TestAtomicWriteJson:
    def test_writes_and_keeps_backup(self, tmp_path):
        path = tmp_path / "orders.json"
        atomic_write_json(path, {'v': 1})
        atomic_write_json(path, {'v': 2})

        assert read_json(path) == {'v': 2}
        assert json.loads(path.with_suffix('.json.backup').read_text(encoding='utf-8')) == {'v': 1}
        assert not list(tmp_path.glob('.tmp_*'))

    def test_failed_write_restores_previous_content(self, tmp_path):
        path = tmp_path / "orders.json"
        atomic_write_json(path, {'v': 1})

        with pytest.raises(TypeError):
            atomic_write_json(path, {'v': object()})

        assert read_json(path) == {'v': 1}
        assert not list(tmp_path.glob('.tmp_*'))

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "history.json"
        atomic_write_json(path, [])
        assert read_json(path) == []
