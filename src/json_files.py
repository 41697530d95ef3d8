"""
JSON file helpers shared by the file-backed stores.

Station files may live on a shared drive that several stations write to,
so every write goes through a temp file and an atomic replace, with a
backup of the previous version kept alongside.
"""
import json
import shutil
import tempfile
from pathlib import Path
from typing import Any

from logger import get_logger

logger = get_logger(__name__)


def read_json(path: Path) -> Any:
    """
    Read a JSON file.

    Raises:
        json.JSONDecodeError: If the file is not valid JSON
        OSError: If the file cannot be read
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def atomic_write_json(path: Path, data: Any, prefix: str = '.tmp_') -> None:
    """
    Write data as JSON to path via temp file + atomic replace.

    If anything fails, the backup (path.json.backup) is copied back over
    path and the original error is re-raised.

    Raises:
        OSError / TypeError: If the file cannot be written or data is not serializable
    """
    path = Path(path)
    backup_path = path.with_suffix('.json.backup')
    tmp_path = None

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            shutil.copy2(path, backup_path)

        with tempfile.NamedTemporaryFile(
            mode='w',
            dir=path.parent,
            prefix=prefix,
            suffix='.json',
            delete=False,
            encoding='utf-8'
        ) as tmp_file:
            tmp_path = tmp_file.name
            json.dump(data, tmp_file, indent=4, ensure_ascii=False)

        shutil.move(tmp_path, path)

    except Exception:
        if tmp_path and Path(tmp_path).exists():
            Path(tmp_path).unlink()
        if backup_path.exists():
            try:
                shutil.copy2(backup_path, path)
                logger.warning(f"Restored {path.name} from backup")
            except Exception as restore_error:
                logger.error(f"Failed to restore {path.name} from backup: {restore_error}")
        raise
