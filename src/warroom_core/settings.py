import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict


logger = logging.getLogger(__name__)


def _atomic_json_write(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_suffix(path.suffix + ".tmp")
    temp.write_text(json.dumps(payload, indent=2, sort_keys=True))
    temp.replace(path)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text())
    except Exception as exc:
        logger.warning("settings_read_failed:%s:%s", path, exc)
        return default


class KeyValueSettings:
    """Durable key-value settings persisted as one JSON object."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()
        loaded = _read_json(self.path, {})
        self._values: Dict[str, Any] = loaded if isinstance(loaded, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(str(key), default)

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            return float(default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[str(key)] = value
            _atomic_json_write(self.path, self._values)

    def remove(self, key: str) -> None:
        with self._lock:
            if str(key) not in self._values:
                return
            self._values.pop(str(key), None)
            _atomic_json_write(self.path, self._values)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return str(key) in self._values
