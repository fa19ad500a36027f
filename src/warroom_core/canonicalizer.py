import json
import logging
import re
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NewType, Optional, Tuple


logger = logging.getLogger(__name__)

CanonicalPlayerID = NewType("CanonicalPlayerID", str)

_STRIP_CHARS = re.compile(r"['.\-]")
_NAME_SUFFIXES = (" jr", " sr", " iii", " ii")
_MISSING_SEARCH_RANK = 9999


class CanonicalizerState(str, Enum):
    NOT_BUILT = "not_built"
    BUILDING = "building"
    BUILT = "built"


def normalize_player_name(name: Any) -> str:
    text = _STRIP_CHARS.sub("", str(name or "").lower())
    for suffix in _NAME_SUFFIXES:
        text = text.replace(suffix, "")
    return " ".join(text.split())


def _full_name(row: Dict[str, Any]) -> str:
    full = str(row.get("full_name") or "").strip()
    if full:
        return full
    return f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()


def _preference_key(player_id: str, row: Dict[str, Any]) -> Tuple[int, int, int, str]:
    active = 0 if str(row.get("status") or "").lower() == "active" else 1
    try:
        rank = int(row.get("search_rank"))
    except (TypeError, ValueError):
        rank = _MISSING_SEARCH_RANK
    has_team = 0 if row.get("team") else 1
    return (active, rank, has_team, player_id)


class IdentityCanonicalizer:
    """Resolves Sleeper/ESPN player ids to one canonical id (the Sleeper id where known)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._espn_to_sleeper: Dict[str, str] = {}
        self._state = CanonicalizerState.NOT_BUILT

    @property
    def state(self) -> CanonicalizerState:
        return self._state

    def build(self, player_directory: Dict[str, Dict[str, Any]]) -> int:
        with self._lock:
            self._state = CanonicalizerState.BUILDING

        groups: Dict[str, List[Tuple[str, Dict[str, Any]]]] = {}
        for player_id, row in (player_directory or {}).items():
            if not isinstance(row, dict):
                continue
            name = normalize_player_name(_full_name(row))
            if not name:
                continue
            groups.setdefault(name, []).append((str(player_id), row))

        mapping: Dict[str, str] = {}
        for members in groups.values():
            canonical_id, _ = min(members, key=lambda item: _preference_key(item[0], item[1]))
            for _, row in members:
                espn_id = row.get("espn_id")
                if espn_id is not None and str(espn_id).strip():
                    mapping[str(espn_id)] = canonical_id

        with self._lock:
            self._espn_to_sleeper = mapping
            self._state = CanonicalizerState.BUILT
        logger.info("identity_canonicalizer_built: %s espn ids", len(mapping))
        return len(mapping)

    def sleeper_id_for_espn(self, espn_id: Any) -> Optional[str]:
        with self._lock:
            return self._espn_to_sleeper.get(str(espn_id))

    def canonical_id(self, sleeper_id: Optional[str] = None, espn_id: Optional[str] = None) -> CanonicalPlayerID:
        if sleeper_id:
            return CanonicalPlayerID(str(sleeper_id))
        if espn_id:
            mapped = self.sleeper_id_for_espn(espn_id)
            if mapped:
                return CanonicalPlayerID(mapped)
            return CanonicalPlayerID(f"espn:{espn_id}")
        raise ValueError("canonical_id requires a sleeper_id or an espn_id")

    def save(self, path: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            payload = dict(self._espn_to_sleeper)
        temp = target.with_suffix(target.suffix + ".tmp")
        temp.write_text(json.dumps(payload, indent=2, sort_keys=True))
        temp.replace(target)

    def load(self, path: str) -> bool:
        target = Path(path)
        if not target.exists():
            return False
        try:
            payload = json.loads(target.read_text())
        except Exception as exc:
            logger.warning("identity_mapping_load_failed:%s:%s", target, exc)
            return False
        if not isinstance(payload, dict):
            return False
        with self._lock:
            self._espn_to_sleeper = {str(k): str(v) for k, v in payload.items()}
            self._state = CanonicalizerState.BUILT
        return True
