import json
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import DecodeError, NetworkError


STATUS_SCHEDULED = "scheduled"
STATUS_LIVE = "live"
STATUS_COMPLETE = "complete"


@dataclass
class RawPlayer:
    player_id: str
    first_name: str = ""
    last_name: str = ""
    position: str = ""
    team: str = ""
    jersey_number: Optional[str] = None
    lineup_slot: str = "BN"
    is_starter: bool = False
    score: float = 0.0
    projected: float = 0.0
    injury_status: Optional[str] = None
    game_status: Optional[str] = None


@dataclass
class RawTeam:
    team_id: str
    owner_id: Optional[str] = None
    owner_name: str = ""
    avatar_url: Optional[str] = None
    score: float = 0.0
    projected: float = 0.0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    players: List[RawPlayer] = field(default_factory=list)

    @property
    def record(self) -> str:
        if self.ties > 0:
            return f"{self.wins}-{self.losses}-{self.ties}"
        return f"{self.wins}-{self.losses}"


@dataclass
class RawMatchup:
    matchup_id: str
    teams: List[RawTeam]
    status: str = STATUS_SCHEDULED
    start_time: Optional[str] = None

    @property
    def is_bye(self) -> bool:
        return len(self.teams) == 1


@dataclass
class RosterRecord:
    roster_id: str
    owner_id: Optional[str] = None
    players: List[str] = field(default_factory=list)
    starters: List[str] = field(default_factory=list)
    wins: int = 0
    losses: int = 0
    ties: int = 0


@dataclass
class UserRecord:
    user_id: str
    display_name: str = ""
    avatar_url: Optional[str] = None


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    return []


def _require_list(payload: Any, source: str) -> List[Any]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise DecodeError(f"{source}_expected_list:{type(payload).__name__}", source=source)
    return payload


def _require_dict(payload: Any, source: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise DecodeError(f"{source}_expected_object:{type(payload).__name__}", source=source)
    return payload


def _with_query(url: str, params: Dict[str, Any]) -> str:
    query = urllib.parse.urlencode({k: v for k, v in params.items() if v is not None}, doseq=True)
    if not query:
        return url
    return f"{url}{'&' if '?' in url else '?'}{query}"


def _http_get_json(url: str, headers: Dict[str, str], timeout: float, retries: int, backoff: float) -> Any:
    last_error = ""
    for attempt in range(max(0, int(retries)) + 1):
        try:
            request = urllib.request.Request(url=url, headers=headers, method="GET")
            with urllib.request.urlopen(request, timeout=timeout) as response:
                raw = response.read()
        except (urllib.error.URLError, OSError, ValueError) as exc:
            last_error = str(exc)
            if attempt < retries and backoff > 0:
                time.sleep(backoff)
            continue
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise DecodeError(f"invalid_json:{exc}", source=url) from exc
    raise NetworkError(last_error or "request_failed", url=url)


def _status_from_points(points: List[float]) -> str:
    if any(value > 0 for value in points):
        return STATUS_LIVE
    return STATUS_SCHEDULED
