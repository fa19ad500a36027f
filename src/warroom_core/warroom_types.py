from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar


T = TypeVar("T")


class Platform(str, Enum):
    SLEEPER = "sleeper"
    ESPN = "espn"


class LeagueMode(str, Enum):
    HEAD_TO_HEAD = "head_to_head"
    ELIMINATION = "elimination"
    UNKNOWN = "unknown"


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class EliminationStatus(str, Enum):
    CHAMPION = "champion"
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    CRITICAL = "critical"
    ELIMINATED = "eliminated"


@dataclass
class ProviderRuntimeConfig:
    timeout_seconds: float = 10.0
    retries: int = 1
    backoff_seconds: float = 0.2
    max_workers: int = 6
    degrade_gracefully: bool = True


@dataclass
class SnapshotStoreConfig:
    matchup_ttl_seconds: float = 15.0
    settled_ttl_seconds: Optional[float] = None
    playoff_week_start: int = 15


@dataclass
class OddsCacheConfig:
    cache_dir: str = "data/odds_cache"
    settings_path: str = "data/settings.json"
    default_refresh_minutes: float = 15.0
    minimum_refresh_minutes: float = 1.0
    player_odds_ttl_seconds: float = 3600.0
    negative_ttl_seconds: float = 0.0


@dataclass
class EliminationConfig:
    season_weeks: int = 18
    default_variance: float = 10.0
    projection_multiplier: float = 1.05
    large_league_threshold: int = 18
    safe_threshold: float = 0.75
    warning_threshold: float = 0.5
    danger_threshold: float = 0.25


@dataclass(frozen=True)
class LeagueDescriptor:
    league_id: str
    name: str
    platform: Platform
    avatar_url: Optional[str] = None
    season: int = 0
    my_team_id: Optional[str] = None
    mode: LeagueMode = LeagueMode.UNKNOWN
    playoff_week_start: int = 15

    @property
    def id(self) -> str:
        return f"{self.platform.value}_{self.league_id}"


@dataclass(frozen=True)
class MatchupSnapshotID:
    league_id: str
    matchup_id: str
    platform: Platform
    week: int


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    timestamp: float

    def age(self, now: float) -> float:
        return float(now) - float(self.timestamp)

    def is_valid(self, now: float, ttl: float) -> bool:
        return self.age(now) < float(ttl)


@dataclass(frozen=True)
class TeamScore:
    team_id: str
    name: str
    actual: float = 0.0
    projected: Optional[float] = None
    owner_name: str = ""
    avatar_url: Optional[str] = None
    weeks_alive: Optional[int] = None


@dataclass(frozen=True)
class FantasyTeamRanking:
    team: TeamScore
    weekly_points: float
    rank: int
    elimination_status: EliminationStatus
    survival_probability: float
    points_from_safety: float
    weeks_alive: int


@dataclass(frozen=True)
class EliminationEvent:
    week: int
    eliminated_team: FantasyTeamRanking
    elimination_score: float
    margin: float
    drama_meter: float
    timestamp: float
    last_words: str = ""


@dataclass
class ChoppedWeekSummary:
    league_id: str
    week: int
    rankings: List[FantasyTeamRanking]
    eliminated_team: Optional[FantasyTeamRanking]
    average_score: float
    highest_score: float
    lowest_score: float
    cutoff_score: float
    is_complete: bool
    total_survivors: int
    elimination_history: List[EliminationEvent] = field(default_factory=list)
    graveyard: List[str] = field(default_factory=list)


class PlatformAdapter(Protocol):
    platform: Platform

    def fetch_league_scoring_rules(self, league_id: str) -> Dict[str, float]:
        ...

    def fetch_rosters(self, league_id: str) -> List[Any]:
        ...

    def fetch_users(self, league_id: str) -> List[Any]:
        ...

    def fetch_matchups(self, league_id: str, week: int) -> List[Any]:
        ...


OddsValidity = Tuple[bool, Optional[float], Optional[float]]
