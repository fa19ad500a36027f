from .adapters import ESPNAdapter, SleeperAdapter
from .canonicalizer import CanonicalPlayerID, IdentityCanonicalizer
from .chopped import ChoppedLeagueService, split_active_rosters
from .config import WarRoomConfig, WarRoomServices, build_services, load_config
from .elimination import (
    EliminationLedger,
    build_elimination_history,
    build_rankings,
    build_week_summary,
    calculate_safety_percentage,
    determine_elimination_status,
)
from .errors import (
    CacheMiss,
    ClassificationMismatch,
    DecodeError,
    HydrationCancelled,
    HydrationFailure,
    LeagueDiscoveryError,
    NetworkError,
    WarRoomError,
)
from .loader import LoadResult, MatchupLoader
from .odds_cache import BettingOddsCacheManager
from .settings import KeyValueSettings
from .snapshot_store import CancelToken, RefreshResult, SnapshotStore
from .snapshots import MatchupSnapshot, PlayerSnapshot, TeamSnapshot
from .unifier import LeagueClassification, LeagueModeClassifier, LeagueUnifier
from .warroom_types import (
    CacheEntry,
    ChoppedWeekSummary,
    EliminationConfig,
    EliminationEvent,
    EliminationStatus,
    FantasyTeamRanking,
    LeagueDescriptor,
    LeagueMode,
    LoadState,
    MatchupSnapshotID,
    OddsCacheConfig,
    Platform,
    ProviderRuntimeConfig,
    SnapshotStoreConfig,
    TeamScore,
)

__all__ = [
    "ESPNAdapter",
    "SleeperAdapter",
    "IdentityCanonicalizer",
    "CanonicalPlayerID",
    "ChoppedLeagueService",
    "split_active_rosters",
    "WarRoomConfig",
    "WarRoomServices",
    "build_services",
    "load_config",
    "EliminationLedger",
    "build_elimination_history",
    "build_rankings",
    "build_week_summary",
    "calculate_safety_percentage",
    "determine_elimination_status",
    "WarRoomError",
    "NetworkError",
    "DecodeError",
    "CacheMiss",
    "HydrationFailure",
    "HydrationCancelled",
    "ClassificationMismatch",
    "LeagueDiscoveryError",
    "MatchupLoader",
    "LoadResult",
    "BettingOddsCacheManager",
    "KeyValueSettings",
    "SnapshotStore",
    "CancelToken",
    "RefreshResult",
    "MatchupSnapshot",
    "TeamSnapshot",
    "PlayerSnapshot",
    "LeagueUnifier",
    "LeagueModeClassifier",
    "LeagueClassification",
    "CacheEntry",
    "ChoppedWeekSummary",
    "EliminationConfig",
    "EliminationEvent",
    "EliminationStatus",
    "FantasyTeamRanking",
    "LeagueDescriptor",
    "LeagueMode",
    "LoadState",
    "MatchupSnapshotID",
    "OddsCacheConfig",
    "Platform",
    "ProviderRuntimeConfig",
    "SnapshotStoreConfig",
    "TeamScore",
]
