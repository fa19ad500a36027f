import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .chopped import ChoppedLeagueService
from .errors import HydrationCancelled, LeagueDiscoveryError, WarRoomError
from .snapshot_store import CancelToken, SnapshotStore
from .snapshots import MatchupSnapshot
from .unifier import LeagueModeClassifier, LeagueUnifier
from .warroom_types import (
    ChoppedWeekSummary,
    LeagueDescriptor,
    LeagueMode,
    Platform,
    ProviderRuntimeConfig,
)


logger = logging.getLogger(__name__)

NO_LEAGUES_MESSAGE = "No leagues found. Connect your leagues first!"
FETCH_FAILED_MESSAGE = "Failed to fetch matchups: {reason}"


@dataclass
class LeagueLoad:
    descriptor: LeagueDescriptor
    snapshots: List[MatchupSnapshot] = field(default_factory=list)
    summary: Optional[ChoppedWeekSummary] = None
    eliminated_from_playoffs: bool = False

    @property
    def my_matchup(self) -> Optional[MatchupSnapshot]:
        return self.snapshots[0] if self.snapshots else None


@dataclass
class LoadResult:
    week: int
    leagues: List[LeagueLoad] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)

    @property
    def snapshots(self) -> List[MatchupSnapshot]:
        return [load.my_matchup for load in self.leagues if load.my_matchup is not None]

    @property
    def summaries(self) -> List[ChoppedWeekSummary]:
        return [load.summary for load in self.leagues if load.summary is not None]


class MatchupLoader:
    def __init__(
        self,
        unifier: LeagueUnifier,
        classifier: LeagueModeClassifier,
        store: SnapshotStore,
        chopped_service: Optional[ChoppedLeagueService] = None,
        runtime: Optional[ProviderRuntimeConfig] = None,
        sleeper_user_id: Optional[str] = None,
        espn_league_ids: Optional[Sequence[str]] = None,
        season: int = 0,
    ):
        self.unifier = unifier
        self.classifier = classifier
        self.store = store
        self.chopped_service = chopped_service
        self.runtime = runtime or ProviderRuntimeConfig()
        self.sleeper_user_id = sleeper_user_id
        self.espn_league_ids = list(espn_league_ids or [])
        self.season = int(season)
        self._lock = threading.Lock()
        self._modes: Dict[Tuple[str, int], LeagueMode] = {}

    def load(
        self,
        week: int,
        week_complete: bool = False,
        cancel_token: Optional[CancelToken] = None,
    ) -> LoadResult:
        result = LoadResult(week=int(week))
        try:
            leagues = self.unifier.discover(self.sleeper_user_id, self.espn_league_ids, self.season)
        except LeagueDiscoveryError as exc:
            result.messages.append(FETCH_FAILED_MESSAGE.format(reason=exc))
            return result

        if not leagues:
            result.messages.append(NO_LEAGUES_MESSAGE)
            return result

        classified = [self._classified(descriptor, week, result.messages) for descriptor in leagues]
        self.store.warm(classified, week)

        workers = max(1, min(len(classified), int(self.runtime.max_workers)))
        loads: Dict[str, LeagueLoad] = {}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            future_map = {
                pool.submit(self._load_league, descriptor, week, week_complete, cancel_token): descriptor
                for descriptor in classified
            }
            for future in as_completed(future_map):
                descriptor = future_map[future]
                try:
                    loads[descriptor.id] = future.result()
                except HydrationCancelled:
                    raise
                except WarRoomError as exc:
                    logger.warning("league_load_failed:%s: %s", descriptor.id, exc)
                    result.failures[descriptor.id] = str(exc)

        result.leagues = [loads[descriptor.id] for descriptor in classified if descriptor.id in loads]
        if result.failures and not result.leagues:
            reason = next(iter(result.failures.values()))
            result.messages.append(FETCH_FAILED_MESSAGE.format(reason=reason))
        return result

    def _classified(self, descriptor: LeagueDescriptor, week: int, messages: List[str]) -> LeagueDescriptor:
        key = (descriptor.id, int(week))
        with self._lock:
            known = self._modes.get(key)
        if known is not None:
            return replace(descriptor, mode=known)
        if descriptor.mode == LeagueMode.HEAD_TO_HEAD:
            return descriptor

        classification = self.classifier.classify(descriptor, week)
        if classification.message:
            messages.append(classification.message)
        if classification.mode != LeagueMode.UNKNOWN or classification.message:
            with self._lock:
                self._modes[key] = classification.mode
        return classification.descriptor

    def _load_league(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        week_complete: bool,
        cancel_token: Optional[CancelToken],
    ) -> LeagueLoad:
        if (
            descriptor.mode == LeagueMode.ELIMINATION
            and descriptor.platform == Platform.SLEEPER
            and self.chopped_service is not None
        ):
            summary = self.chopped_service.build_summary(descriptor, week, week_complete=week_complete)
            return LeagueLoad(descriptor=descriptor, summary=summary)

        snapshots = self.store.hydrate_league(descriptor, week, cancel_token=cancel_token)
        eliminated = not snapshots and int(week) >= int(descriptor.playoff_week_start)
        return LeagueLoad(descriptor=descriptor, snapshots=snapshots, eliminated_from_playoffs=eliminated)

    def reset(self) -> None:
        with self._lock:
            self._modes.clear()
        self.store.clear()
