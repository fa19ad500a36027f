import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .canonicalizer import IdentityCanonicalizer
from .errors import HydrationCancelled, HydrationFailure
from .snapshots import MatchupSnapshot, build_matchup_snapshots, changed_player_ids, involves_team
from .warroom_types import (
    CacheEntry,
    LeagueDescriptor,
    LoadState,
    MatchupSnapshotID,
    Platform,
    PlatformAdapter,
    SnapshotStoreConfig,
)


logger = logging.getLogger(__name__)

LeagueKey = Tuple[Platform, str, int]


def _league_key(platform: Platform, league_id: str, week: int) -> LeagueKey:
    return (platform, str(league_id), int(week))


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class LeagueCache:
    descriptor: LeagueDescriptor
    week: int
    state: LoadState = LoadState.IDLE
    matchup_ids: List[MatchupSnapshotID] = field(default_factory=list)
    last_refreshed: Optional[float] = None
    error: str = ""


@dataclass
class RefreshResult:
    refreshed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    changed_player_ids: List[str] = field(default_factory=list)


class SnapshotStore:
    def __init__(
        self,
        adapters: Dict[Platform, PlatformAdapter],
        config: Optional[SnapshotStoreConfig] = None,
        canonicalizer: Optional[IdentityCanonicalizer] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._adapters = dict(adapters)
        self.config = config or SnapshotStoreConfig()
        self._canonicalizer = canonicalizer
        self._clock = clock
        self._lock = threading.Lock()
        self._leagues: Dict[LeagueKey, LeagueCache] = {}
        self._entries: Dict[MatchupSnapshotID, CacheEntry] = {}
        self._pending: Dict[LeagueKey, Future] = {}
        self._generation = 0

    def warm(self, descriptors: Iterable[LeagueDescriptor], week: int) -> int:
        added = 0
        with self._lock:
            for descriptor in descriptors:
                key = _league_key(descriptor.platform, descriptor.league_id, week)
                cache = self._leagues.get(key)
                if cache is None:
                    self._leagues[key] = LeagueCache(descriptor=descriptor, week=int(week))
                    added += 1
                elif cache.descriptor != descriptor:
                    cache.descriptor = descriptor
        return added

    def warmed(self, week: int) -> List[LeagueDescriptor]:
        with self._lock:
            return [cache.descriptor for key, cache in self._leagues.items() if key[2] == int(week)]

    def load_state(self, descriptor: LeagueDescriptor, week: int) -> LoadState:
        with self._lock:
            cache = self._leagues.get(_league_key(descriptor.platform, descriptor.league_id, week))
            return cache.state if cache is not None else LoadState.IDLE

    def _ttl_for(self, snapshot: MatchupSnapshot) -> float:
        settled = self.config.settled_ttl_seconds
        if settled is not None and not snapshot.has_live_starters:
            return float(settled)
        return float(self.config.matchup_ttl_seconds)

    def _valid_entry(self, snapshot_id: MatchupSnapshotID, now: float) -> Optional[MatchupSnapshot]:
        entry = self._entries.get(snapshot_id)
        if entry is None:
            return None
        if not entry.is_valid(now, self._ttl_for(entry.value)):
            return None
        return entry.value

    def _valid_league(self, cache: LeagueCache, now: float) -> Optional[List[MatchupSnapshot]]:
        if cache.last_refreshed is None:
            return None
        if now - cache.last_refreshed >= float(self.config.matchup_ttl_seconds) and not cache.matchup_ids:
            return None
        snapshots: List[MatchupSnapshot] = []
        for snapshot_id in cache.matchup_ids:
            snapshot = self._valid_entry(snapshot_id, now)
            if snapshot is None:
                return None
            snapshots.append(snapshot)
        return snapshots

    def peek(self, snapshot_id: MatchupSnapshotID) -> Optional[MatchupSnapshot]:
        with self._lock:
            return self._valid_entry(snapshot_id, self._clock())

    def hydrate(self, snapshot_id: MatchupSnapshotID, cancel_token: Optional[CancelToken] = None) -> MatchupSnapshot:
        key = _league_key(snapshot_id.platform, snapshot_id.league_id, snapshot_id.week)
        with self._lock:
            cached = self._valid_entry(snapshot_id, self._clock())
            if cached is not None:
                logger.debug("snapshot_cache_hit:%s", snapshot_id)
                return cached
            if key not in self._leagues:
                raise HydrationFailure(snapshot_id, message="league_not_warmed")

        snapshots = self._load_league_week(key, cancel_token, snapshot_id)
        snapshot = snapshots.get(snapshot_id)
        if snapshot is None:
            raise HydrationFailure(snapshot_id, message="matchup_not_found")
        return snapshot

    def hydrate_league(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        cancel_token: Optional[CancelToken] = None,
        force: bool = False,
    ) -> List[MatchupSnapshot]:
        key = _league_key(descriptor.platform, descriptor.league_id, week)
        with self._lock:
            cache = self._leagues.get(key)
            if cache is None:
                raise HydrationFailure(descriptor.id, message="league_not_warmed")
            if not force:
                cached = self._valid_league(cache, self._clock())
                if cached is not None:
                    logger.debug("league_cache_hit:%s:%s", descriptor.id, week)
                    return self._ordered(cached, cache.descriptor.my_team_id)

        snapshots = self._load_league_week(key, cancel_token, descriptor.id)
        return self._ordered(list(snapshots.values()), descriptor.my_team_id)

    @staticmethod
    def _ordered(snapshots: List[MatchupSnapshot], my_team_id: Optional[str]) -> List[MatchupSnapshot]:
        mine = [snapshot for snapshot in snapshots if involves_team(snapshot, my_team_id)]
        rest = [snapshot for snapshot in snapshots if not involves_team(snapshot, my_team_id)]
        return mine + rest

    def _load_league_week(
        self,
        key: LeagueKey,
        cancel_token: Optional[CancelToken],
        failure_id: object,
    ) -> Dict[MatchupSnapshotID, MatchupSnapshot]:
        with self._lock:
            future = self._pending.get(key)
            owner = future is None
            if owner:
                cache = self._leagues.get(key)
                if cache is None:
                    raise HydrationFailure(failure_id, message="league_not_warmed")
                future = Future()
                self._pending[key] = future
                cache.state = LoadState.LOADING
                descriptor = cache.descriptor
                generation = self._generation

        if not owner:
            snapshots = future.result()
            if cancel_token is not None and cancel_token.cancelled:
                raise HydrationCancelled(f"{failure_id}: cancelled while waiting")
            return snapshots

        try:
            snapshots = self._fetch(descriptor, key[2])
        except Exception as exc:
            failure = exc if isinstance(exc, HydrationFailure) else HydrationFailure(failure_id, cause=exc)
            with self._lock:
                if self._pending.get(key) is future:
                    self._pending.pop(key, None)
                cache = self._leagues.get(key)
                if cache is not None:
                    cache.state = LoadState.ERROR
                    cache.error = str(failure)
            future.set_exception(failure)
            if failure is exc:
                raise
            raise failure from exc

        now = self._clock()
        with self._lock:
            if self._pending.get(key) is future:
                self._pending.pop(key, None)
            stale = generation != self._generation
            cancelled = cancel_token is not None and cancel_token.cancelled
            cache = self._leagues.get(key)
            if not stale and not cancelled and cache is not None:
                for old_id in cache.matchup_ids:
                    if old_id not in snapshots:
                        self._entries.pop(old_id, None)
                for snapshot_id, snapshot in snapshots.items():
                    self._entries[snapshot_id] = CacheEntry(value=snapshot, timestamp=now)
                cache.matchup_ids = list(snapshots.keys())
                cache.last_refreshed = now
                cache.state = LoadState.LOADED
                cache.error = ""
            elif cache is not None and cache.state == LoadState.LOADING:
                cache.state = LoadState.IDLE

        future.set_result(snapshots)
        if cancelled:
            raise HydrationCancelled(f"{failure_id}: superseded before store")
        if stale:
            logger.info("snapshot_fetch_discarded_after_clear:%s", failure_id)
        return snapshots

    def _fetch(self, descriptor: LeagueDescriptor, week: int) -> Dict[MatchupSnapshotID, MatchupSnapshot]:
        adapter = self._adapters.get(descriptor.platform)
        if adapter is None:
            raise HydrationFailure(descriptor.id, message=f"no_adapter_for_{descriptor.platform.value}")
        matchups = adapter.fetch_matchups(descriptor.league_id, week)
        return build_matchup_snapshots(
            descriptor,
            week,
            matchups,
            observed_at=self._clock(),
            canonicalizer=self._canonicalizer,
        )

    def refresh(self, week: int, league_id: Optional[str] = None, force: bool = False) -> RefreshResult:
        result = RefreshResult()
        now = self._clock()
        with self._lock:
            targets = [
                cache
                for key, cache in self._leagues.items()
                if key[2] == int(week) and (league_id is None or key[1] == str(league_id))
            ]
            plan = []
            for cache in targets:
                previous = {
                    snapshot_id: self._entries[snapshot_id].value
                    for snapshot_id in cache.matchup_ids
                    if snapshot_id in self._entries
                }
                fresh = cache.last_refreshed is not None and now - cache.last_refreshed < float(
                    self.config.matchup_ttl_seconds
                )
                plan.append((cache.descriptor, previous, fresh))

        changed: List[str] = []
        for descriptor, previous, fresh in plan:
            if fresh and not force:
                result.skipped.append(descriptor.id)
                continue
            try:
                snapshots = self.hydrate_league(descriptor, week, force=True)
            except HydrationFailure as exc:
                logger.warning("snapshot_refresh_failed:%s: %s", descriptor.id, exc)
                result.failures[descriptor.id] = str(exc)
                continue
            result.refreshed.append(descriptor.id)
            for snapshot in snapshots:
                before = previous.get(snapshot.id)
                if before is None:
                    continue
                for player_id in changed_player_ids(before, snapshot):
                    if player_id not in changed:
                        changed.append(player_id)
        result.changed_player_ids = changed
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._leagues.clear()
            self._pending.clear()
            self._generation += 1
        logger.info("snapshot_store_cleared")
