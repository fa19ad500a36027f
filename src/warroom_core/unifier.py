import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from .adapters.sleeper import SleeperAdapter, avatar_url
from .chopped import split_active_rosters
from .errors import ClassificationMismatch, DecodeError, LeagueDiscoveryError, NetworkError
from .warroom_types import LeagueDescriptor, LeagueMode, Platform, PlatformAdapter, ProviderRuntimeConfig


logger = logging.getLogger(__name__)

_PLATFORM_ORDER = {Platform.SLEEPER: 0, Platform.ESPN: 1}


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _sort_key(descriptor: LeagueDescriptor):
    return (_PLATFORM_ORDER.get(descriptor.platform, 99), descriptor.name.lower(), descriptor.league_id)


class LeagueUnifier:
    def __init__(
        self,
        adapters: Dict[Platform, PlatformAdapter],
        runtime: Optional[ProviderRuntimeConfig] = None,
    ):
        self._adapters = dict(adapters)
        self.runtime = runtime or ProviderRuntimeConfig()

    def discover(
        self,
        sleeper_user_id: Optional[str],
        espn_league_ids: Optional[Sequence[str]],
        season: int,
    ) -> List[LeagueDescriptor]:
        tasks: Dict[Platform, Callable[[], List[LeagueDescriptor]]] = {}
        if sleeper_user_id and Platform.SLEEPER in self._adapters:
            tasks[Platform.SLEEPER] = lambda: self._sleeper_leagues(str(sleeper_user_id), int(season))
        if espn_league_ids and Platform.ESPN in self._adapters:
            tasks[Platform.ESPN] = lambda: self._espn_leagues([str(lid) for lid in espn_league_ids], int(season))
        if not tasks:
            return []

        found: List[LeagueDescriptor] = []
        failures: Dict[str, Exception] = {}
        with ThreadPoolExecutor(max_workers=len(tasks)) as pool:
            future_map = {pool.submit(task): platform for platform, task in tasks.items()}
            for future in as_completed(future_map):
                platform = future_map[future]
                try:
                    found.extend(future.result())
                except Exception as exc:
                    logger.warning("league_discovery_failed:%s: %s", platform.value, exc)
                    failures[platform.value] = exc

        if len(failures) == len(tasks):
            raise LeagueDiscoveryError(failures)

        unique: Dict[tuple, LeagueDescriptor] = {}
        for descriptor in found:
            unique.setdefault((descriptor.platform, descriptor.league_id), descriptor)
        leagues = sorted(unique.values(), key=_sort_key)
        logger.info("league_discovery_complete: %s leagues", len(leagues))
        return leagues

    def _my_team_id(self, adapter: PlatformAdapter, league_id: str, account_id: Optional[str]) -> Optional[str]:
        if not account_id:
            return None
        try:
            rosters = adapter.fetch_rosters(league_id)
        except (NetworkError, DecodeError) as exc:
            logger.warning("my_team_lookup_failed:%s: %s", league_id, exc)
            return None
        for roster in rosters:
            if roster.owner_id and str(roster.owner_id) == str(account_id):
                return roster.roster_id
        return None

    def _sleeper_leagues(self, user_id: str, season: int) -> List[LeagueDescriptor]:
        adapter = self._adapters[Platform.SLEEPER]
        descriptors: List[LeagueDescriptor] = []
        for row in adapter.fetch_user_leagues(user_id, season):
            league_id = str(row.get("league_id") or "")
            if not league_id:
                continue
            settings = row.get("settings") if isinstance(row.get("settings"), dict) else {}
            mode = LeagueMode.ELIMINATION if SleeperAdapter.is_chopped_league(row) else LeagueMode.UNKNOWN
            descriptors.append(
                LeagueDescriptor(
                    league_id=league_id,
                    name=str(row.get("name") or f"Sleeper League {league_id}"),
                    platform=Platform.SLEEPER,
                    avatar_url=avatar_url(row.get("avatar")),
                    season=_safe_int(row.get("season"), season),
                    my_team_id=self._my_team_id(adapter, league_id, user_id),
                    mode=mode,
                    playoff_week_start=_safe_int(settings.get("playoff_week_start"), 15) or 15,
                )
            )
        return descriptors

    def _espn_leagues(self, league_ids: List[str], season: int) -> List[LeagueDescriptor]:
        adapter = self._adapters[Platform.ESPN]
        descriptors: List[LeagueDescriptor] = []
        errors: List[str] = []
        for league_id in league_ids:
            try:
                name = adapter.fetch_league_name(league_id)
            except (NetworkError, DecodeError) as exc:
                logger.warning("espn_league_lookup_failed:%s: %s", league_id, exc)
                errors.append(f"{league_id}:{exc}")
                continue
            descriptors.append(
                LeagueDescriptor(
                    league_id=league_id,
                    name=name,
                    platform=Platform.ESPN,
                    season=season,
                    my_team_id=self._my_team_id(adapter, league_id, getattr(adapter, "swid", None)),
                )
            )
        if errors and not descriptors:
            raise NetworkError("; ".join(errors))
        return descriptors


@dataclass
class LeagueClassification:
    descriptor: LeagueDescriptor
    mode: LeagueMode
    message: Optional[str] = None


class LeagueModeClassifier:
    def __init__(
        self,
        adapters: Dict[Platform, PlatformAdapter],
        runtime: Optional[ProviderRuntimeConfig] = None,
    ):
        self._adapters = dict(adapters)
        self.runtime = runtime or ProviderRuntimeConfig()

    def classify(self, descriptor: LeagueDescriptor, week: int) -> LeagueClassification:
        retries = max(0, int(self.runtime.retries))
        backoff = float(self.runtime.backoff_seconds)
        last_error = ""
        for attempt in range(retries + 1):
            try:
                mode = self._classify_once(descriptor, week)
                return LeagueClassification(replace(descriptor, mode=mode), mode)
            except ClassificationMismatch as exc:
                logger.info("league_mode_reverted:%s: %s", descriptor.id, exc.user_message)
                return LeagueClassification(
                    replace(descriptor, mode=LeagueMode.UNKNOWN), LeagueMode.UNKNOWN, exc.user_message
                )
            except (NetworkError, DecodeError) as exc:
                last_error = str(exc)
                if attempt < retries and backoff > 0:
                    time.sleep(backoff)

        logger.warning("league_mode_unresolved:%s: %s", descriptor.id, last_error)
        return LeagueClassification(replace(descriptor, mode=LeagueMode.UNKNOWN), LeagueMode.UNKNOWN)

    def _classify_once(self, descriptor: LeagueDescriptor, week: int) -> LeagueMode:
        adapter = self._adapters.get(descriptor.platform)
        if adapter is None:
            return LeagueMode.UNKNOWN

        if descriptor.platform != Platform.SLEEPER:
            matchups = adapter.fetch_matchups(descriptor.league_id, week)
            return LeagueMode.HEAD_TO_HEAD if matchups else LeagueMode.UNKNOWN

        league = adapter.fetch_league(descriptor.league_id)
        if not SleeperAdapter.is_chopped_league(league):
            rows = adapter.fetch_matchup_rows(descriptor.league_id, week)
            if any(row.get("matchup_id") is not None for row in rows):
                return LeagueMode.HEAD_TO_HEAD
            if int(week) >= int(descriptor.playoff_week_start):
                # no bracket game this week, not an elimination format
                return LeagueMode.HEAD_TO_HEAD
        self.validate_elimination(descriptor, week)
        return LeagueMode.ELIMINATION

    def validate_elimination(self, descriptor: LeagueDescriptor, week: int) -> None:
        adapter = self._adapters[descriptor.platform]
        active, _ = split_active_rosters(adapter.fetch_rosters(descriptor.league_id))
        if not active:
            raise ClassificationMismatch(descriptor.league_id, week)
