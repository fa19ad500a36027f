import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .adapters.common import RosterRecord, UserRecord, _safe_float
from .adapters.sleeper import SleeperAdapter
from .elimination import EliminationLedger, build_week_summary
from .scoring import team_score
from .warroom_types import (
    ChoppedWeekSummary,
    EliminationConfig,
    LeagueDescriptor,
    ProviderRuntimeConfig,
    TeamScore,
)


logger = logging.getLogger(__name__)


def split_active_rosters(rosters: Sequence[RosterRecord]) -> Tuple[List[RosterRecord], List[RosterRecord]]:
    active: List[RosterRecord] = []
    graveyard: List[RosterRecord] = []
    for roster in rosters:
        if roster.owner_id and roster.players and roster.starters:
            active.append(roster)
        else:
            graveyard.append(roster)
    return active, graveyard


def _owner_name(roster: RosterRecord, users: Dict[str, UserRecord]) -> str:
    user = users.get(roster.owner_id or "")
    if user and user.display_name:
        return user.display_name
    return f"Manager {roster.roster_id}"


class ChoppedLeagueService:
    def __init__(
        self,
        adapter: SleeperAdapter,
        ledger: Optional[EliminationLedger] = None,
        config: Optional[EliminationConfig] = None,
        runtime: Optional[ProviderRuntimeConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.adapter = adapter
        self.ledger = ledger or EliminationLedger()
        self.config = config or EliminationConfig()
        self.runtime = runtime or ProviderRuntimeConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._final_weeks: Dict[Tuple[str, int], List[TeamScore]] = {}

    def _team(
        self,
        roster: RosterRecord,
        users: Dict[str, UserRecord],
        week: int,
        actual: float,
    ) -> TeamScore:
        return TeamScore(
            team_id=roster.roster_id,
            name=_owner_name(roster, users),
            actual=float(actual),
            owner_name=_owner_name(roster, users),
            avatar_url=users[roster.owner_id].avatar_url if roster.owner_id in users else None,
            weeks_alive=int(week),
        )

    def _final_scores(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        rosters: Sequence[RosterRecord],
        users: Dict[str, UserRecord],
    ) -> List[TeamScore]:
        # a finished week with no scored rows had no matchups, so nobody was chopped
        points = self.adapter.fetch_week_points(descriptor.league_id, week)
        return [
            self._team(roster, users, week, points[roster.roster_id])
            for roster in rosters
            if roster.roster_id in points
        ]

    def _current_scores(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        rosters: Sequence[RosterRecord],
        users: Dict[str, UserRecord],
        rules: Dict[str, float],
    ) -> List[TeamScore]:
        rows = self.adapter.fetch_matchup_rows(descriptor.league_id, week)
        points: Dict[str, float] = {}
        unscored = set()
        for row in rows:
            if row.get("roster_id") is None:
                continue
            roster_id = str(row.get("roster_id"))
            if row.get("points") is None:
                unscored.add(roster_id)
            else:
                points[roster_id] = _safe_float(row.get("points"))

        stats: Dict[str, Dict[str, float]] = {}
        if unscored and descriptor.season:
            stats = self.adapter.fetch_week_stats(descriptor.season, week)

        teams: List[TeamScore] = []
        for roster in rosters:
            if roster.roster_id in points:
                actual = points[roster.roster_id]
            elif roster.roster_id in unscored:
                actual = team_score(roster.starters, stats, rules)
            elif rows:
                continue
            else:
                actual = 0.0
            teams.append(self._team(roster, users, week, actual))
        return teams

    def _prior_weeks(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        rosters: Sequence[RosterRecord],
        users: Dict[str, UserRecord],
    ) -> Dict[int, List[TeamScore]]:
        weekly: Dict[int, List[TeamScore]] = {}
        missing: List[int] = []
        with self._lock:
            for prior in range(1, int(week)):
                cached = self._final_weeks.get((descriptor.id, prior))
                if cached is not None:
                    weekly[prior] = cached
                else:
                    missing.append(prior)

        if missing:
            workers = max(1, min(len(missing), int(self.runtime.max_workers)))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                future_map = {
                    pool.submit(self._final_scores, descriptor, prior, rosters, users): prior
                    for prior in missing
                }
                for future in as_completed(future_map):
                    prior = future_map[future]
                    weekly[prior] = future.result()
            with self._lock:
                for prior in missing:
                    if weekly[prior]:
                        self._final_weeks[(descriptor.id, prior)] = weekly[prior]
        return weekly

    def build_summary(
        self,
        descriptor: LeagueDescriptor,
        week: int,
        week_complete: bool = False,
    ) -> ChoppedWeekSummary:
        rules = self.adapter.fetch_league_scoring_rules(descriptor.league_id)
        rosters = self.adapter.fetch_rosters(descriptor.league_id)
        users = {user.user_id: user for user in self.adapter.fetch_users(descriptor.league_id)}
        active, graveyard = split_active_rosters(rosters)

        weekly = self._prior_weeks(descriptor, week, rosters, users)
        history = self.ledger.record(descriptor.id, weekly, week, timestamp=self._clock())
        eliminated = {event.eliminated_team.team.team_id for event in history}

        survivors = [roster for roster in active if roster.roster_id not in eliminated]
        current = self._current_scores(descriptor, week, survivors, users, rules)
        scores_by_team: Dict[str, List[float]] = {}
        for prior in sorted(weekly):
            for team in weekly[prior]:
                scores_by_team.setdefault(team.team_id, []).append(team.actual)
        summary = build_week_summary(
            descriptor.id,
            current,
            week,
            week_complete=week_complete,
            elimination_history=history,
            graveyard=[_owner_name(roster, users) for roster in graveyard],
            history=scores_by_team,
            config=self.config,
        )
        logger.debug(
            "chopped_summary:%s week=%s survivors=%s", descriptor.id, week, summary.total_survivors
        )
        return summary
