import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

from ..scoring import DEFAULT_SLEEPER_SCORING, normalize_rules, score_player
from ..warroom_types import Platform, ProviderRuntimeConfig
from .common import (
    STATUS_COMPLETE,
    RawMatchup,
    RawPlayer,
    RawTeam,
    RosterRecord,
    UserRecord,
    _as_dict,
    _as_list,
    _http_get_json,
    _require_dict,
    _require_list,
    _safe_float,
    _safe_int,
    _status_from_points,
)


logger = logging.getLogger(__name__)

SLEEPER_BASE_URL = "https://api.sleeper.app/v1"
SLEEPER_AVATAR_URL = "https://sleepercdn.com/avatars/{avatar}"
PLAYER_PROJECTION_MULTIPLIER = 1.1
TEAM_PROJECTION_MULTIPLIER = 1.05
CHOPPED_LEAGUE_TYPE = 3


def avatar_url(avatar: Any) -> Optional[str]:
    text = str(avatar or "").strip()
    if not text:
        return None
    return SLEEPER_AVATAR_URL.format(avatar=text)


class SleeperAdapter:
    platform = Platform.SLEEPER

    def __init__(
        self,
        runtime: Optional[ProviderRuntimeConfig] = None,
        base_url: str = SLEEPER_BASE_URL,
        season: Optional[int] = None,
        get_json: Optional[Callable[[str], Any]] = None,
    ):
        self.runtime = runtime or ProviderRuntimeConfig()
        self.base_url = base_url.rstrip("/")
        self.season = season
        self._get_json = get_json
        self._players: Optional[Dict[str, Dict[str, Any]]] = None
        self._players_lock = threading.Lock()

    def _get(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        if self._get_json is not None:
            return self._get_json(url)
        return _http_get_json(
            url,
            {"Accept": "application/json"},
            timeout=float(self.runtime.timeout_seconds),
            retries=int(self.runtime.retries),
            backoff=float(self.runtime.backoff_seconds),
        )

    def fetch_user_leagues(self, user_id: str, season: int) -> List[Dict[str, Any]]:
        payload = _require_list(self._get(f"/user/{user_id}/leagues/nfl/{int(season)}"), "sleeper_user_leagues")
        # leagues without a draft are placeholders
        return [_as_dict(row) for row in payload if _as_dict(row).get("draft_id")]

    def fetch_league(self, league_id: str) -> Dict[str, Any]:
        return _require_dict(self._get(f"/league/{league_id}"), "sleeper_league")

    def fetch_league_scoring_rules(self, league_id: str) -> Dict[str, float]:
        league = self.fetch_league(league_id)
        rules = normalize_rules(league.get("scoring_settings"))
        return rules or dict(DEFAULT_SLEEPER_SCORING)

    def fetch_rosters(self, league_id: str) -> List[RosterRecord]:
        payload = _require_list(self._get(f"/league/{league_id}/rosters"), "sleeper_rosters")
        rosters: List[RosterRecord] = []
        for row in payload:
            row = _as_dict(row)
            if row.get("roster_id") is None:
                continue
            settings = _as_dict(row.get("settings"))
            rosters.append(
                RosterRecord(
                    roster_id=str(row.get("roster_id")),
                    owner_id=str(row["owner_id"]) if row.get("owner_id") else None,
                    players=[str(pid) for pid in _as_list(row.get("players"))],
                    starters=[str(pid) for pid in _as_list(row.get("starters"))],
                    wins=_safe_int(settings.get("wins")),
                    losses=_safe_int(settings.get("losses")),
                    ties=_safe_int(settings.get("ties")),
                )
            )
        return rosters

    def fetch_users(self, league_id: str) -> List[UserRecord]:
        payload = _require_list(self._get(f"/league/{league_id}/users"), "sleeper_users")
        users: List[UserRecord] = []
        for row in payload:
            row = _as_dict(row)
            if not row.get("user_id"):
                continue
            users.append(
                UserRecord(
                    user_id=str(row.get("user_id")),
                    display_name=str(row.get("display_name") or ""),
                    avatar_url=avatar_url(row.get("avatar")),
                )
            )
        return users

    def fetch_week_stats(self, season: int, week: int) -> Dict[str, Dict[str, Any]]:
        payload = self._get(f"/stats/nfl/regular/{int(season)}/{int(week)}")
        if payload is None:
            return {}
        payload = _require_dict(payload, "sleeper_stats")
        return {str(pid): _as_dict(stats) for pid, stats in payload.items()}

    def fetch_player_directory(self) -> Dict[str, Dict[str, Any]]:
        with self._players_lock:
            if self._players is None:
                payload = _require_dict(self._get("/players/nfl"), "sleeper_players")
                self._players = {str(pid): _as_dict(row) for pid, row in payload.items()}
            return self._players

    def fetch_matchup_rows(self, league_id: str, week: int) -> List[Dict[str, Any]]:
        payload = _require_list(self._get(f"/league/{league_id}/matchups/{int(week)}"), "sleeper_matchups")
        return [_as_dict(row) for row in payload]

    def fetch_week_points(self, league_id: str, week: int) -> Dict[str, float]:
        points: Dict[str, float] = {}
        for row in self.fetch_matchup_rows(league_id, week):
            if row.get("roster_id") is None or row.get("points") is None:
                continue
            points[str(row.get("roster_id"))] = _safe_float(row.get("points"))
        return points

    def fetch_matchups(self, league_id: str, week: int) -> List[RawMatchup]:
        rows = self.fetch_matchup_rows(league_id, week)
        if not rows:
            return []

        league = self.fetch_league(league_id)
        rosters = {roster.roster_id: roster for roster in self.fetch_rosters(league_id)}
        users = {user.user_id: user for user in self.fetch_users(league_id)}
        directory = self._directory_or_empty()

        week_stats: Dict[str, Dict[str, Any]] = {}
        if any(not row.get("players_points") for row in rows):
            season = _safe_int(league.get("season"), self.season or 0)
            if season:
                week_stats = self.fetch_week_stats(season, week)
        rules = normalize_rules(league.get("scoring_settings")) or dict(DEFAULT_SLEEPER_SCORING)

        grouped: "OrderedDict[Any, List[Dict[str, Any]]]" = OrderedDict()
        for row in rows:
            matchup_id = row.get("matchup_id")
            if matchup_id is None:
                continue
            grouped.setdefault(matchup_id, []).append(row)

        league_complete = str(league.get("status") or "") == STATUS_COMPLETE
        matchups: List[RawMatchup] = []
        for matchup_id, group in grouped.items():
            teams = [
                self._build_team(row, rosters, users, directory, week_stats, rules)
                for row in group[:2]
            ]
            status = STATUS_COMPLETE if league_complete else _status_from_points([team.score for team in teams])
            matchups.append(RawMatchup(matchup_id=str(matchup_id), teams=teams, status=status))
        return matchups

    def _directory_or_empty(self) -> Dict[str, Dict[str, Any]]:
        try:
            return self.fetch_player_directory()
        except Exception as exc:
            logger.warning("sleeper_player_directory_unavailable: %s", exc)
            return {}

    def _build_team(
        self,
        row: Dict[str, Any],
        rosters: Dict[str, RosterRecord],
        users: Dict[str, UserRecord],
        directory: Dict[str, Dict[str, Any]],
        week_stats: Dict[str, Dict[str, Any]],
        rules: Dict[str, float],
    ) -> RawTeam:
        roster_id = str(row.get("roster_id"))
        roster = rosters.get(roster_id)
        owner_id = roster.owner_id if roster else None
        user = users.get(owner_id or "")

        starters = [str(pid) for pid in _as_list(row.get("starters"))]
        starter_set = set(starters)
        points_map = _as_dict(row.get("players_points"))

        players: List[RawPlayer] = []
        for player_id in [str(pid) for pid in _as_list(row.get("players"))]:
            info = directory.get(player_id, {})
            if player_id in points_map:
                score = _safe_float(points_map.get(player_id))
            else:
                score = score_player(week_stats.get(player_id, {}), rules)
            number = info.get("number")
            players.append(
                RawPlayer(
                    player_id=player_id,
                    first_name=str(info.get("first_name") or ""),
                    last_name=str(info.get("last_name") or ""),
                    position=str(info.get("position") or "FLEX"),
                    team=str(info.get("team") or "UNK"),
                    jersey_number=str(number) if number is not None else None,
                    lineup_slot=str(info.get("position") or "FLEX") if player_id in starter_set else "BN",
                    is_starter=player_id in starter_set,
                    score=score,
                    projected=round(score * PLAYER_PROJECTION_MULTIPLIER, 2),
                    injury_status=info.get("injury_status") or None,
                )
            )

        points = _safe_float(row.get("points"))
        projected = row.get("projected_points", row.get("custom_points"))
        projected = _safe_float(projected, points * TEAM_PROJECTION_MULTIPLIER)

        return RawTeam(
            team_id=roster_id,
            owner_id=owner_id,
            owner_name=user.display_name if user and user.display_name else f"Manager {roster_id}",
            avatar_url=user.avatar_url if user else None,
            score=points,
            projected=round(projected, 2),
            wins=roster.wins if roster else 0,
            losses=roster.losses if roster else 0,
            ties=roster.ties if roster else 0,
            players=players,
        )

    @staticmethod
    def is_chopped_league(league: Dict[str, Any]) -> bool:
        settings = _as_dict(league.get("settings"))
        if _safe_int(settings.get("type"), -1) == CHOPPED_LEAGUE_TYPE:
            return True
        return bool(settings.get("is_chopped"))
