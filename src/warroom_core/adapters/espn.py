import logging
from typing import Any, Callable, Dict, List, Optional

from ..errors import DecodeError, NetworkError, WarRoomError
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
    _require_dict,
    _safe_float,
    _safe_int,
    _status_from_points,
)


logger = logging.getLogger(__name__)

MATCHUP_VIEWS = ["mMatchupScore", "mLiveScoring", "mRoster", "mTeam"]
STARTER_SLOT_IDS = {0, 2, 3, 4, 5, 6, 23, 16, 17}
ACTUAL_STAT_SOURCE = 0
PROJECTED_STAT_SOURCE = 1
PLAYER_PROJECTION_MULTIPLIER = 1.1
TEAM_PROJECTION_MULTIPLIER = 1.05

SLOT_NAMES = {
    0: "QB",
    2: "RB",
    3: "RB",
    4: "WR",
    5: "WR",
    6: "TE",
    16: "D/ST",
    17: "K",
    20: "BN",
    21: "IR",
    23: "FLEX",
}

POSITION_NAMES = {1: "QB", 2: "RB", 3: "WR", 4: "TE", 5: "K", 16: "D/ST"}

PRO_TEAMS = {
    0: "FA", 1: "ATL", 2: "BUF", 3: "CHI", 4: "CIN", 5: "CLE", 6: "DAL", 7: "DEN", 8: "DET",
    9: "GB", 10: "TEN", 11: "IND", 12: "KC", 13: "LV", 14: "LAR", 15: "MIA", 16: "MIN",
    17: "NE", 18: "NO", 19: "NYG", 20: "NYJ", 21: "PHI", 22: "ARI", 23: "PIT", 24: "LAC",
    25: "SF", 26: "SEA", 27: "TB", 28: "WSH", 29: "CAR", 30: "JAX", 33: "BAL", 34: "HOU",
}

Transport = Callable[[str, int, Dict[str, Any]], Any]


def slot_name(slot_id: Any) -> str:
    return SLOT_NAMES.get(_safe_int(slot_id, -1), "BN")


def _espn_requests_transport(swid: Optional[str], espn_s2: Optional[str]) -> Transport:
    cookies = None
    if swid and espn_s2:
        cookies = {"SWID": swid, "espn_s2": espn_s2}

    def _transport(league_id: str, season: int, params: Dict[str, Any]) -> Any:
        from espn_api.requests.espn_requests import EspnFantasyRequests

        client = EspnFantasyRequests(sport="nfl", year=int(season), league_id=int(league_id), cookies=cookies)
        return client.league_get(params=params)

    return _transport


def _player_week_points(player: Dict[str, Any], week: int) -> Dict[int, float]:
    points: Dict[int, float] = {}
    for stat in _as_list(player.get("stats")):
        stat = _as_dict(stat)
        if _safe_int(stat.get("scoringPeriodId"), -1) != int(week):
            continue
        source = _safe_int(stat.get("statSourceId"), -1)
        if source in (ACTUAL_STAT_SOURCE, PROJECTED_STAT_SOURCE):
            points[source] = _safe_float(stat.get("appliedTotal"))
    return points


def _team_name(team: Dict[str, Any]) -> str:
    name = str(team.get("name") or "").strip()
    if name:
        return name
    return f"{team.get('location', '')} {team.get('nickname', '')}".strip() or f"Team {team.get('id')}"


def _owner_id(team: Dict[str, Any]) -> Optional[str]:
    owners = _as_list(team.get("owners"))
    if owners:
        return str(owners[0])
    primary = team.get("primaryOwner")
    return str(primary) if primary else None


class ESPNAdapter:
    platform = Platform.ESPN

    def __init__(
        self,
        season: int,
        swid: Optional[str] = None,
        espn_s2: Optional[str] = None,
        runtime: Optional[ProviderRuntimeConfig] = None,
        transport: Optional[Transport] = None,
    ):
        self.season = int(season)
        self.swid = swid
        self.runtime = runtime or ProviderRuntimeConfig()
        self._transport = transport or _espn_requests_transport(swid, espn_s2)

    def _league_get(self, league_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            payload = self._transport(str(league_id), self.season, params)
        except WarRoomError:
            raise
        except Exception as exc:
            raise NetworkError(f"espn_league_get_failed:{league_id}:{exc}") from exc
        return _require_dict(payload, "espn_league")

    def fetch_league_name(self, league_id: str) -> str:
        payload = self._league_get(league_id, {"view": ["mSettings"]})
        name = str(_as_dict(payload.get("settings")).get("name") or "").strip()
        return name or f"ESPN League {league_id}"

    def fetch_league_scoring_rules(self, league_id: str) -> Dict[str, float]:
        payload = self._league_get(league_id, {"view": ["mSettings"]})
        scoring = _as_dict(_as_dict(payload.get("settings")).get("scoringSettings"))
        rules: Dict[str, float] = {}
        for item in _as_list(scoring.get("scoringItems")):
            item = _as_dict(item)
            if item.get("statId") is None:
                continue
            rules[str(item.get("statId"))] = _safe_float(item.get("points"))
        return rules

    def fetch_rosters(self, league_id: str) -> List[RosterRecord]:
        payload = self._league_get(league_id, {"view": ["mTeam", "mRoster"]})
        rosters: List[RosterRecord] = []
        for team in _as_list(payload.get("teams")):
            team = _as_dict(team)
            entries = [_as_dict(entry) for entry in _as_list(_as_dict(team.get("roster")).get("entries"))]
            overall = _as_dict(_as_dict(team.get("record")).get("overall"))
            rosters.append(
                RosterRecord(
                    roster_id=str(team.get("id")),
                    owner_id=_owner_id(team),
                    players=[str(entry.get("playerId")) for entry in entries],
                    starters=[
                        str(entry.get("playerId"))
                        for entry in entries
                        if _safe_int(entry.get("lineupSlotId"), -1) in STARTER_SLOT_IDS
                    ],
                    wins=_safe_int(overall.get("wins")),
                    losses=_safe_int(overall.get("losses")),
                    ties=_safe_int(overall.get("ties")),
                )
            )
        return rosters

    def fetch_users(self, league_id: str) -> List[UserRecord]:
        payload = self._league_get(league_id, {"view": ["mTeam"]})
        users: List[UserRecord] = []
        for member in _as_list(payload.get("members")):
            member = _as_dict(member)
            if not member.get("id"):
                continue
            display = member.get("displayName") or f"{member.get('firstName', '')} {member.get('lastName', '')}".strip()
            users.append(UserRecord(user_id=str(member.get("id")), display_name=str(display or "")))
        return users

    def fetch_matchups(self, league_id: str, week: int) -> List[RawMatchup]:
        payload = self._league_get(league_id, {"view": list(MATCHUP_VIEWS), "scoringPeriodId": int(week)})
        teams_by_id = {str(_as_dict(team).get("id")): _as_dict(team) for team in _as_list(payload.get("teams"))}
        members = {
            str(_as_dict(member).get("id")): str(_as_dict(member).get("displayName") or "")
            for member in _as_list(payload.get("members"))
        }

        matchups: List[RawMatchup] = []
        for row in _as_list(payload.get("schedule")):
            row = _as_dict(row)
            if _safe_int(row.get("matchupPeriodId"), -1) != int(week):
                continue
            home = _as_dict(row.get("home"))
            away = _as_dict(row.get("away"))
            if not home:
                raise DecodeError(f"espn_matchup_missing_home:{row.get('id')}", source="espn_schedule")

            home_team = self._build_team(home, teams_by_id, members, week)
            if away:
                away_team = self._build_team(away, teams_by_id, members, week)
                matchup_id = f"{league_id}_{week}_{away_team.team_id}_{home_team.team_id}"
                teams = [away_team, home_team]
            else:
                matchup_id = f"{league_id}_{week}_{home_team.team_id}_bye"
                teams = [home_team]

            if str(row.get("winner") or "UNDECIDED") != "UNDECIDED":
                status = STATUS_COMPLETE
            else:
                status = _status_from_points([team.score for team in teams])
            matchups.append(RawMatchup(matchup_id=matchup_id, teams=teams, status=status))
        return matchups

    def _build_team(
        self,
        side: Dict[str, Any],
        teams_by_id: Dict[str, Dict[str, Any]],
        members: Dict[str, str],
        week: int,
    ) -> RawTeam:
        team_id = str(side.get("teamId"))
        team = teams_by_id.get(team_id, {})
        owner_id = _owner_id(team)
        owner_name = (members.get(owner_id or "") or _team_name(team)) if team else f"Team {team_id}"

        entries = _as_list(_as_dict(side.get("rosterForCurrentScoringPeriod")).get("entries"))
        if not entries:
            entries = _as_list(_as_dict(team.get("roster")).get("entries"))

        players = [self._build_player(_as_dict(entry), week) for entry in entries]
        score = _safe_float(side.get("totalPointsLive"), _safe_float(side.get("totalPoints")))
        if score <= 0:
            score = round(sum(player.score for player in players if player.is_starter), 2)
        overall = _as_dict(_as_dict(team.get("record")).get("overall"))

        return RawTeam(
            team_id=team_id,
            owner_id=owner_id,
            owner_name=owner_name,
            avatar_url=team.get("logo") or None,
            score=score,
            projected=round(score * TEAM_PROJECTION_MULTIPLIER, 2),
            wins=_safe_int(overall.get("wins")),
            losses=_safe_int(overall.get("losses")),
            ties=_safe_int(overall.get("ties")),
            players=players,
        )

    def _build_player(self, entry: Dict[str, Any], week: int) -> RawPlayer:
        player = _as_dict(_as_dict(entry.get("playerPoolEntry")).get("player"))
        slot_id = _safe_int(entry.get("lineupSlotId"), 20)
        points = _player_week_points(player, week)
        score = points.get(ACTUAL_STAT_SOURCE, 0.0)
        projected = points.get(PROJECTED_STAT_SOURCE, round(score * PLAYER_PROJECTION_MULTIPLIER, 2))
        injury = player.get("injuryStatus")
        return RawPlayer(
            player_id=str(player.get("id", entry.get("playerId"))),
            first_name=str(player.get("firstName") or ""),
            last_name=str(player.get("lastName") or ""),
            position=POSITION_NAMES.get(_safe_int(player.get("defaultPositionId"), -1), "FLEX"),
            team=PRO_TEAMS.get(_safe_int(player.get("proTeamId"), 0), "FA"),
            lineup_slot=slot_name(slot_id),
            is_starter=slot_id in STARTER_SLOT_IDS,
            score=score,
            projected=projected,
            injury_status=str(injury) if injury and injury != "ACTIVE" else None,
        )
