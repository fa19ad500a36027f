from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .adapters.common import STATUS_LIVE, RawMatchup, RawPlayer, RawTeam
from .canonicalizer import IdentityCanonicalizer
from .warroom_types import LeagueDescriptor, LeagueMode, MatchupSnapshotID, Platform


@dataclass(frozen=True)
class PlayerIdentity:
    sleeper_id: Optional[str]
    espn_id: Optional[str]
    first_name: str
    last_name: str
    canonical_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class PlayerContext:
    position: str
    team: str
    jersey_number: Optional[str]
    is_starter: bool
    lineup_slot: str
    injury_status: Optional[str] = None


@dataclass(frozen=True)
class PlayerMetrics:
    current_score: float
    projected_score: float
    game_status: Optional[str] = None


@dataclass(frozen=True)
class PlayerSnapshot:
    id: str
    identity: PlayerIdentity
    context: PlayerContext
    metrics: PlayerMetrics


@dataclass(frozen=True)
class TeamInfo:
    team_id: str
    owner_name: str
    avatar_url: Optional[str]
    record: str


@dataclass(frozen=True)
class ScoreLine:
    actual: float
    projected: float
    win_probability: Optional[float]
    margin: float = 0.0


@dataclass(frozen=True)
class TeamSnapshot:
    info: TeamInfo
    score: ScoreLine
    roster: Tuple[PlayerSnapshot, ...]

    @property
    def starters(self) -> Tuple[PlayerSnapshot, ...]:
        return tuple(player for player in self.roster if player.context.is_starter)


@dataclass(frozen=True)
class MatchupMetadata:
    status: str
    start_time: Optional[str]
    is_playoff: bool = False
    is_elimination: bool = False
    is_eliminated: bool = False


@dataclass(frozen=True)
class MatchupSnapshot:
    id: MatchupSnapshotID
    my_team: TeamSnapshot
    opponent_team: Optional[TeamSnapshot]
    metadata: MatchupMetadata
    last_updated: float

    @property
    def has_live_starters(self) -> bool:
        if self.metadata.status == STATUS_LIVE:
            return True
        teams = [self.my_team] + ([self.opponent_team] if self.opponent_team else [])
        return any(player.metrics.game_status == STATUS_LIVE for team in teams for player in team.starters)


def win_probability(own_score: float, other_score: float) -> float:
    return float(np.clip(0.5 + ((own_score - other_score) / 100.0) * 0.3, 0.0, 1.0))


def _player_snapshot(
    raw: RawPlayer,
    platform: Platform,
    canonicalizer: Optional[IdentityCanonicalizer],
) -> PlayerSnapshot:
    sleeper_id = raw.player_id if platform == Platform.SLEEPER else None
    espn_id = raw.player_id if platform == Platform.ESPN else None
    canonical_id = None
    if canonicalizer is not None:
        canonical_id = str(canonicalizer.canonical_id(sleeper_id=sleeper_id, espn_id=espn_id))
        if espn_id and sleeper_id is None:
            sleeper_id = canonicalizer.sleeper_id_for_espn(espn_id)
    return PlayerSnapshot(
        id=raw.player_id,
        identity=PlayerIdentity(
            sleeper_id=sleeper_id,
            espn_id=espn_id,
            first_name=raw.first_name,
            last_name=raw.last_name,
            canonical_id=canonical_id,
        ),
        context=PlayerContext(
            position=raw.position,
            team=raw.team,
            jersey_number=raw.jersey_number,
            is_starter=raw.is_starter,
            lineup_slot=raw.lineup_slot,
            injury_status=raw.injury_status,
        ),
        metrics=PlayerMetrics(
            current_score=float(raw.score),
            projected_score=float(raw.projected),
            game_status=raw.game_status,
        ),
    )


def _team_snapshot(
    raw: RawTeam,
    other: Optional[RawTeam],
    platform: Platform,
    canonicalizer: Optional[IdentityCanonicalizer],
) -> TeamSnapshot:
    other_score = other.score if other is not None else 0.0
    return TeamSnapshot(
        info=TeamInfo(
            team_id=raw.team_id,
            owner_name=raw.owner_name,
            avatar_url=raw.avatar_url,
            record=raw.record,
        ),
        score=ScoreLine(
            actual=float(raw.score),
            projected=float(raw.projected),
            win_probability=win_probability(raw.score, other_score) if other is not None else None,
            margin=round(float(raw.score) - float(other_score), 2) if other is not None else 0.0,
        ),
        roster=tuple(_player_snapshot(player, platform, canonicalizer) for player in raw.players),
    )


def _split_sides(matchup: RawMatchup, my_team_id: Optional[str]) -> Tuple[RawTeam, Optional[RawTeam]]:
    teams = list(matchup.teams)
    if len(teams) == 1:
        return teams[0], None
    if my_team_id is not None and str(teams[1].team_id) == str(my_team_id):
        return teams[1], teams[0]
    return teams[0], teams[1]


def build_matchup_snapshots(
    descriptor: LeagueDescriptor,
    week: int,
    matchups: Iterable[RawMatchup],
    observed_at: float,
    canonicalizer: Optional[IdentityCanonicalizer] = None,
) -> Dict[MatchupSnapshotID, MatchupSnapshot]:
    output: Dict[MatchupSnapshotID, MatchupSnapshot] = {}
    for matchup in matchups:
        if not matchup.teams:
            continue
        mine, other = _split_sides(matchup, descriptor.my_team_id)
        snapshot_id = MatchupSnapshotID(
            league_id=str(descriptor.league_id),
            matchup_id=str(matchup.matchup_id),
            platform=descriptor.platform,
            week=int(week),
        )
        output[snapshot_id] = MatchupSnapshot(
            id=snapshot_id,
            my_team=_team_snapshot(mine, other, descriptor.platform, canonicalizer),
            opponent_team=_team_snapshot(other, mine, descriptor.platform, canonicalizer) if other else None,
            metadata=MatchupMetadata(
                status=matchup.status,
                start_time=matchup.start_time,
                is_playoff=int(week) >= int(descriptor.playoff_week_start),
                is_elimination=descriptor.mode == LeagueMode.ELIMINATION,
            ),
            last_updated=float(observed_at),
        )
    return output


def involves_team(snapshot: MatchupSnapshot, team_id: Optional[str]) -> bool:
    if team_id is None:
        return False
    if snapshot.my_team.info.team_id == str(team_id):
        return True
    return snapshot.opponent_team is not None and snapshot.opponent_team.info.team_id == str(team_id)


def changed_player_ids(previous: MatchupSnapshot, current: MatchupSnapshot, tolerance: float = 0.01) -> List[str]:
    def _players(snapshot: MatchupSnapshot) -> Dict[str, PlayerSnapshot]:
        teams = [snapshot.my_team] + ([snapshot.opponent_team] if snapshot.opponent_team else [])
        return {player.id: player for team in teams for player in team.roster}

    before = _players(previous)
    changed: List[str] = []
    for player_id, player in _players(current).items():
        old = before.get(player_id)
        if old is None:
            continue
        if abs(player.metrics.current_score - old.metrics.current_score) > tolerance:
            changed.append(player_id)
        elif player.metrics.game_status != old.metrics.game_status:
            changed.append(player_id)
        elif player.context.injury_status != old.context.injury_status:
            changed.append(player_id)
    return changed
