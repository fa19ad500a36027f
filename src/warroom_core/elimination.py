import math
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .warroom_types import (
    ChoppedWeekSummary,
    EliminationConfig,
    EliminationEvent,
    EliminationStatus,
    FantasyTeamRanking,
    TeamScore,
)


TIEBREAK_LAST_WORDS = "Eliminated by tiebreaker"
DEFAULT_LAST_WORDS = "Couldn't score enough to survive"
_RANK_WEIGHT = 0.45
_MARGIN_WEIGHT = 0.40
_HISTORY_WEIGHT = 0.15
_MAX_PARITY_PULL = 0.6
_VOLATILITY_RATE = 0.35


def _clip(value: float, low: float, high: float, default: float) -> float:
    if value is None or not math.isfinite(value):
        return default
    return float(np.clip(value, low, high))


def _normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def calculate_safety_percentage(
    current_rank: int,
    total_teams: int,
    projected_points: float,
    average_projected: float,
    weekly_variance: float,
    weeks_remaining: int,
    historical_performance: Optional[Sequence[float]] = None,
) -> float:
    total = int(total_teams)
    if total <= 1:
        return 1.0
    rank = int(np.clip(int(current_rank), 1, total))
    rank_score = (total - rank) / float(total - 1)

    sigma = max(abs(float(weekly_variance)), 1.0)
    z = (float(projected_points) - float(average_projected)) / sigma
    margin_score = _clip(_normal_cdf(_clip(z, -8.0, 8.0, 0.0)), 0.0, 1.0, 0.5)

    history = [float(value) for value in (historical_performance or []) if math.isfinite(float(value))]
    if history:
        history_z = (float(np.mean(history)) - float(average_projected)) / sigma
        history_score = _normal_cdf(_clip(history_z, -8.0, 8.0, 0.0))
        base = _RANK_WEIGHT * rank_score + _MARGIN_WEIGHT * margin_score + _HISTORY_WEIGHT * history_score
    else:
        weight = _RANK_WEIGHT + _MARGIN_WEIGHT
        base = (_RANK_WEIGHT * rank_score + _MARGIN_WEIGHT * margin_score) / weight

    volatility = sigma / max(abs(float(average_projected)), 1.0)
    exposure = max(0, int(weeks_remaining)) * volatility * _VOLATILITY_RATE
    pull = _MAX_PARITY_PULL * (1.0 - math.exp(-exposure))
    blended = base + (0.5 - base) * pull
    return _clip(blended, 0.0, 1.0, 0.5)


def elimination_count(active_teams: int, config: Optional[EliminationConfig] = None) -> int:
    cfg = config or EliminationConfig()
    if int(active_teams) <= 1:
        return 0
    return 2 if int(active_teams) >= int(cfg.large_league_threshold) else 1


def determine_elimination_status(
    safety_percentage: float,
    rank: int,
    total_teams: int,
    is_final_week: bool = False,
    week_complete: bool = False,
    eliminations: int = 1,
    config: Optional[EliminationConfig] = None,
) -> EliminationStatus:
    cfg = config or EliminationConfig()
    in_zone = total_teams > 1 and rank > int(total_teams) - max(0, int(eliminations))
    if week_complete and in_zone:
        return EliminationStatus.ELIMINATED
    if rank == 1 and is_final_week:
        return EliminationStatus.CHAMPION
    if in_zone:
        return EliminationStatus.CRITICAL
    if safety_percentage >= cfg.safe_threshold:
        return EliminationStatus.SAFE
    if safety_percentage >= cfg.warning_threshold:
        return EliminationStatus.WARNING
    if safety_percentage >= cfg.danger_threshold:
        return EliminationStatus.DANGER
    return EliminationStatus.CRITICAL


def weekly_points(team: TeamScore, config: Optional[EliminationConfig] = None) -> float:
    if float(team.actual) > 0:
        return float(team.actual)
    return projected_points(team, config)


def projected_points(team: TeamScore, config: Optional[EliminationConfig] = None) -> float:
    cfg = config or EliminationConfig()
    if team.projected is not None:
        return float(team.projected)
    return round(float(team.actual) * float(cfg.projection_multiplier), 2)


def _sorted_teams(teams: Sequence[TeamScore], config: EliminationConfig) -> List[TeamScore]:
    return sorted(teams, key=lambda team: -weekly_points(team, config))


def build_rankings(
    teams: Sequence[TeamScore],
    week: int,
    week_complete: bool = False,
    history: Optional[Dict[str, Sequence[float]]] = None,
    config: Optional[EliminationConfig] = None,
) -> List[FantasyTeamRanking]:
    cfg = config or EliminationConfig()
    if not teams:
        return []

    ordered = _sorted_teams(teams, cfg)
    total = len(ordered)
    points = np.array([weekly_points(team, cfg) for team in ordered], dtype=float)
    projections = np.array([projected_points(team, cfg) for team in ordered], dtype=float)
    variance = float(np.std(points, ddof=1)) if total >= 2 else float(cfg.default_variance)
    average_projected = float(np.mean(projections))
    weeks_remaining = max(0, int(cfg.season_weeks) - int(week))
    is_final_week = int(week) >= int(cfg.season_weeks) or total <= 2
    eliminations = elimination_count(total, cfg)
    scheduled = not any(float(team.actual) > 0 for team in ordered)

    zone_start = total - eliminations
    cutoff = float(points[zone_start]) if 0 <= zone_start < total else float(points[-1])

    rankings: List[FantasyTeamRanking] = []
    for index, team in enumerate(ordered):
        rank = index + 1
        weeks_alive = int(team.weeks_alive) if team.weeks_alive is not None else int(week)
        if scheduled:
            status = EliminationStatus.SAFE
            probability = 1.0
        else:
            probability = calculate_safety_percentage(
                current_rank=rank,
                total_teams=total,
                projected_points=float(projections[index]),
                average_projected=average_projected,
                weekly_variance=variance,
                weeks_remaining=weeks_remaining,
                historical_performance=(history or {}).get(team.team_id),
            )
            status = determine_elimination_status(
                probability,
                rank,
                total,
                is_final_week=is_final_week and week_complete,
                week_complete=week_complete,
                eliminations=eliminations,
                config=cfg,
            )
            if status == EliminationStatus.ELIMINATED:
                probability = 0.0
            elif status == EliminationStatus.CHAMPION:
                probability = 1.0
        rankings.append(
            FantasyTeamRanking(
                team=team,
                weekly_points=float(points[index]),
                rank=rank,
                elimination_status=status,
                survival_probability=probability,
                points_from_safety=round(float(points[index]) - cutoff, 2),
                weeks_alive=weeks_alive,
            )
        )
    return rankings


def _lowest_two(scores: Sequence[Tuple[TeamScore, float]]) -> Tuple[int, Optional[float], bool]:
    lowest_index = 0
    for index, (_, value) in enumerate(scores):
        if value < scores[lowest_index][1]:
            lowest_index = index
    lowest = scores[lowest_index][1]
    others = [value for index, (_, value) in enumerate(scores) if index != lowest_index]
    second = min(others) if others else None
    tied = second is not None and second == lowest
    return lowest_index, second, tied


def drama_meter(margin: float, tied: bool) -> float:
    if tied:
        return 1.0
    return _clip(1.0 - float(margin) / 25.0, 0.1, 0.95, 0.1)


def eliminate_week(
    week: int,
    scores: Sequence[Tuple[TeamScore, float]],
    timestamp: Optional[float] = None,
) -> Optional[EliminationEvent]:
    if len(scores) < 2:
        return None
    lowest_index, second, tied = _lowest_two(scores)
    team, lowest = scores[lowest_index]
    margin = round(float(second) - float(lowest), 2) if second is not None else 0.0
    ranking = FantasyTeamRanking(
        team=team,
        weekly_points=float(lowest),
        rank=len(scores),
        elimination_status=EliminationStatus.ELIMINATED,
        survival_probability=0.0,
        points_from_safety=-margin,
        weeks_alive=int(week),
    )
    return EliminationEvent(
        week=int(week),
        eliminated_team=ranking,
        elimination_score=float(lowest),
        margin=margin,
        drama_meter=drama_meter(margin, tied),
        timestamp=float(timestamp if timestamp is not None else time.time()),
        last_words=TIEBREAK_LAST_WORDS if tied else DEFAULT_LAST_WORDS,
    )


def _extend_history(
    known: Dict[int, EliminationEvent],
    weekly_scores: Dict[int, Sequence[TeamScore]],
    current_week: int,
    timestamp: Optional[float],
) -> None:
    eliminated = {event.eliminated_team.team.team_id for event in known.values()}
    for week in sorted(weekly_scores):
        if week >= int(current_week):
            break
        if week in known:
            continue
        alive = [
            (team, float(team.actual))
            for team in weekly_scores[week]
            if team.team_id not in eliminated
        ]
        event = eliminate_week(week, alive, timestamp)
        if event is None:
            continue
        known[week] = event
        eliminated.add(event.eliminated_team.team.team_id)


def build_elimination_history(
    weekly_scores: Dict[int, Sequence[TeamScore]],
    current_week: int,
    timestamp: Optional[float] = None,
) -> List[EliminationEvent]:
    known: Dict[int, EliminationEvent] = {}
    _extend_history(known, weekly_scores, current_week, timestamp)
    return [known[week] for week in sorted(known)]


class EliminationLedger:
    """Per-league record of finalized weekly eliminations."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: Dict[str, Dict[int, EliminationEvent]] = {}

    def history(self, league_id: str) -> List[EliminationEvent]:
        with self._lock:
            weeks = self._events.get(str(league_id), {})
            return [weeks[week] for week in sorted(weeks)]

    def eliminated_team_ids(self, league_id: str) -> set:
        return {event.eliminated_team.team.team_id for event in self.history(league_id)}

    def recorded_weeks(self, league_id: str) -> List[int]:
        with self._lock:
            return sorted(self._events.get(str(league_id), {}))

    def record(
        self,
        league_id: str,
        weekly_scores: Dict[int, Sequence[TeamScore]],
        current_week: int,
        timestamp: Optional[float] = None,
    ) -> List[EliminationEvent]:
        with self._lock:
            known = self._events.setdefault(str(league_id), {})
            _extend_history(known, weekly_scores, current_week, timestamp)
            return [known[week] for week in sorted(known)]

    def clear(self, league_id: Optional[str] = None) -> None:
        with self._lock:
            if league_id is None:
                self._events.clear()
            else:
                self._events.pop(str(league_id), None)


def build_week_summary(
    league_id: str,
    teams: Sequence[TeamScore],
    week: int,
    week_complete: bool = False,
    elimination_history: Optional[List[EliminationEvent]] = None,
    graveyard: Optional[List[str]] = None,
    history: Optional[Dict[str, Sequence[float]]] = None,
    config: Optional[EliminationConfig] = None,
) -> ChoppedWeekSummary:
    cfg = config or EliminationConfig()
    rankings = build_rankings(teams, week, week_complete=week_complete, history=history, config=cfg)
    scores = np.array([ranking.weekly_points for ranking in rankings], dtype=float)
    eliminations = elimination_count(len(rankings), cfg)

    eliminated_team = None
    cutoff = 0.0
    if rankings:
        zone = rankings[len(rankings) - eliminations:] if eliminations else []
        cutoff = zone[0].weekly_points if zone else rankings[-1].weekly_points
        if week_complete and zone:
            eliminated_team = zone[-1]

    return ChoppedWeekSummary(
        league_id=str(league_id),
        week=int(week),
        rankings=rankings,
        eliminated_team=eliminated_team,
        average_score=round(float(np.mean(scores)), 2) if scores.size else 0.0,
        highest_score=float(np.max(scores)) if scores.size else 0.0,
        lowest_score=float(np.min(scores)) if scores.size else 0.0,
        cutoff_score=float(cutoff),
        is_complete=bool(week_complete),
        total_survivors=len(rankings) - (eliminations if week_complete else 0),
        elimination_history=list(elimination_history or []),
        graveyard=list(graveyard or []),
    )
