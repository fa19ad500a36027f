from typing import Any, Dict, Iterable, Optional


DEFAULT_SLEEPER_SCORING: Dict[str, float] = {
    "pass_yd": 0.04,
    "pass_td": 4.0,
    "pass_int": -1.0,
    "rush_yd": 0.1,
    "rush_td": 6.0,
    "rec": 1.0,
    "rec_yd": 0.1,
    "rec_td": 6.0,
    "fgm": 3.0,
    "xpm": 1.0,
    "def_td": 6.0,
    "def_int": 2.0,
    "def_fr": 2.0,
    "def_sack": 1.0,
    "def_safe": 2.0,
    "fum_lost": -1.0,
}


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def normalize_rules(rules: Any) -> Dict[str, float]:
    if not isinstance(rules, dict):
        return {}
    output: Dict[str, float] = {}
    for key, value in rules.items():
        number = _numeric(value)
        if number is not None:
            output[str(key)] = number
    return output


def score_player(stats: Dict[str, Any], rules: Optional[Dict[str, float]] = None) -> float:
    active_rules = rules or DEFAULT_SLEEPER_SCORING
    total = 0.0
    for stat_key, stat_value in (stats or {}).items():
        weight = active_rules.get(str(stat_key))
        number = _numeric(stat_value)
        if weight is None or number is None:
            continue
        total += number * weight
    return round(total, 2)


def team_score(
    starters: Iterable[str],
    week_stats: Dict[str, Dict[str, Any]],
    rules: Optional[Dict[str, float]] = None,
) -> float:
    total = 0.0
    for player_id in starters:
        if not player_id or player_id == "0":
            continue
        total += score_player(week_stats.get(str(player_id), {}), rules)
    return round(total, 2)
