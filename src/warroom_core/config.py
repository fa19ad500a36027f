import copy
import logging
import os
import re
from dataclasses import dataclass, field, is_dataclass
from typing import Any, Dict, List, Optional

from .adapters.espn import ESPNAdapter
from .adapters.sleeper import SleeperAdapter
from .canonicalizer import IdentityCanonicalizer
from .chopped import ChoppedLeagueService
from .errors import DecodeError, NetworkError
from .loader import MatchupLoader
from .odds_cache import BettingOddsCacheManager
from .settings import KeyValueSettings
from .snapshot_store import SnapshotStore
from .unifier import LeagueModeClassifier, LeagueUnifier
from .warroom_types import (
    EliminationConfig,
    OddsCacheConfig,
    Platform,
    ProviderRuntimeConfig,
    SnapshotStoreConfig,
)


logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class WarRoomConfig:
    season: int = 0
    sleeper_user_id: Optional[str] = None
    espn_league_ids: List[str] = field(default_factory=list)
    swid: Optional[str] = None
    espn_s2: Optional[str] = None
    identity_map_path: Optional[str] = None
    runtime: ProviderRuntimeConfig = field(default_factory=ProviderRuntimeConfig)
    snapshots: SnapshotStoreConfig = field(default_factory=SnapshotStoreConfig)
    odds: OddsCacheConfig = field(default_factory=OddsCacheConfig)
    elimination: EliminationConfig = field(default_factory=EliminationConfig)


@dataclass
class WarRoomServices:
    config: WarRoomConfig
    sleeper: SleeperAdapter
    espn: ESPNAdapter
    canonicalizer: IdentityCanonicalizer
    store: SnapshotStore
    unifier: LeagueUnifier
    classifier: LeagueModeClassifier
    chopped: ChoppedLeagueService
    loader: MatchupLoader
    odds: BettingOddsCacheManager


def _expand_env_string(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    expanded = _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), match.group(0)), value)
    if expanded.startswith("${") and expanded.endswith("}"):
        return None
    return expanded


def _coerce_dataclass(instance: Any, values: Dict[str, Any]) -> Any:
    if not isinstance(values, dict):
        return instance

    for key, value in values.items():
        if not hasattr(instance, key):
            continue

        current = getattr(instance, key)
        if is_dataclass(current) and isinstance(value, dict):
            _coerce_dataclass(current, value)
            continue

        setattr(instance, key, value)

    return instance


def load_config(config: Optional[Any] = None, **kwargs: Any) -> WarRoomConfig:
    if isinstance(config, WarRoomConfig):
        payload = _coerce_dataclass(copy.deepcopy(config), kwargs)
    elif config is None or isinstance(config, dict):
        payload = WarRoomConfig()
        _coerce_dataclass(payload, config or {})
        _coerce_dataclass(payload, kwargs)
    else:
        raise ValueError("load_config requires a config dict or WarRoomConfig")

    payload.swid = _expand_env_string(payload.swid) or os.getenv("WARROOM_ESPN_SWID")
    payload.espn_s2 = _expand_env_string(payload.espn_s2) or os.getenv("WARROOM_ESPN_S2")
    payload.sleeper_user_id = _expand_env_string(payload.sleeper_user_id) or os.getenv("WARROOM_SLEEPER_USER_ID")
    payload.espn_league_ids = [str(league_id) for league_id in (payload.espn_league_ids or [])]
    payload.season = int(payload.season or 0)
    if payload.season <= 0:
        raise ValueError("season must be a positive year")
    return payload


def _prepare_canonicalizer(
    canonicalizer: IdentityCanonicalizer,
    sleeper: SleeperAdapter,
    identity_map_path: Optional[str],
) -> IdentityCanonicalizer:
    if identity_map_path and canonicalizer.load(identity_map_path):
        return canonicalizer

    try:
        canonicalizer.build(sleeper.fetch_player_directory())
    except (NetworkError, DecodeError) as exc:
        logger.warning("identity_canonicalizer_build_failed: %s", exc)
        return canonicalizer

    if identity_map_path:
        try:
            canonicalizer.save(identity_map_path)
        except OSError as exc:
            logger.warning("identity_mapping_save_failed:%s:%s", identity_map_path, exc)
    return canonicalizer


def build_services(config: Optional[Any] = None, **kwargs: Any) -> WarRoomServices:
    cfg = load_config(config, **kwargs)
    sleeper = SleeperAdapter(runtime=cfg.runtime, season=cfg.season)
    espn = ESPNAdapter(season=cfg.season, swid=cfg.swid, espn_s2=cfg.espn_s2, runtime=cfg.runtime)
    adapters = {Platform.SLEEPER: sleeper, Platform.ESPN: espn}

    canonicalizer = _prepare_canonicalizer(IdentityCanonicalizer(), sleeper, cfg.identity_map_path)

    store = SnapshotStore(adapters, config=cfg.snapshots, canonicalizer=canonicalizer)
    unifier = LeagueUnifier(adapters, runtime=cfg.runtime)
    classifier = LeagueModeClassifier(adapters, runtime=cfg.runtime)
    chopped = ChoppedLeagueService(sleeper, config=cfg.elimination, runtime=cfg.runtime)
    loader = MatchupLoader(
        unifier,
        classifier,
        store,
        chopped_service=chopped,
        runtime=cfg.runtime,
        sleeper_user_id=cfg.sleeper_user_id,
        espn_league_ids=cfg.espn_league_ids,
        season=cfg.season,
    )
    odds = BettingOddsCacheManager(config=cfg.odds, settings=KeyValueSettings(cfg.odds.settings_path))
    return WarRoomServices(
        config=cfg,
        sleeper=sleeper,
        espn=espn,
        canonicalizer=canonicalizer,
        store=store,
        unifier=unifier,
        classifier=classifier,
        chopped=chopped,
        loader=loader,
        odds=odds,
    )
