import copy
import hashlib
import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .errors import CacheMiss
from .settings import KeyValueSettings
from .warroom_types import CacheEntry, OddsCacheConfig, OddsValidity


logger = logging.getLogger(__name__)

LAST_FETCH_KEY = "BettingOdds_LastGameOddsFetch"
REFRESH_INTERVAL_KEY = "OddsRefreshInterval"
ODDS_FILE_PREFIX = "odds_"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")


def odds_file_name(cache_key: str) -> str:
    key = str(cache_key)
    safe = _UNSAFE_KEY_CHARS.sub("_", key)
    if safe != key:
        # rewritten keys get a digest suffix; two keys never share a file
        safe = f"{safe}_{hashlib.sha256(key.encode('utf-8')).hexdigest()[:8]}"
    return f"{ODDS_FILE_PREFIX}{safe}.json"


class BettingOddsCacheManager:
    def __init__(
        self,
        config: Optional[OddsCacheConfig] = None,
        settings: Optional[KeyValueSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or OddsCacheConfig()
        self.cache_dir = Path(self.config.cache_dir)
        self.settings = settings or KeyValueSettings(self.config.settings_path)
        self._clock = clock
        self._lock = threading.RLock()
        self._game_odds: Dict[str, CacheEntry] = {}
        self._player_odds: Dict[str, CacheEntry] = {}
        self._generation = 0

    @property
    def game_odds_ttl_seconds(self) -> float:
        minutes = self.settings.get_float(REFRESH_INTERVAL_KEY, 0.0)
        if minutes <= 0:
            minutes = float(self.config.default_refresh_minutes)
        minutes = max(float(self.config.minimum_refresh_minutes), minutes)
        return minutes * 60.0

    def set_refresh_interval(self, minutes: float) -> None:
        self.settings.set(REFRESH_INTERVAL_KEY, float(minutes))

    def _last_fetch(self) -> Optional[float]:
        value = self.settings.get(LAST_FETCH_KEY)
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def is_game_odds_cache_valid(self) -> OddsValidity:
        with self._lock:
            last_fetch = self._last_fetch()
            if last_fetch is None:
                return False, None, None
            since = self._clock() - last_fetch
            return since < self.game_odds_ttl_seconds, last_fetch, since

    def begin_fetch(self) -> int:
        with self._lock:
            return self._generation

    def load_game_odds(self, cache_key: str) -> Any:
        with self._lock:
            now = self._clock()
            ttl = self.game_odds_ttl_seconds
            entry = self._game_odds.get(cache_key)
            if entry is not None and entry.is_valid(now, ttl):
                logger.debug("odds_memory_hit:%s", cache_key)
                return copy.deepcopy(entry.value)

            is_valid, last_fetch, _ = self.is_game_odds_cache_valid()
            if not is_valid or last_fetch is None:
                raise CacheMiss(cache_key)

            value = self._read_disk(cache_key)
            if value is None:
                raise CacheMiss(cache_key)
            self._game_odds[cache_key] = CacheEntry(value=value, timestamp=last_fetch)
            logger.debug("odds_disk_hit:%s", cache_key)
            return copy.deepcopy(value)

    def cached_game_odds(self, cache_key: str, default: Any = None) -> Any:
        try:
            return self.load_game_odds(cache_key)
        except CacheMiss:
            return default

    def persist_game_odds(self, value: Any, cache_key: str, generation: Optional[int] = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.info("odds_write_discarded_after_clear:%s", cache_key)
                return False
            now = self._clock()
            self._game_odds[cache_key] = CacheEntry(value=copy.deepcopy(value), timestamp=now)
            try:
                self._write_disk(cache_key, value)
                self.settings.set(LAST_FETCH_KEY, now)
            except Exception as exc:
                logger.warning("odds_persist_failed:%s: %s", cache_key, exc)
                return False
            return True

    def _path_for(self, cache_key: str) -> Path:
        return self.cache_dir / odds_file_name(cache_key)

    def _write_disk(self, cache_key: str, value: Any) -> None:
        path = self._path_for(cache_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp = path.with_suffix(path.suffix + ".tmp")
        temp.write_text(json.dumps(value, sort_keys=True))
        temp.replace(path)

    def _read_disk(self, cache_key: str) -> Any:
        path = self._path_for(cache_key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text())
        except Exception as exc:
            logger.warning("odds_load_failed:%s: %s", path, exc)
            return None

    def clear_game_odds_cache(self) -> int:
        removed = 0
        with self._lock:
            self._game_odds.clear()
            self._generation += 1
            self.settings.remove(LAST_FETCH_KEY)
            if self.cache_dir.exists():
                for path in self.cache_dir.glob(f"{ODDS_FILE_PREFIX}*.json"):
                    try:
                        path.unlink()
                        removed += 1
                    except OSError as exc:
                        logger.warning("odds_file_delete_failed:%s: %s", path, exc)
        logger.info("odds_cache_cleared: %s files", removed)
        return removed

    def cache_player_odds(self, player_id: str, odds: Any) -> None:
        with self._lock:
            now = self._clock()
            if odds is None:
                # a miss is stored already expired so the next lookup retries
                stamp = now - float(self.config.player_odds_ttl_seconds) + float(self.config.negative_ttl_seconds)
                self._player_odds[str(player_id)] = CacheEntry(value=None, timestamp=stamp)
                return
            self._player_odds[str(player_id)] = CacheEntry(value=copy.deepcopy(odds), timestamp=now)

    def load_player_odds(self, player_id: str) -> Any:
        with self._lock:
            entry = self._player_odds.get(str(player_id))
            if entry is None or not entry.is_valid(self._clock(), float(self.config.player_odds_ttl_seconds)):
                raise CacheMiss(player_id)
            return copy.deepcopy(entry.value)

    def cached_player_odds(self, player_id: str, default: Any = None) -> Any:
        try:
            return self.load_player_odds(player_id)
        except CacheMiss:
            return default

    def clear_player_odds_cache(self) -> None:
        with self._lock:
            self._player_odds.clear()
