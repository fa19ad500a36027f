from typing import Any, Optional


class WarRoomError(Exception):
    pass


class NetworkError(WarRoomError):
    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class DecodeError(WarRoomError):
    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class CacheMiss(LookupError):
    """Raised by cache reads when no valid entry exists; callers fetch and persist."""

    def __init__(self, key: Any):
        super().__init__(str(key))
        self.key = key


class HydrationFailure(WarRoomError):
    def __init__(self, snapshot_id: Any, cause: Optional[BaseException] = None, message: str = ""):
        detail = message or (str(cause) if cause is not None else "hydration_failed")
        super().__init__(f"{snapshot_id}: {detail}")
        self.snapshot_id = snapshot_id
        self.cause = cause


class HydrationCancelled(WarRoomError):
    pass


class ClassificationMismatch(WarRoomError):
    def __init__(self, league_id: str, week: int):
        self.league_id = str(league_id)
        self.week = int(week)
        self.user_message = f"No matchups or active rosters found for week {self.week}"
        super().__init__(f"{self.league_id}: {self.user_message}")


class LeagueDiscoveryError(WarRoomError):
    def __init__(self, failures: dict):
        self.failures = dict(failures)
        joined = "; ".join(f"{name}: {exc}" for name, exc in self.failures.items())
        super().__init__(joined or "league_discovery_failed")
