from .common import RawMatchup, RawPlayer, RawTeam, RosterRecord, UserRecord
from .espn import ESPNAdapter
from .sleeper import SleeperAdapter

__all__ = [
    "ESPNAdapter",
    "SleeperAdapter",
    "RawMatchup",
    "RawPlayer",
    "RawTeam",
    "RosterRecord",
    "UserRecord",
]
