from unittest import TestCase

from warroom_core.adapters.common import RawMatchup, RawTeam, RosterRecord
from warroom_core.errors import LeagueDiscoveryError, NetworkError
from warroom_core.unifier import LeagueModeClassifier, LeagueUnifier
from warroom_core.warroom_types import LeagueDescriptor, LeagueMode, Platform, ProviderRuntimeConfig


def _active(roster_id, owner_id):
    return RosterRecord(roster_id=roster_id, owner_id=owner_id, players=["p1", "p2"], starters=["p1"])


class FakeSleeper:
    platform = Platform.SLEEPER

    def __init__(self, leagues=None, error=None, league=None, rows=None, rosters=None):
        self.leagues = leagues or []
        self.error = error
        self.league = league or {}
        self.rows = rows or []
        self.rosters = rosters if rosters is not None else [_active("1", "u1"), _active("2", "u2")]
        self.league_calls = 0

    def fetch_user_leagues(self, user_id, season):
        if self.error is not None:
            raise self.error
        return list(self.leagues)

    def fetch_rosters(self, league_id):
        return list(self.rosters)

    def fetch_league(self, league_id):
        self.league_calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.league)

    def fetch_matchup_rows(self, league_id, week):
        return list(self.rows)


class FakeESPN:
    platform = Platform.ESPN
    swid = "{SWID-1}"

    def __init__(self, names=None, matchups=None):
        self.names = names or {}
        self.matchups = matchups or []

    def fetch_league_name(self, league_id):
        name = self.names.get(league_id)
        if name is None:
            raise NetworkError(f"unknown_league:{league_id}")
        return name

    def fetch_rosters(self, league_id):
        return [RosterRecord(roster_id="7", owner_id="{SWID-1}"), RosterRecord(roster_id="8", owner_id="{SWID-2}")]

    def fetch_matchups(self, league_id, week):
        return list(self.matchups)


def _sleeper_leagues():
    return [
        {"league_id": "S2", "name": "Zeta", "season": "2024", "settings": {"type": 3, "playoff_week_start": 0}},
        {"league_id": "S1", "name": "alpha", "avatar": "av1", "settings": {"playoff_week_start": 14}},
        {"league_id": "S1", "name": "alpha", "settings": {}},
    ]


class LeagueUnifierTest(TestCase):
    def test_discover_merges_dedupes_and_sorts(self):
        adapters = {
            Platform.SLEEPER: FakeSleeper(leagues=_sleeper_leagues()),
            Platform.ESPN: FakeESPN(names={"E1": "Beta"}),
        }
        leagues = LeagueUnifier(adapters).discover("u1", ["E1"], 2024)

        self.assertEqual([league.id for league in leagues], ["sleeper_S1", "sleeper_S2", "espn_E1"])
        alpha, zeta, beta = leagues
        self.assertEqual(alpha.avatar_url, "https://sleepercdn.com/avatars/av1")
        self.assertEqual(alpha.playoff_week_start, 14)
        self.assertEqual(alpha.my_team_id, "1")
        self.assertEqual(alpha.mode, LeagueMode.UNKNOWN)
        self.assertEqual(zeta.mode, LeagueMode.ELIMINATION)
        self.assertEqual(zeta.playoff_week_start, 15)
        self.assertEqual(zeta.season, 2024)
        self.assertEqual(beta.name, "Beta")
        self.assertEqual(beta.my_team_id, "7")

    def test_one_platform_failing_keeps_the_other(self):
        adapters = {
            Platform.SLEEPER: FakeSleeper(error=NetworkError("sleeper down")),
            Platform.ESPN: FakeESPN(names={"E1": "Beta"}),
        }
        with self.assertLogs("warroom_core.unifier", level="WARNING"):
            leagues = LeagueUnifier(adapters).discover("u1", ["E1", "E2"], 2024)
        self.assertEqual([league.id for league in leagues], ["espn_E1"])

    def test_every_platform_failing_raises(self):
        adapters = {
            Platform.SLEEPER: FakeSleeper(error=NetworkError("sleeper down")),
            Platform.ESPN: FakeESPN(),
        }
        with self.assertRaises(LeagueDiscoveryError) as ctx:
            LeagueUnifier(adapters).discover("u1", ["E1"], 2024)
        self.assertEqual(set(ctx.exception.failures), {"sleeper", "espn"})

    def test_no_accounts_means_no_leagues(self):
        adapters = {Platform.SLEEPER: FakeSleeper(), Platform.ESPN: FakeESPN()}
        self.assertEqual(LeagueUnifier(adapters).discover(None, [], 2024), [])


def _descriptor(platform=Platform.SLEEPER, playoff_week_start=15):
    return LeagueDescriptor(league_id="L1", name="Alpha", platform=platform, season=2024, playoff_week_start=playoff_week_start)


class LeagueModeClassifierTest(TestCase):
    def _classify(self, adapter, week=3, descriptor=None):
        classifier = LeagueModeClassifier({adapter.platform: adapter}, runtime=ProviderRuntimeConfig(retries=1, backoff_seconds=0))
        return classifier.classify(descriptor or _descriptor(adapter.platform), week)

    def test_espn_leagues_with_matchups_are_head_to_head(self):
        matchup = RawMatchup("m1", [RawTeam(team_id="1"), RawTeam(team_id="2")])
        result = self._classify(FakeESPN(matchups=[matchup]))
        self.assertEqual(result.mode, LeagueMode.HEAD_TO_HEAD)
        self.assertEqual(result.descriptor.mode, LeagueMode.HEAD_TO_HEAD)
        self.assertEqual(self._classify(FakeESPN()).mode, LeagueMode.UNKNOWN)

    def test_sleeper_rows_with_matchup_ids_are_head_to_head(self):
        adapter = FakeSleeper(league={"settings": {"type": 0}}, rows=[{"roster_id": 1, "matchup_id": 2}])
        self.assertEqual(self._classify(adapter).mode, LeagueMode.HEAD_TO_HEAD)

    def test_playoff_week_without_pairings_is_head_to_head(self):
        adapter = FakeSleeper(league={"settings": {"type": 0}}, rows=[{"roster_id": 1, "matchup_id": None}])
        self.assertEqual(self._classify(adapter, week=16).mode, LeagueMode.HEAD_TO_HEAD)

    def test_unpaired_regular_season_is_elimination(self):
        adapter = FakeSleeper(league={"settings": {"type": 0}}, rows=[{"roster_id": 1, "matchup_id": None}])
        result = self._classify(adapter)
        self.assertEqual(result.mode, LeagueMode.ELIMINATION)
        self.assertIsNone(result.message)

    def test_chopped_league_without_active_rosters_reverts(self):
        adapter = FakeSleeper(league={"settings": {"type": 3}}, rosters=[RosterRecord(roster_id="1", owner_id=None)])
        result = self._classify(adapter)
        self.assertEqual(result.mode, LeagueMode.UNKNOWN)
        self.assertEqual(result.descriptor.mode, LeagueMode.UNKNOWN)
        self.assertEqual(result.message, "No matchups or active rosters found for week 3")

    def test_network_errors_are_retried_then_unknown(self):
        adapter = FakeSleeper(error=NetworkError("offline"))
        with self.assertLogs("warroom_core.unifier", level="WARNING"):
            result = self._classify(adapter)
        self.assertEqual(adapter.league_calls, 2)
        self.assertEqual(result.mode, LeagueMode.UNKNOWN)
        self.assertIsNone(result.message)
