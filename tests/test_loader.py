from dataclasses import replace
from unittest import TestCase

from warroom_core.adapters.common import RawMatchup, RawTeam
from warroom_core.errors import LeagueDiscoveryError, NetworkError
from warroom_core.loader import FETCH_FAILED_MESSAGE, NO_LEAGUES_MESSAGE, MatchupLoader
from warroom_core.snapshot_store import SnapshotStore
from warroom_core.unifier import LeagueClassification
from warroom_core.warroom_types import ChoppedWeekSummary, LeagueDescriptor, LeagueMode, Platform


class FakeUnifier:
    def __init__(self, leagues=None, error=None):
        self.leagues = leagues or []
        self.error = error

    def discover(self, sleeper_user_id, espn_league_ids, season):
        if self.error is not None:
            raise self.error
        return list(self.leagues)


class FakeClassifier:
    def __init__(self, modes=None, message=None):
        self.modes = modes or {}
        self.message = message
        self.calls = 0

    def classify(self, descriptor, week):
        self.calls += 1
        mode = self.modes.get(descriptor.id, LeagueMode.UNKNOWN)
        return LeagueClassification(replace(descriptor, mode=mode), mode, self.message)


class FakeAdapter:
    def __init__(self, platform, matchups=None, error=None):
        self.platform = platform
        self.matchups = matchups or []
        self.error = error

    def fetch_matchups(self, league_id, week):
        if self.error is not None:
            raise self.error
        return list(self.matchups)


class FakeChopped:
    def __init__(self):
        self.calls = []

    def build_summary(self, descriptor, week, week_complete=False):
        self.calls.append((descriptor.id, week, week_complete))
        return ChoppedWeekSummary(
            league_id=descriptor.id,
            week=week,
            rankings=[],
            eliminated_team=None,
            average_score=0.0,
            highest_score=0.0,
            lowest_score=0.0,
            cutoff_score=0.0,
            is_complete=week_complete,
            total_survivors=0,
        )


def _league(league_id, platform, mode=LeagueMode.UNKNOWN, my_team_id="1"):
    return LeagueDescriptor(league_id=league_id, name=league_id, platform=platform, season=2024, my_team_id=my_team_id, mode=mode)


def _pairing():
    return [RawMatchup("1", [RawTeam(team_id="1", score=80.0), RawTeam(team_id="2", score=90.0)], status="live")]


class MatchupLoaderTest(TestCase):
    def _loader(self, unifier, classifier=None, sleeper=None, espn=None, chopped=None):
        adapters = {
            Platform.SLEEPER: sleeper or FakeAdapter(Platform.SLEEPER, _pairing()),
            Platform.ESPN: espn or FakeAdapter(Platform.ESPN, _pairing()),
        }
        return MatchupLoader(
            unifier,
            classifier or FakeClassifier(),
            SnapshotStore(adapters),
            chopped_service=chopped,
            sleeper_user_id="u1",
            espn_league_ids=["E1"],
            season=2024,
        )

    def test_no_leagues(self):
        result = self._loader(FakeUnifier()).load(3)
        self.assertEqual(result.messages, [NO_LEAGUES_MESSAGE])
        self.assertEqual(result.leagues, [])

    def test_discovery_failure_is_reported(self):
        error = LeagueDiscoveryError({"sleeper": NetworkError("down")})
        result = self._loader(FakeUnifier(error=error)).load(3)
        self.assertEqual(result.messages, [FETCH_FAILED_MESSAGE.format(reason=error)])

    def test_partial_failure_keeps_successful_leagues(self):
        leagues = [_league("S1", Platform.SLEEPER, LeagueMode.HEAD_TO_HEAD), _league("E1", Platform.ESPN, LeagueMode.HEAD_TO_HEAD)]
        loader = self._loader(FakeUnifier(leagues), espn=FakeAdapter(Platform.ESPN, error=NetworkError("offline")))

        with self.assertLogs("warroom_core.loader", level="WARNING"):
            result = loader.load(3)

        self.assertEqual([load.descriptor.id for load in result.leagues], ["sleeper_S1"])
        self.assertIn("espn_E1", result.failures)
        self.assertEqual(result.messages, [])
        self.assertEqual(len(result.snapshots), 1)
        self.assertEqual(result.snapshots[0].my_team.info.team_id, "1")

    def test_all_leagues_failing_sets_message(self):
        leagues = [_league("E1", Platform.ESPN, LeagueMode.HEAD_TO_HEAD)]
        loader = self._loader(FakeUnifier(leagues), espn=FakeAdapter(Platform.ESPN, error=NetworkError("offline")))

        with self.assertLogs("warroom_core.loader", level="WARNING"):
            result = loader.load(3)

        self.assertEqual(len(result.messages), 1)
        self.assertTrue(result.messages[0].startswith("Failed to fetch matchups: "))
        self.assertIn("offline", result.messages[0])

    def test_elimination_leagues_use_chopped_summary(self):
        leagues = [_league("S1", Platform.SLEEPER)]
        classifier = FakeClassifier(modes={"sleeper_S1": LeagueMode.ELIMINATION})
        chopped = FakeChopped()
        loader = self._loader(FakeUnifier(leagues), classifier=classifier, chopped=chopped)

        first = loader.load(5, week_complete=True)
        second = loader.load(5)

        self.assertEqual(classifier.calls, 1)
        self.assertEqual(chopped.calls, [("sleeper_S1", 5, True), ("sleeper_S1", 5, False)])
        self.assertEqual(len(first.summaries), 1)
        self.assertEqual(first.leagues[0].descriptor.mode, LeagueMode.ELIMINATION)
        self.assertEqual(second.snapshots, [])

    def test_reverted_classification_message_is_surfaced(self):
        leagues = [_league("S1", Platform.SLEEPER)]
        classifier = FakeClassifier(message="No matchups or active rosters found for week 3")
        result = self._loader(FakeUnifier(leagues), classifier=classifier, chopped=FakeChopped()).load(3)

        self.assertEqual(result.messages, ["No matchups or active rosters found for week 3"])
        self.assertEqual(len(result.snapshots), 1)

    def test_no_pairing_in_playoffs_marks_elimination(self):
        leagues = [_league("S1", Platform.SLEEPER, LeagueMode.HEAD_TO_HEAD)]
        loader = self._loader(FakeUnifier(leagues), sleeper=FakeAdapter(Platform.SLEEPER, []))

        result = loader.load(16)

        self.assertTrue(result.leagues[0].eliminated_from_playoffs)
        self.assertIsNone(result.leagues[0].my_matchup)

    def test_reset_forgets_modes(self):
        leagues = [_league("S1", Platform.SLEEPER)]
        classifier = FakeClassifier(modes={"sleeper_S1": LeagueMode.ELIMINATION})
        loader = self._loader(FakeUnifier(leagues), classifier=classifier, chopped=FakeChopped())

        loader.load(5)
        loader.reset()
        loader.load(5)
        self.assertEqual(classifier.calls, 2)
