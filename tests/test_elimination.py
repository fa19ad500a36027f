import itertools
from unittest import TestCase

from warroom_core.elimination import (
    DEFAULT_LAST_WORDS,
    TIEBREAK_LAST_WORDS,
    EliminationLedger,
    build_elimination_history,
    build_rankings,
    build_week_summary,
    calculate_safety_percentage,
    determine_elimination_status,
    elimination_count,
)
from warroom_core.warroom_types import EliminationStatus, TeamScore


def _teams(scores):
    return [TeamScore(team_id=f"T{index}", name=f"Team {index}", actual=score) for index, score in enumerate(scores)]


class SafetyPercentageTest(TestCase):
    def test_bounds_for_finite_inputs(self):
        ranks = [1, 5, 10]
        projected = [0.0, 60.0, 150.0, 1e6]
        averages = [0.0, 100.0]
        variances = [0.0, 10.0, 1e4]
        weeks = [0, 5, 17]
        for rank, points, average, variance, remaining in itertools.product(ranks, projected, averages, variances, weeks):
            value = calculate_safety_percentage(rank, 10, points, average, variance, remaining)
            self.assertGreaterEqual(value, 0.0)
            self.assertLessEqual(value, 1.0)

    def test_better_rank_and_margin_increase_safety(self):
        leader = calculate_safety_percentage(1, 10, 130.0, 100.0, 12.0, 0)
        middle = calculate_safety_percentage(5, 10, 100.0, 100.0, 12.0, 0)
        trailer = calculate_safety_percentage(10, 10, 70.0, 100.0, 12.0, 0)
        self.assertGreater(leader, middle)
        self.assertGreater(middle, trailer)

    def test_remaining_weeks_pull_toward_parity(self):
        late = calculate_safety_percentage(1, 10, 130.0, 100.0, 20.0, 0)
        early = calculate_safety_percentage(1, 10, 130.0, 100.0, 20.0, 15)
        self.assertGreater(late, early)
        self.assertGreater(early, 0.5)

        late_low = calculate_safety_percentage(10, 10, 70.0, 100.0, 20.0, 0)
        early_low = calculate_safety_percentage(10, 10, 70.0, 100.0, 20.0, 15)
        self.assertLess(late_low, early_low)
        self.assertLess(early_low, 0.5)

    def test_single_team_is_safe(self):
        self.assertEqual(calculate_safety_percentage(1, 1, 90.0, 90.0, 0.0, 0), 1.0)

    def test_history_counts(self):
        strong = calculate_safety_percentage(5, 10, 100.0, 100.0, 10.0, 0, historical_performance=[130.0, 125.0])
        weak = calculate_safety_percentage(5, 10, 100.0, 100.0, 10.0, 0, historical_performance=[70.0, 75.0])
        self.assertGreater(strong, weak)


class EliminationStatusTest(TestCase):
    def test_threshold_bands(self):
        self.assertEqual(determine_elimination_status(0.9, 2, 10), EliminationStatus.SAFE)
        self.assertEqual(determine_elimination_status(0.6, 4, 10), EliminationStatus.WARNING)
        self.assertEqual(determine_elimination_status(0.3, 7, 10), EliminationStatus.DANGER)
        self.assertEqual(determine_elimination_status(0.1, 8, 10), EliminationStatus.CRITICAL)

    def test_zone_and_completed_week(self):
        self.assertEqual(determine_elimination_status(0.9, 10, 10), EliminationStatus.CRITICAL)
        self.assertEqual(determine_elimination_status(0.9, 10, 10, week_complete=True), EliminationStatus.ELIMINATED)
        self.assertEqual(
            determine_elimination_status(0.4, 19, 20, week_complete=True, eliminations=2),
            EliminationStatus.ELIMINATED,
        )

    def test_champion_only_in_final_week(self):
        self.assertEqual(determine_elimination_status(0.99, 1, 10), EliminationStatus.SAFE)
        self.assertEqual(determine_elimination_status(0.99, 1, 2, is_final_week=True), EliminationStatus.CHAMPION)

    def test_large_leagues_eliminate_two(self):
        self.assertEqual(elimination_count(18), 2)
        self.assertEqual(elimination_count(17), 1)
        self.assertEqual(elimination_count(1), 0)


class RankingsTest(TestCase):
    def test_ranks_follow_weekly_points(self):
        teams = _teams([90.0, 120.5, 75.0, 101.0])
        teams.append(TeamScore(team_id="T4", name="Team 4", actual=0.0, projected=110.0))
        rankings = build_rankings(teams, week=5)

        self.assertEqual([ranking.rank for ranking in rankings], [1, 2, 3, 4, 5])
        self.assertEqual([ranking.team.team_id for ranking in rankings], ["T1", "T4", "T3", "T0", "T2"])
        for higher, lower in zip(rankings, rankings[1:]):
            self.assertGreaterEqual(higher.weekly_points, lower.weekly_points)
            self.assertGreaterEqual(higher.survival_probability, lower.survival_probability)
        self.assertEqual(rankings[-1].elimination_status, EliminationStatus.CRITICAL)
        self.assertEqual(rankings[-1].points_from_safety, 0.0)
        self.assertEqual(rankings[0].points_from_safety, 45.5)

    def test_ties_keep_input_order(self):
        rankings = build_rankings(_teams([80.0, 95.0, 80.0, 80.0]), week=2)
        self.assertEqual([ranking.team.team_id for ranking in rankings], ["T1", "T0", "T2", "T3"])

    def test_scheduled_week_forces_safe(self):
        teams = [
            TeamScore(team_id="A", name="A", actual=0.0, projected=130.0),
            TeamScore(team_id="B", name="B", actual=0.0, projected=60.0),
            TeamScore(team_id="C", name="C", actual=0.0),
        ]
        rankings = build_rankings(teams, week=4, week_complete=True)
        for ranking in rankings:
            self.assertEqual(ranking.elimination_status, EliminationStatus.SAFE)
            self.assertEqual(ranking.survival_probability, 1.0)

    def test_completed_week_eliminates_last_place(self):
        scores = [75.0, 88.2, 101.4, 92.0, 79.5, 110.0, 60.1, 95.5, 84.0, 77.7]
        rankings = build_rankings(_teams(scores), week=6, week_complete=True)

        last = rankings[-1]
        self.assertEqual(last.rank, 10)
        self.assertEqual(last.weekly_points, 60.1)
        self.assertEqual(last.elimination_status, EliminationStatus.ELIMINATED)
        self.assertEqual(last.survival_probability, 0.0)
        for ranking in rankings[:-1]:
            self.assertNotEqual(ranking.elimination_status, EliminationStatus.ELIMINATED)

    def test_missing_projection_defaults_from_actual(self):
        rankings = build_rankings([TeamScore(team_id="A", name="A", actual=100.0)], week=3)
        self.assertEqual(len(rankings), 1)
        self.assertEqual(rankings[0].weekly_points, 100.0)


class EliminationHistoryTest(TestCase):
    def test_history_records_margin_for_each_completed_week(self):
        week_one = _teams([75.0, 88.2, 101.4, 92.0, 79.5, 110.0, 60.1, 95.5, 84.0, 77.7])
        week_two = _teams([90.0, 70.0, 100.0, 99.0, 85.0, 102.0, 140.0, 96.0, 81.0, 88.0])
        events = build_elimination_history({1: week_one, 2: week_two, 3: week_one}, current_week=3, timestamp=5.0)

        self.assertEqual([event.week for event in events], [1, 2])
        first = events[0]
        self.assertEqual(first.eliminated_team.team.team_id, "T6")
        self.assertEqual(first.elimination_score, 60.1)
        self.assertAlmostEqual(first.margin, 75.0 - 60.1, places=2)
        self.assertEqual(first.last_words, DEFAULT_LAST_WORDS)
        self.assertEqual(first.eliminated_team.elimination_status, EliminationStatus.ELIMINATED)
        self.assertEqual(first.timestamp, 5.0)
        self.assertEqual(events[1].eliminated_team.team.team_id, "T1")

    def test_tie_resolves_to_first_in_input_order(self):
        events = build_elimination_history({1: _teams([70.0, 90.0, 70.0])}, current_week=2)
        self.assertEqual(events[0].eliminated_team.team.team_id, "T0")
        self.assertEqual(events[0].margin, 0.0)
        self.assertEqual(events[0].drama_meter, 1.0)
        self.assertEqual(events[0].last_words, TIEBREAK_LAST_WORDS)

    def test_closer_margins_are_more_dramatic(self):
        close = build_elimination_history({1: _teams([70.0, 71.0, 90.0])}, current_week=2)[0]
        blowout = build_elimination_history({1: _teams([40.0, 91.0, 90.0])}, current_week=2)[0]
        self.assertGreater(close.drama_meter, blowout.drama_meter)
        self.assertLess(close.drama_meter, 1.0)

    def test_ledger_never_recomputes_final_weeks(self):
        ledger = EliminationLedger()
        ledger.record("sleeper_L1", {1: _teams([70.0, 90.0, 80.0])}, current_week=2)

        rewritten = {1: _teams([95.0, 60.0, 80.0]), 2: _teams([0.0, 50.0, 80.0])}
        events = ledger.record("sleeper_L1", rewritten, current_week=3)

        self.assertEqual(events[0].eliminated_team.team.team_id, "T0")
        self.assertEqual(events[1].week, 2)
        self.assertEqual(events[1].eliminated_team.team.team_id, "T1")
        self.assertEqual(ledger.recorded_weeks("sleeper_L1"), [1, 2])
        self.assertEqual(ledger.eliminated_team_ids("sleeper_L1"), {"T0", "T1"})


class WeekSummaryTest(TestCase):
    def test_summary_statistics(self):
        summary = build_week_summary("sleeper_L1", _teams([100.0, 80.0, 60.0]), week=4, week_complete=True)
        self.assertEqual(summary.highest_score, 100.0)
        self.assertEqual(summary.lowest_score, 60.0)
        self.assertEqual(summary.average_score, 80.0)
        self.assertEqual(summary.cutoff_score, 60.0)
        self.assertEqual(summary.eliminated_team.team.team_id, "T2")
        self.assertEqual(summary.total_survivors, 2)
        self.assertTrue(summary.is_complete)

    def test_live_summary_has_no_elimination(self):
        summary = build_week_summary("sleeper_L1", _teams([100.0, 80.0, 60.0]), week=4)
        self.assertIsNone(summary.eliminated_team)
        self.assertEqual(summary.total_survivors, 3)
