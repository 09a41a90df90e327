import unittest
from datetime import date, datetime, timedelta, timezone

from mindfulspace.backend.app import streak_engine
from mindfulspace.backend.app.streak_engine import ActivityRecord


def records_on(days, category="mood", hour=12):
    return [
        ActivityRecord(user_id=1, category=category, occurred_at=datetime(d.year, d.month, d.day, hour))
        for d in days
    ]


class ComputeStreakTests(unittest.TestCase):
    def test_empty_input_is_zero(self):
        self.assertEqual(streak_engine.compute_streak([], date(2024, 1, 5)), 0)
        result = streak_engine.compute_streak_result("mood", [], date(2024, 1, 5))
        self.assertIsNone(result.milestone)
        self.assertEqual(result.next_milestone.threshold_days, 3)

    def test_gap_stops_count_at_first_missing_day(self):
        days = [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 5)]
        self.assertEqual(streak_engine.compute_streak(records_on(days), date(2024, 1, 5)), 1)

    def test_yesterday_grace_window(self):
        days = [date(2024, 1, 3), date(2024, 1, 4)]
        self.assertEqual(streak_engine.compute_streak(records_on(days), date(2024, 1, 5)), 2)

    def test_no_activity_in_last_two_days_is_zero(self):
        days = [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
        self.assertEqual(streak_engine.compute_streak(records_on(days), date(2024, 1, 5)), 0)

    def test_consecutive_run_counts_exactly(self):
        today = date(2024, 3, 10)
        for k in range(1, 12):
            days = [today - timedelta(days=i) for i in range(k)]
            # Day before the run is deliberately missing; an older day is present.
            days.append(today - timedelta(days=k + 1))
            self.assertEqual(streak_engine.compute_streak(records_on(days), today), k)
            self.assertEqual(streak_engine.compute_streak(records_on(days), today + timedelta(days=1)), k)

    def test_duplicate_same_day_records_collapse(self):
        days = [date(2024, 1, 4), date(2024, 1, 5)]
        records = records_on(days, hour=8) + records_on(days, hour=20) + records_on(days, hour=23)
        self.assertEqual(streak_engine.compute_streak(records, date(2024, 1, 5)), 2)

    def test_aware_timestamps_use_utc_calendar_day(self):
        plus_five = timezone(timedelta(hours=5))
        record = ActivityRecord(user_id=1, category="journal", occurred_at=datetime(2024, 1, 5, 1, 0, tzinfo=plus_five))
        self.assertEqual(streak_engine.to_utc_date(record.occurred_at), date(2024, 1, 4))
        self.assertEqual(streak_engine.compute_streak([record], datetime(2024, 1, 6, 9, tzinfo=timezone.utc)), 0)
        self.assertEqual(streak_engine.compute_streak([record], date(2024, 1, 5)), 1)


class MilestoneTests(unittest.TestCase):
    def test_threshold_is_achieved_not_next(self):
        self.assertEqual(streak_engine.milestone_for(7).title, "One Week Strong")
        self.assertEqual(streak_engine.next_milestone_for(7).threshold_days, 14)

    def test_below_first_threshold(self):
        self.assertIsNone(streak_engine.milestone_for(2))
        self.assertEqual(streak_engine.next_milestone_for(0).threshold_days, 3)

    def test_beyond_last_threshold(self):
        self.assertEqual(streak_engine.milestone_for(150).threshold_days, 100)
        self.assertIsNone(streak_engine.next_milestone_for(100))

    def test_table_strictly_increasing(self):
        thresholds = [m.threshold_days for m in streak_engine.STREAK_MILESTONES]
        self.assertEqual(thresholds, sorted(set(thresholds)))


class AllStreaksTests(unittest.TestCase):
    def test_overall_uses_union_of_categories(self):
        records = (
            records_on([date(2024, 1, 5)], "mood")
            + records_on([date(2024, 1, 4)], "journal")
            + records_on([date(2024, 1, 3)], "chat")
        )
        results = streak_engine.compute_all_streaks(records, date(2024, 1, 5))
        self.assertEqual(results["mood"].current_streak_days, 1)
        self.assertEqual(results["journal"].current_streak_days, 1)
        self.assertEqual(results["chat"].current_streak_days, 0)
        self.assertEqual(results["overall"].current_streak_days, 3)
        self.assertEqual(results["overall"].milestone.threshold_days, 3)

    def test_summary_payload(self):
        records = records_on([date(2024, 1, 4), date(2024, 1, 5)], "mood") + records_on([date(2024, 1, 5)], "chat")
        summary = streak_engine.build_streak_summary(records, date(2024, 1, 5))
        self.assertEqual(summary["streaks"]["mood"]["current"], 2)
        self.assertEqual(summary["streaks"]["mood"]["best"], 2)
        self.assertEqual(summary["streaks"]["journal"]["current"], 0)
        self.assertEqual(summary["stats"]["total_active_days"], 2)
        self.assertEqual(summary["stats"]["mood_entries_count"], 2)
        self.assertEqual(summary["stats"]["chat_messages_count"], 1)
        self.assertEqual(summary["stats"]["longest_streak"], 2)
        self.assertEqual(len(summary["milestones"]), 6)


if __name__ == "__main__":
    unittest.main()
