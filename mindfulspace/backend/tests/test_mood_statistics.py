import unittest
from datetime import datetime, timedelta

from mindfulspace.backend.app import mood_statistics
from mindfulspace.backend.app.mood_statistics import MoodSample


class PearsonTests(unittest.TestCase):
    def test_perfect_linear_relation(self):
        value = mood_statistics.pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8])
        self.assertAlmostEqual(value, 1.0, places=6)

    def test_inverse_relation(self):
        value = mood_statistics.pearson_correlation([1, 2, 3], [9, 6, 3])
        self.assertAlmostEqual(value, -1.0, places=6)

    def test_fewer_than_three_pairs_not_computable(self):
        self.assertIsNone(mood_statistics.pearson_correlation([1, 2], [2, 4]))

    def test_zero_variance_not_computable(self):
        self.assertIsNone(mood_statistics.pearson_correlation([5, 5, 5], [1, 2, 3]))

    def test_length_mismatch_not_computable(self):
        self.assertIsNone(mood_statistics.pearson_correlation([1, 2, 3], [1, 2]))


class VariabilityTests(unittest.TestCase):
    def test_population_std(self):
        self.assertEqual(mood_statistics.compute_variability([2, 4, 4, 4, 5, 5, 7, 9]), 2.0)

    def test_single_score(self):
        self.assertEqual(mood_statistics.compute_variability([6]), 0.0)


class GroupingTests(unittest.TestCase):
    def test_ten_daily_entries_give_ten_buckets(self):
        start = datetime(2024, 2, 1, 9)
        samples = [MoodSample(mood_score=5 + (i % 3), recorded_at=start + timedelta(days=i)) for i in range(10)]
        samples.reverse()
        trends = mood_statistics.group_mood_data(samples, "day")
        self.assertEqual(len(trends), 10)
        self.assertTrue(all(point.entry_count == 1 for point in trends))
        keys = [point.period_key for point in trends]
        self.assertEqual(keys, sorted(keys))
        self.assertEqual(keys[0], "2024-02-01")

    def test_week_buckets_start_on_sunday(self):
        samples = [
            MoodSample(mood_score=4, recorded_at=datetime(2024, 1, 7, 10)),   # Sunday
            MoodSample(mood_score=8, recorded_at=datetime(2024, 1, 13, 10)),  # Saturday
            MoodSample(mood_score=6, recorded_at=datetime(2024, 1, 14, 10)),  # next Sunday
        ]
        trends = mood_statistics.group_mood_data(samples, "week")
        self.assertEqual([p.period_key for p in trends], ["2024-01-07", "2024-01-14"])
        self.assertEqual(trends[0].average_mood, 6.0)
        self.assertEqual(trends[0].highest_mood, 8)
        self.assertEqual(trends[0].lowest_mood, 4)

    def test_month_buckets(self):
        samples = [
            MoodSample(mood_score=3, recorded_at=datetime(2024, 1, 31, 23)),
            MoodSample(mood_score=7, recorded_at=datetime(2024, 2, 1, 0)),
        ]
        trends = mood_statistics.group_mood_data(samples, "month")
        self.assertEqual([p.period_key for p in trends], ["2024-01", "2024-02"])

    def test_zero_score_kept_and_missing_score_skipped(self):
        samples = [
            MoodSample(mood_score=0, recorded_at=datetime(2024, 3, 1, 8)),
            MoodSample(mood_score=4, recorded_at=datetime(2024, 3, 1, 20)),
            MoodSample(mood_score=None, recorded_at=datetime(2024, 3, 2, 8)),
        ]
        trends = mood_statistics.group_mood_data(samples, "day")
        self.assertEqual([p.period_key for p in trends], ["2024-03-01"])
        self.assertEqual(trends[0].entry_count, 2)
        self.assertEqual(trends[0].average_mood, 2.0)
        self.assertEqual(trends[0].lowest_mood, 0)

    def test_unknown_granularity(self):
        with self.assertRaises(ValueError):
            mood_statistics.group_mood_data([], "year")


class SummarizeTests(unittest.TestCase):
    def test_snapshot(self):
        base = datetime(2024, 5, 1, 8)
        samples = [
            MoodSample(4, base, ["sad", "anxious"], ["work"], sleep_hours=5, energy_level=3, stress_level=8),
            MoodSample(6, base + timedelta(days=1), ["calm"], ["walk", "work"], sleep_hours=7, energy_level=5),
            MoodSample(8, base + timedelta(days=2), ["happy", "calm"], ["walk"], sleep_hours=9, energy_level=7, stress_level=2),
        ]
        snapshot = mood_statistics.summarize(samples, "7d")
        self.assertEqual(snapshot.total_entries, 3)
        self.assertEqual(snapshot.average_mood, 6.0)
        self.assertEqual(snapshot.highest_mood, 8)
        self.assertEqual(snapshot.lowest_mood, 4)
        self.assertEqual(snapshot.mood_variability, 1.63)
        self.assertEqual(snapshot.emotions[0], {"emotion": "calm", "count": 2})
        self.assertEqual(len(snapshot.activities), 2)
        self.assertAlmostEqual(snapshot.correlations["mood_vs_sleep"], 1.0)
        self.assertAlmostEqual(snapshot.correlations["mood_vs_energy"], 1.0)
        # Only two samples carry a stress level.
        self.assertIsNone(snapshot.correlations["mood_vs_stress"])

    def test_empty_snapshot(self):
        snapshot = mood_statistics.summarize([], "30d")
        self.assertEqual(snapshot.average_mood, 0.0)
        self.assertEqual(snapshot.trends, [])
        self.assertEqual(snapshot.correlations, {"mood_vs_sleep": None, "mood_vs_energy": None, "mood_vs_stress": None})

    def test_period_start(self):
        now = datetime(2024, 2, 29, 12)
        self.assertEqual(mood_statistics.period_start("7d", now), datetime(2024, 2, 22, 12))
        self.assertEqual(mood_statistics.period_start("1y", now), datetime(2023, 2, 28, 12))
        with self.assertRaises(ValueError):
            mood_statistics.period_start("2w", now)


if __name__ == "__main__":
    unittest.main()
