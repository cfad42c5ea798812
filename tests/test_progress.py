import threading
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from audiobook_chapterizer.progress import (
    ETA_CALC_WINDOW,
    ProgressEstimator,
    SampleCounter,
)

SAMPLE_RATE = 16000


class TestProgressEstimator(unittest.TestCase):

    def setUp(self):
        self.t0 = datetime(2024, 1, 1, 12, 0, 0)

    def test_realtime_speed(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 3600.0, start_time=self.t0)

        report = None
        for i in range(1, ETA_CALC_WINDOW + 1):
            report = estimator.tick(self.t0 + timedelta(seconds=5 * i), 5 * SAMPLE_RATE * i)

        self.assertAlmostEqual(report.speed_factor, 1.0)
        self.assertAlmostEqual(report.avg_speed_factor, 1.0)
        self.assertAlmostEqual(report.processed, 300.0)
        self.assertAlmostEqual(report.percent, 8.3333, places=3)
        self.assertAlmostEqual(report.remaining, 3300.0)
        self.assertEqual(report.eta, self.t0 + timedelta(seconds=300 + 3300))

    def test_percent_is_clamped(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 10.0, start_time=self.t0)
        report = estimator.tick(self.t0 + timedelta(seconds=5), 20 * SAMPLE_RATE)

        self.assertEqual(report.percent, 100.0)
        self.assertEqual(report.remaining, 0.0)

    def test_unknown_total(self):
        estimator = ProgressEstimator(SAMPLE_RATE, None, start_time=self.t0)
        report = estimator.tick(self.t0 + timedelta(seconds=5), 5 * SAMPLE_RATE)

        self.assertIsNone(report.percent)
        self.assertIsNone(report.eta)
        self.assertIn("??%", report.describe())
        self.assertIn("ETA: ??", report.describe())

    def test_zero_time_delta(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 100.0, start_time=self.t0)
        report = estimator.tick(self.t0, SAMPLE_RATE)

        self.assertEqual(report.speed_factor, 0.0)
        self.assertIsNone(report.remaining)

    def test_window_is_bounded(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 3600.0, start_time=self.t0)
        for i in range(1, 200):
            estimator.tick(self.t0 + timedelta(seconds=5 * i), 5 * SAMPLE_RATE * i)
        self.assertEqual(len(estimator.speed_factors), ETA_CALC_WINDOW)

    def test_average_forgets_slow_start(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 36000.0, window=4, start_time=self.t0)
        now = self.t0
        samples = 0
        # 4 slow ticks at 1x, then 4 fast ticks at 3x
        for speed in [1, 1, 1, 1, 3, 3, 3, 3]:
            now += timedelta(seconds=5)
            samples += 5 * speed * SAMPLE_RATE
            report = estimator.tick(now, samples)

        self.assertAlmostEqual(report.avg_speed_factor, 3.0)

    def test_describe(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 200.0, start_time=self.t0)
        report = estimator.tick(self.t0 + timedelta(seconds=10), 20 * SAMPLE_RATE)
        text = report.describe()

        self.assertIn("Progress: 10.00%", text)
        self.assertIn("Speed: 2.00x", text)
        self.assertIn("Time left: 00:01:30.00", text)

    def test_invalid_window(self):
        with self.assertRaises(ValueError):
            ProgressEstimator(SAMPLE_RATE, 100.0, window=0)

    def test_run_stops_when_event_set(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 100.0, start_time=self.t0)
        stop = threading.Event()
        stop.set()

        with patch.object(estimator, "tick") as mock_tick:
            estimator.run(SampleCounter(), stop, interval=0.01)

        mock_tick.assert_not_called()

    def test_run_reports_until_stopped(self):
        estimator = ProgressEstimator(SAMPLE_RATE, 100.0)
        stop = threading.Event()
        counter = SampleCounter()
        calls = []

        def fake_tick(now, samples):
            calls.append(samples)
            if len(calls) == 2:
                stop.set()
            return ProgressEstimator.tick(estimator, now, samples)

        with patch.object(estimator, "tick", side_effect=fake_tick):
            counter.add(SAMPLE_RATE)
            estimator.run(counter, stop, interval=0.001)

        self.assertEqual(calls, [SAMPLE_RATE, SAMPLE_RATE])


class TestSampleCounter(unittest.TestCase):

    def test_add(self):
        counter = SampleCounter()
        counter.add(8192)
        counter.add(100)
        self.assertEqual(counter.value, 8292)


if __name__ == "__main__":
    unittest.main()
