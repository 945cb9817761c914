"""Unit tests for the scheduler module."""

import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from rentcycle.config import Settings
from rentcycle.scheduler.scheduler import SCHEDULER_TIMEZONE, build_scheduler, business_date, daily_job


class TestScheduler(unittest.TestCase):
    """Test cases for the scheduler module."""

    @patch("rentcycle.scheduler.scheduler.datetime")
    def test_business_date_uses_trigger_timezone(self, mock_datetime):
        """02:00 UTC is still the previous evening west of UTC; the UTC date wins."""
        mock_datetime.now.return_value = datetime(2025, 5, 1, 2, 0, tzinfo=timezone.utc)

        self.assertEqual(business_date(), date(2025, 5, 1))
        mock_datetime.now.assert_called_once_with(SCHEDULER_TIMEZONE)

    @patch("rentcycle.scheduler.scheduler.business_date", return_value=date(2025, 5, 1))
    def test_daily_job_runs_cycle_for_business_date(self, _mock_business_date):
        engine = MagicMock()
        engine.run_daily_cycle.return_value.all_failed = False

        summary = daily_job(engine)

        engine.run_daily_cycle.assert_called_once_with(date(2025, 5, 1))
        self.assertIs(summary, engine.run_daily_cycle.return_value)

    def test_daily_job_survives_crash(self):
        engine = MagicMock()
        engine.run_daily_cycle.side_effect = RuntimeError("boom")
        self.assertIsNone(daily_job(engine))

    def test_build_scheduler_registers_cron_job(self):
        engine = MagicMock()
        scheduler = build_scheduler(engine, Settings(cycle_hour=5, cycle_minute=30))

        job = scheduler.get_job("daily_rent_cycle")

        self.assertIsNotNone(job)
        self.assertIs(job.func, daily_job)
        self.assertEqual(job.args, (engine,))
        self.assertEqual(job.trigger.timezone.utcoffset(None), timedelta(0))
        fields = {f.name: str(f) for f in job.trigger.fields}
        self.assertEqual(fields["hour"], "5")
        self.assertEqual(fields["minute"], "30")


if __name__ == '__main__':
    unittest.main()
