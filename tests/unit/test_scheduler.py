"""
Unit tests for scheduler (dbkeeper/scheduler.py).

Tests APScheduler configuration and the failure isolation of scheduled backups.
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from dbkeeper.backup.errors import ConcurrencyConflictError
from dbkeeper.scheduler import AutomaticBackup, run_scheduled_backup


class TestSchedulerInitialization:
    """Test scheduler configuration."""

    @patch('dbkeeper.scheduler.BackgroundScheduler')
    def test_scheduler_configured(self, mock_scheduler_class):
        """Test scheduler options."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        auto_backup = AutomaticBackup(MagicMock())

        assert auto_backup.scheduler == mock_scheduler
        mock_scheduler_class.assert_called_once()
        call_kwargs = mock_scheduler_class.call_args[1]
        assert 'jobstores' in call_kwargs
        assert 'executors' in call_kwargs
        assert call_kwargs['job_defaults'] == {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 300
        }
        assert call_kwargs['timezone'] == 'UTC'

    def test_registers_daily_and_weekly_jobs(self, mock_scheduler):
        manager = MagicMock()

        AutomaticBackup(manager)

        assert mock_scheduler.add_job.call_count == 2
        calls = {c[1]['id']: c[1] for c in mock_scheduler.add_job.call_args_list}
        assert set(calls) == {'backup_daily', 'backup_weekly'}
        assert calls['backup_daily']['func'] is run_scheduled_backup
        assert calls['backup_daily']['args'] == [manager, 'daily', 'Automatic daily backup']
        assert calls['backup_weekly']['args'] == [manager, 'weekly', 'Automatic weekly backup']
        assert isinstance(calls['backup_daily']['trigger'], CronTrigger)
        assert calls['backup_daily']['replace_existing'] is True

    def test_trigger_fields(self, mock_scheduler):
        """Test default cron expressions."""
        AutomaticBackup(MagicMock())

        calls = {c[1]['id']: c[1] for c in mock_scheduler.add_job.call_args_list}
        daily = {f.name: str(f) for f in calls['backup_daily']['trigger'].fields}
        weekly = {f.name: str(f) for f in calls['backup_weekly']['trigger'].fields}
        assert (daily['hour'], daily['minute']) == ('2', '0')
        assert (weekly['hour'], weekly['minute'], weekly['day_of_week']) == ('3', '0', 'sun')

    def test_custom_cron(self, mock_scheduler):
        AutomaticBackup(MagicMock(), daily_cron='30 1 * * *', weekly_cron='0 4 * * sat')

        calls = {c[1]['id']: c[1] for c in mock_scheduler.add_job.call_args_list}
        daily = {f.name: str(f) for f in calls['backup_daily']['trigger'].fields}
        assert (daily['hour'], daily['minute']) == ('1', '30')

    def test_invalid_cron(self, mock_scheduler):
        with pytest.raises(ValueError):
            AutomaticBackup(MagicMock(), daily_cron='not a cron')


class TestSchedulerLifecycle:
    """Test start/stop operations."""

    def test_start(self, mock_scheduler):
        auto_backup = AutomaticBackup(MagicMock())

        auto_backup.start()

        mock_scheduler.start.assert_called_once()

    def test_start_already_running(self, mock_scheduler):
        mock_scheduler.running = True
        auto_backup = AutomaticBackup(MagicMock())

        auto_backup.start()

        mock_scheduler.start.assert_not_called()

    def test_stop(self, mock_scheduler):
        mock_scheduler.running = True
        auto_backup = AutomaticBackup(MagicMock())

        auto_backup.stop()

        mock_scheduler.shutdown.assert_called_once_with(wait=True)

    def test_stop_not_running(self, mock_scheduler):
        auto_backup = AutomaticBackup(MagicMock())

        auto_backup.stop()

        mock_scheduler.shutdown.assert_not_called()

    def test_running_property(self, mock_scheduler):
        auto_backup = AutomaticBackup(MagicMock())
        assert auto_backup.running is False

        mock_scheduler.running = True
        assert auto_backup.running is True

    def test_get_jobs(self, mock_scheduler):
        job = MagicMock()
        job.id = 'backup_daily'
        job.name = 'Daily Backup'
        job.next_run_time = None
        job.trigger = 'cron[hour=2]'
        mock_scheduler.get_jobs.return_value = [job]
        auto_backup = AutomaticBackup(MagicMock())

        jobs = auto_backup.get_jobs()

        assert jobs == [{
            'id': 'backup_daily',
            'name': 'Daily Backup',
            'next_run': None,
            'trigger': 'cron[hour=2]'
        }]


class TestRealScheduler:
    """Test against a real BackgroundScheduler."""

    def test_start_and_stop(self, manager):
        auto_backup = manager.setup_automatic_backup()

        auto_backup.start()
        try:
            assert auto_backup.running is True
            jobs = {job['id']: job for job in auto_backup.get_jobs()}
            assert set(jobs) == {'backup_daily', 'backup_weekly'}
            assert jobs['backup_daily']['next_run'] is not None
        finally:
            auto_backup.stop()

        assert auto_backup.running is False


class TestRunScheduledBackup:
    """Test the job function fired by triggers."""

    def test_success(self, manager):
        record = run_scheduled_backup(manager, 'daily', 'Automatic daily backup')

        assert record.type == 'daily'
        assert record.description == 'Automatic daily backup'
        assert [r.name for r in manager.get_backup_list()] == [record.name]

    def test_failure_is_swallowed(self, caplog):
        """Test a failed run is logged and does not propagate."""
        manager = MagicMock()
        manager.create_backup.side_effect = ConcurrencyConflictError('busy')

        result = run_scheduled_backup(manager, 'weekly', 'Automatic weekly backup')

        assert result is None
        assert 'Scheduled weekly backup failed: busy' in caplog.text

    def test_unexpected_error_is_swallowed(self):
        manager = MagicMock()
        manager.create_backup.side_effect = RuntimeError('disk gone')

        assert run_scheduled_backup(manager, 'daily', 'x') is None

    def test_shares_single_flight_guard(self, manager):
        """Test a scheduled run is rejected while a manual backup holds the guard."""
        manager._lock.acquire()
        try:
            result = run_scheduled_backup(manager, 'daily', 'Automatic daily backup')
        finally:
            manager._lock.release()

        assert result is None
        assert manager.get_backup_list() == []
