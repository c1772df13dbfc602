"""
APScheduler configuration for automatic backups.

Registers two cron jobs against a BackupManager:
- Daily backup (default 02:00)
- Weekly backup (default Sunday 03:00)

A failing scheduled backup is logged and skipped; it never reaches the
scheduler and never stops later runs.
"""

import logging
from typing import Dict, List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger


logger = logging.getLogger(__name__)

DAILY_JOB_ID = 'backup_daily'
WEEKLY_JOB_ID = 'backup_weekly'


def run_scheduled_backup(manager, backup_type: str, description: str):
    """
    Create a backup from a scheduler trigger.

    Args:
        manager: BackupManager to run the backup with
        backup_type: 'daily' or 'weekly'
        description: Description stored on the record

    Returns:
        The new BackupRecord, or None if the run failed
    """
    try:
        logger.info(f"Scheduler starting {backup_type} backup")
        record = manager.create_backup(backup_type=backup_type, description=description)
        logger.info(f"Scheduled {backup_type} backup completed: {record.name}")
        return record
    except Exception as e:
        logger.error(f"Scheduled {backup_type} backup failed: {e}")
        return None


class AutomaticBackup:
    """
    Daily and weekly backups driven by a BackgroundScheduler.

    Jobs are registered on construction; nothing runs until start().
    """

    def __init__(self, manager, timezone_name: str = 'UTC',
                 daily_cron: str = '0 2 * * *', weekly_cron: str = '0 3 * * sun'):
        """
        Initialize and configure the scheduler.

        Args:
            manager: BackupManager shared with manual callers
            timezone_name: Timezone the cron expressions are evaluated in
            daily_cron: Crontab expression for the daily backup
            weekly_cron: Crontab expression for the weekly backup

        Raises:
            ValueError: If a cron expression is invalid
        """
        self.manager = manager

        jobstores = {
            'default': MemoryJobStore()
        }

        executors = {
            'default': ThreadPoolExecutor(max_workers=2)
        }

        job_defaults = {
            'coalesce': True,  # Combine multiple pending instances into one
            'max_instances': 1,  # Only one instance of a job at a time
            'misfire_grace_time': 300  # 5 minutes grace period for misfires
        }

        self.scheduler = BackgroundScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone=timezone_name
        )

        self.scheduler.add_job(
            func=run_scheduled_backup,
            args=[manager, 'daily', 'Automatic daily backup'],
            trigger=CronTrigger.from_crontab(daily_cron, timezone=timezone_name),
            id=DAILY_JOB_ID,
            name='Daily Backup',
            replace_existing=True
        )

        self.scheduler.add_job(
            func=run_scheduled_backup,
            args=[manager, 'weekly', 'Automatic weekly backup'],
            trigger=CronTrigger.from_crontab(weekly_cron, timezone=timezone_name),
            id=WEEKLY_JOB_ID,
            name='Weekly Backup',
            replace_existing=True
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start firing the registered triggers."""
        if self.scheduler.running:
            logger.info(f"Automatic backup already running (state={self.scheduler.state})")
            return

        self.scheduler.start()
        logger.info("Automatic backup started")

        for job in self.get_jobs():
            logger.info(f"  - {job['id']}: {job['name']} (next run: {job['next_run'] or 'N/A'})")

    def stop(self, wait: bool = True):
        """
        Stop the scheduler.

        Args:
            wait: Wait for a backup that is currently running to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Automatic backup stopped")

    def get_jobs(self) -> List[Dict[str, Optional[str]]]:
        """
        Get list of registered backup jobs.

        Returns:
            List of dicts with job information
        """
        jobs = []

        for job in self.scheduler.get_jobs():
            next_run = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger)
            })

        return jobs
