#!/usr/bin/env python3
"""Automatic backup runner"""
import signal
import threading

from dbkeeper import create_manager

if __name__ == '__main__':
    manager = create_manager()
    settings = manager.settings

    auto_backup = manager.setup_automatic_backup(
        timezone_name=settings['SCHEDULER_TIMEZONE'],
        daily_cron=settings['DAILY_BACKUP_CRON'],
        weekly_cron=settings['WEEKLY_BACKUP_CRON'],
    )

    stop_event = threading.Event()
    signal.signal(signal.SIGINT, lambda signum, frame: stop_event.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_event.set())

    auto_backup.start()
    print('Automatic backup running. Press Ctrl+C to stop.')

    stop_event.wait()
    auto_backup.stop()
