"""
Shared pytest fixtures for dbkeeper tests.

This module provides fixtures for:
- A real SQLite database file to back up
- A backup directory and BackupManager wired to it
- Helpers for writing backup records directly
- Mock fixtures for the scheduler
"""

import gzip
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool

from dbkeeper.backup import BackupManager, BackupRecord, MetadataStore
from dbkeeper.backup.integrity import calculate_file_hash


def build_database(path, rows=200):
    """Create a SQLite database with a compressible clients table."""
    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE clients (id INTEGER PRIMARY KEY, name TEXT, notes TEXT)"
        ))
        conn.execute(
            text("INSERT INTO clients (name, notes) VALUES (:name, :notes)"),
            [
                {'name': f'Client {i}', 'notes': 'Follow up next week about the renewal. ' * 3}
                for i in range(rows)
            ]
        )
    engine.dispose()
    return path


@pytest.fixture
def sample_db(tmp_path):
    """
    Create the primary database file.

    Located at <tmp>/data/crm_demo.db with 200 rows.
    """
    data_dir = tmp_path / 'data'
    data_dir.mkdir()
    return str(build_database(str(data_dir / 'crm_demo.db')))


@pytest.fixture
def backup_dir(tmp_path):
    """Empty backup directory."""
    path = tmp_path / 'backups'
    path.mkdir()
    return str(path)


@pytest.fixture
def manager(sample_db, backup_dir):
    """BackupManager for the sample database with a ceiling of 5."""
    return BackupManager(
        db_path=sample_db,
        backup_dir=backup_dir,
        max_backups=5,
        compression_level=6
    )


@pytest.fixture
def make_record(backup_dir):
    """
    Factory that writes an artifact and returns a matching BackupRecord.

    Records are not persisted; pass them to MetadataStore.save().
    """
    base_time = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(index, backup_type='manual', compressed=False, content=None, age_days=None):
        created = base_time + timedelta(days=index if age_days is None else -age_days)
        name = f'crm_backup_{backup_type}_{index:03d}'
        suffix = '.db.gz' if compressed else '.db'
        path = os.path.join(backup_dir, name + suffix)

        payload = content if content is not None else b'SQLite format 3\x00' + bytes(1024)
        if compressed:
            with gzip.open(path, 'wb') as f:
                f.write(payload)
        else:
            with open(path, 'wb') as f:
                f.write(payload)

        return BackupRecord(
            name=name,
            type=backup_type,
            path=path,
            size=os.path.getsize(path),
            compressed=compressed,
            hash=calculate_file_hash(path),
            created_at=created.isoformat(),
            description=f'Test backup {index}',
            verified=True
        )

    return _make


@pytest.fixture
def store(backup_dir):
    """MetadataStore in the backup directory."""
    return MetadataStore(backup_dir)


@pytest.fixture
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('dbkeeper.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        # Mock scheduler methods
        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
