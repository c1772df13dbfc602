"""
Backup manager - orchestrates backup, restore, retention and health checks.

Backup workflow:
1. Acquire the single-flight guard (fail fast if already held)
2. Copy the primary database into the backup directory
3. Compress the copy (optional)
4. Verify the artifact holds a valid database image (optional)
5. Hash the artifact and append a BackupRecord
6. Enforce the retention ceiling
7. Release the guard
"""

import logging
import os
import shutil
import tempfile
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dbkeeper.utils.formatting import format_file_size
from .compression import (
    artifact_filename,
    compress_file,
    decompress_file,
    generate_backup_name,
    get_artifact_size,
)
from .errors import (
    BackupError,
    BackupNotFoundError,
    CompressionError,
    ConcurrencyConflictError,
    IntegrityError,
    SourceMissingError,
)
from .integrity import (
    calculate_file_hash,
    check_database,
    is_valid_store_image,
    remove_quietly,
    verify_artifact,
)
from .metadata import DEFAULT_METADATA_FILENAME, BackupRecord, MetadataStore, sort_newest_first
from .retention import RetentionManager


logger = logging.getLogger(__name__)

HEALTHY = 'healthy'
CORRUPTED = 'corrupted'
MISSING = 'missing'


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    backup_name: str
    restored_to: str
    timestamp: str
    pre_restore_backup: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BackupStats:
    """Aggregate view over the current backups."""

    total: int = 0
    total_size: int = 0
    average_size: float = 0
    types: Dict[str, int] = field(default_factory=dict)
    oldest: Optional[BackupRecord] = None
    newest: Optional[BackupRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'total_size': self.total_size,
            'average_size': self.average_size,
            'types': dict(self.types),
            'oldest': self.oldest.to_dict() if self.oldest else None,
            'newest': self.newest.to_dict() if self.newest else None,
        }


@dataclass
class HealthReport:
    """Per-backup health classification plus totals."""

    total: int = 0
    healthy: int = 0
    corrupted: int = 0
    missing: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BackupManager:
    """
    Manages backups of a single SQLite database file.

    Only one backup may be created at a time. A second request made while
    a backup is running fails immediately with ConcurrencyConflictError; it
    is never queued. Scheduled and manual backups share the same guard.
    """

    def __init__(
        self,
        db_path: str,
        backup_dir: str,
        max_backups: int = 30,
        compression_level: int = 6,
        prefix: str = 'crm_backup',
        metadata_filename: str = DEFAULT_METADATA_FILENAME
    ):
        """
        Initialize backup manager.

        Args:
            db_path: Path to the primary database file
            backup_dir: Directory where artifacts and metadata are kept
            max_backups: Retention ceiling
            compression_level: gzip level used for compressed backups (1-9)
            prefix: Prefix for backup names
            metadata_filename: Name of the metadata file inside backup_dir

        Raises:
            ValueError: If max_backups or compression_level is out of range
        """
        if max_backups < 1:
            raise ValueError(f"max_backups must be at least 1, got {max_backups}")
        if not 1 <= compression_level <= 9:
            raise ValueError(f"Invalid compression level: {compression_level}. Valid range: 1-9")

        self.db_path = os.path.abspath(db_path)
        self.backup_dir = os.path.abspath(backup_dir)
        self.max_backups = max_backups
        self.compression_level = compression_level
        self.prefix = prefix

        self.store = MetadataStore(self.backup_dir, metadata_filename)
        self.retention = RetentionManager(self.store, max_backups)
        self._lock = threading.Lock()

        os.makedirs(self.backup_dir, exist_ok=True)

    @classmethod
    def from_config(cls, config) -> 'BackupManager':
        """Build a manager from a config object or mapping."""
        get = config.get if isinstance(config, dict) else lambda key: getattr(config, key)
        return cls(
            db_path=get('DATABASE_PATH'),
            backup_dir=get('BACKUP_DIR'),
            max_backups=int(get('MAX_BACKUPS')),
            compression_level=int(get('COMPRESSION_LEVEL')),
            prefix=get('BACKUP_PREFIX'),
            metadata_filename=get('METADATA_FILENAME'),
        )

    @property
    def is_running(self) -> bool:
        """True while a backup is being created."""
        return self._lock.locked()

    def create_backup(
        self,
        backup_type: str = 'manual',
        compress: bool = True,
        verify: bool = True,
        description: Optional[str] = None
    ) -> BackupRecord:
        """
        Create a backup of the primary database.

        Args:
            backup_type: Category tag ('manual', 'daily', 'weekly', 'pre-restore', ...)
            compress: Store the artifact gzip compressed
            verify: Check the artifact's database header before recording it
            description: Free text (default: generated from the type)

        Returns:
            The persisted BackupRecord

        Raises:
            ConcurrencyConflictError: If another backup is in flight
            SourceMissingError: If the primary database does not exist
            CompressionError: If compression fails
            IntegrityError: If verification fails
            BackupError: If copying or persisting fails
        """
        if not self._lock.acquire(blocking=False):
            raise ConcurrencyConflictError("A backup is already in progress")

        try:
            return self._create_backup(backup_type, compress, verify, description)
        except BackupError as e:
            logger.error(f"Backup {backup_type} failed: {e}")
            raise
        finally:
            self._lock.release()

    def _create_backup(self, backup_type: str, compress: bool, verify: bool,
                       description: Optional[str]) -> BackupRecord:
        if not os.path.isfile(self.db_path):
            raise SourceMissingError(f"Database not found: {self.db_path}")

        os.makedirs(self.backup_dir, exist_ok=True)

        name = self._unique_backup_name(backup_type)
        raw_path = os.path.join(self.backup_dir, artifact_filename(name, compressed=False))
        logger.info(f"Starting {backup_type} backup: {name}")

        try:
            shutil.copyfile(self.db_path, raw_path)
        except OSError as e:
            remove_quietly(raw_path)
            raise BackupError(f"Failed to copy database: {e}")

        final_path = raw_path
        if compress:
            final_path = os.path.join(self.backup_dir, artifact_filename(name, compressed=True))
            try:
                compress_file(raw_path, final_path, self.compression_level)
            except CompressionError:
                remove_quietly(final_path)
                raise
            finally:
                remove_quietly(raw_path)

        if verify and not verify_artifact(final_path, compress, scratch_dir=self.backup_dir):
            remove_quietly(final_path)
            raise IntegrityError(f"Backup integrity verification failed: {name}")

        try:
            record = BackupRecord(
                name=name,
                type=backup_type,
                path=final_path,
                size=get_artifact_size(final_path),
                compressed=compress,
                hash=calculate_file_hash(final_path),
                created_at=datetime.now(timezone.utc).isoformat(),
                description=description or f"Backup {backup_type} created automatically",
                verified=verify,
            )
            self.store.append(record)
        except (OSError, CompressionError) as e:
            remove_quietly(final_path)
            raise BackupError(f"Failed to record backup {name}: {e}")
        except Exception:
            remove_quietly(final_path)
            raise

        logger.info(f"Backup created: {os.path.basename(final_path)} ({format_file_size(record.size)})")

        self.cleanup_old_backups()

        return record

    def _unique_backup_name(self, backup_type: str) -> str:
        """Derive a backup name, adding a numeric suffix on collision."""
        base = generate_backup_name(self.prefix, backup_type)
        taken = {r.name for r in self.store.load()}

        name = base
        counter = 0
        while name in taken or self._artifact_exists(name):
            counter += 1
            name = f"{base}-{counter}"
        return name

    def _artifact_exists(self, name: str) -> bool:
        return any(
            os.path.exists(os.path.join(self.backup_dir, artifact_filename(name, compressed)))
            for compressed in (False, True)
        )

    def restore_backup(
        self,
        name: str,
        target: Optional[str] = None,
        create_backup_before_restore: bool = True
    ) -> RestoreResult:
        """
        Restore a backup over the target database.

        The target is only written once the candidate image has passed the
        hash and header checks.

        Args:
            name: Name of the backup to restore
            target: File to overwrite (default: the primary database)
            create_backup_before_restore: Take a 'pre-restore' backup first

        Returns:
            RestoreResult describing the restore

        Raises:
            BackupNotFoundError: If no record has this name
            SourceMissingError: If the artifact has disappeared
            ConcurrencyConflictError: If the safety backup cannot start
            CompressionError: If the artifact cannot be decompressed
            IntegrityError: If the artifact fails verification
            BackupError: If writing the target fails
        """
        target = os.path.abspath(target or self.db_path)
        logger.info(f"Starting restore of backup: {name}")

        record = self.store.find(name)
        if record is None:
            raise BackupNotFoundError(f"Backup not found: {name}")

        if not os.path.isfile(record.path):
            raise SourceMissingError(f"Backup artifact not found: {record.path}")

        pre_restore_name = None
        if create_backup_before_restore:
            pre_restore = self.create_backup(
                backup_type='pre-restore',
                description=f"Automatic backup before restoring {name}"
            )
            pre_restore_name = pre_restore.name

            # Retention after the safety backup may have pruned this artifact
            if not os.path.isfile(record.path):
                raise SourceMissingError(f"Backup artifact removed by retention: {record.path}")

        if record.hash and calculate_file_hash(record.path) != record.hash:
            raise IntegrityError(f"Backup {name} does not match its recorded hash")

        candidate = record.path
        scratch_path = None
        try:
            if record.compressed:
                scratch_path = os.path.join(self.backup_dir, f"restore_temp_{uuid.uuid4().hex}.db")
                decompress_file(record.path, scratch_path)
                candidate = scratch_path

            if not is_valid_store_image(candidate):
                raise IntegrityError(f"Backup {name} is corrupted or not a database image")

            self._replace_file(candidate, target)
        finally:
            if scratch_path:
                remove_quietly(scratch_path)

        logger.info(f"Backup restored: {name} -> {target}")

        return RestoreResult(
            success=True,
            backup_name=name,
            restored_to=target,
            timestamp=datetime.now(timezone.utc).isoformat(),
            pre_restore_backup=pre_restore_name,
        )

    def _replace_file(self, source: str, target: str):
        """Copy source next to target, then move it into place."""
        target_dir = os.path.dirname(target)
        os.makedirs(target_dir, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f".{os.path.basename(target)}.", suffix='.restoring', dir=target_dir)
        os.close(fd)

        try:
            shutil.copyfile(source, temp_path)
            os.replace(temp_path, target)
        except OSError as e:
            remove_quietly(temp_path)
            raise BackupError(f"Failed to write restore target {target}: {e}")

    def get_backup_list(self) -> List[BackupRecord]:
        """
        List backups, newest first.

        Records whose artifact no longer exists are dropped, and the
        metadata file is rewritten when that happens.
        """
        records = self.store.load()

        valid = []
        for record in records:
            if os.path.exists(record.path):
                valid.append(record)
            else:
                logger.warning(f"Backup artifact not found, dropping record: {record.path}")

        if len(valid) != len(records):
            self.store.save(valid)

        return sort_newest_first(valid)

    def cleanup_old_backups(self) -> Dict[str, Any]:
        """
        Delete the oldest backups beyond the retention ceiling.

        Returns:
            Summary dict from RetentionManager.enforce()
        """
        return self.retention.enforce(self.get_backup_list())

    def get_backup_stats(self) -> BackupStats:
        """Summarize the current backups."""
        backups = self.get_backup_list()
        stats = BackupStats()

        if not backups:
            return stats

        stats.total = len(backups)
        stats.total_size = sum(b.size for b in backups)
        stats.average_size = stats.total_size / stats.total

        for backup in backups:
            stats.types[backup.type] = stats.types.get(backup.type, 0) + 1

        # backups is sorted newest first
        stats.newest = backups[0]
        stats.oldest = backups[-1]

        return stats

    def health_check(self, deep: bool = False) -> HealthReport:
        """
        Classify every recorded backup as healthy, corrupted or missing.

        Does not modify the metadata file and never raises for a single
        bad backup.

        Args:
            deep: Also run SQLite's quick_check on each decompressed image

        Returns:
            HealthReport with per-backup details
        """
        logger.info("Running backup health check")

        records = self.store.load()
        report = HealthReport(total=len(records))

        for record in records:
            detail = {'name': record.name, 'status': 'unknown'}

            try:
                if not os.path.isfile(record.path):
                    detail['status'] = MISSING
                    detail['error'] = f"Artifact not found: {record.path}"
                else:
                    error = self._check_artifact(record, deep)
                    if error:
                        detail['status'] = CORRUPTED
                        detail['error'] = error
                    else:
                        detail['status'] = HEALTHY
            except Exception as e:
                detail['status'] = CORRUPTED
                detail['error'] = str(e)

            if detail['status'] == HEALTHY:
                report.healthy += 1
            elif detail['status'] == MISSING:
                report.missing += 1
            else:
                report.corrupted += 1

            report.details.append(detail)

        logger.info(
            f"Health check complete: {report.healthy} healthy, "
            f"{report.corrupted} corrupted, {report.missing} missing"
        )

        return report

    def _check_artifact(self, record: BackupRecord, deep: bool) -> Optional[str]:
        """Return a description of what is wrong with an artifact, or None."""
        if record.hash and calculate_file_hash(record.path) != record.hash:
            return "Hash mismatch"

        if not deep:
            if not verify_artifact(record.path, record.compressed, scratch_dir=self.backup_dir):
                return "Not a valid database image"
            return None

        candidate = record.path
        scratch_path = None
        try:
            if record.compressed:
                scratch_path = os.path.join(self.backup_dir, f"health_temp_{uuid.uuid4().hex}.db")
                decompress_file(record.path, scratch_path)
                candidate = scratch_path

            ok, message = check_database(candidate)
            return None if ok else message
        finally:
            if scratch_path:
                remove_quietly(scratch_path)

    def setup_automatic_backup(self, timezone_name: str = 'UTC',
                               daily_cron: str = '0 2 * * *',
                               weekly_cron: str = '0 3 * * sun'):
        """
        Register daily and weekly backups with a background scheduler.

        Returns:
            AutomaticBackup exposing start() and stop()
        """
        from dbkeeper.scheduler import AutomaticBackup

        return AutomaticBackup(
            self,
            timezone_name=timezone_name,
            daily_cron=daily_cron,
            weekly_cron=weekly_cron,
        )
