"""
Backup module for dbkeeper.

This module handles the core backup functionality including:
- Streaming gzip compression
- Integrity verification (SQLite header, SHA-256, quick_check)
- Metadata persistence
- Retention policy enforcement
- Orchestration of backup, restore and health checks
"""

from .errors import (
    BackupError,
    BackupNotFoundError,
    CompressionError,
    ConcurrencyConflictError,
    IntegrityError,
    MetadataCorruptionError,
    SourceMissingError,
)
from .compression import compress_file, decompress_file
from .integrity import is_valid_store_image, calculate_file_hash
from .metadata import BackupRecord, MetadataStore
from .retention import RetentionManager, select_victims
from .manager import BackupManager, BackupStats, HealthReport, RestoreResult

__all__ = [
    'BackupManager',
    'BackupRecord',
    'BackupStats',
    'HealthReport',
    'RestoreResult',
    'MetadataStore',
    'RetentionManager',
    'select_victims',
    'compress_file',
    'decompress_file',
    'is_valid_store_image',
    'calculate_file_hash',
    'BackupError',
    'BackupNotFoundError',
    'CompressionError',
    'ConcurrencyConflictError',
    'IntegrityError',
    'MetadataCorruptionError',
    'SourceMissingError',
]
