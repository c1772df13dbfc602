"""
Retention policy enforcement for backups.

Keeps the number of backups under a fixed ceiling by removing the oldest
ones. Selection ignores backup type: the oldest records go first no matter
whether they are manual, daily, weekly or pre-restore backups.
"""

import logging
import os
from typing import Any, Dict, List

from .metadata import BackupRecord, MetadataStore


logger = logging.getLogger(__name__)


def select_victims(records: List[BackupRecord], max_keep: int) -> List[BackupRecord]:
    """
    Pick the backups to delete so that at most max_keep remain.

    Args:
        records: Current backup records, in any order
        max_keep: Retention ceiling

    Returns:
        The oldest len(records) - max_keep records, oldest first
    """
    excess = len(records) - max_keep
    if excess <= 0:
        return []

    oldest_first = sorted(records, key=lambda r: r.created)
    return oldest_first[:excess]


class RetentionManager:
    """
    Deletes backups beyond the retention ceiling.

    Deletion of individual artifacts is best-effort: a failure is logged and
    recorded in the summary, and the remaining victims are still processed.
    """

    def __init__(self, store: MetadataStore, max_backups: int):
        """
        Initialize retention manager.

        Args:
            store: Metadata store to update after deletion
            max_backups: Maximum number of backups to keep
        """
        self.store = store
        self.max_backups = max_backups

    def enforce(self, records: List[BackupRecord]) -> Dict[str, Any]:
        """
        Enforce the ceiling against the given records.

        Args:
            records: Current list of live backup records

        Returns:
            Dict with summary of cleanup:
            {
                'deleted': List[str],
                'kept': int,
                'errors': List[str]
            }
        """
        summary = {
            'deleted': [],
            'kept': len(records),
            'errors': []
        }

        if len(records) <= self.max_backups:
            return summary

        victims = select_victims(records, self.max_backups)
        logger.info(f"Removing {len(victims)} old backups (limit: {self.max_backups})")

        for victim in victims:
            try:
                os.remove(victim.path)
                logger.info(f"Deleted backup: {victim.name}")
            except FileNotFoundError:
                logger.info(f"Backup artifact already gone: {victim.name}")
            except OSError as e:
                error_msg = f"Failed to delete backup {victim.name}: {e}"
                logger.warning(error_msg)
                summary['errors'].append(error_msg)
            summary['deleted'].append(victim.name)

        victim_names = {v.name for v in victims}
        remaining = [r for r in records if r.name not in victim_names]
        self.store.save(remaining)
        summary['kept'] = len(remaining)

        return summary
