"""
Backup metadata persistence.

All records live in a single JSON document inside the backup directory.
The document is always rewritten in full, newest backup first, via a
temporary file that is moved into place.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import MetadataCorruptionError


logger = logging.getLogger(__name__)

DEFAULT_METADATA_FILENAME = 'backups.json'


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class BackupRecord:
    """One completed backup."""

    name: str
    type: str
    path: str
    size: int
    compressed: bool
    hash: str
    created_at: str
    description: str = ''
    verified: bool = False

    @property
    def created(self) -> datetime:
        return parse_timestamp(self.created_at)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupRecord':
        """
        Create a record from its JSON form.

        Raises:
            KeyError: If a required field is missing
            ValueError: If created_at is not an ISO-8601 timestamp
        """
        created_at = data['created_at']
        if not isinstance(created_at, str):
            raise ValueError(f"created_at must be a string, got {created_at!r}")
        parse_timestamp(created_at)

        return cls(
            name=data['name'],
            type=data.get('type', 'manual'),
            path=data['path'],
            size=int(data.get('size', 0)),
            compressed=bool(data.get('compressed', False)),
            hash=data.get('hash', ''),
            created_at=created_at,
            description=data.get('description') or '',
            verified=bool(data.get('verified', False)),
        )


def sort_newest_first(records: List[BackupRecord]) -> List[BackupRecord]:
    return sorted(records, key=lambda r: r.created, reverse=True)


class MetadataStore:
    """
    JSON file holding the ordered list of backup records.
    """

    def __init__(self, backup_dir: str, filename: str = DEFAULT_METADATA_FILENAME):
        """
        Initialize metadata store.

        Args:
            backup_dir: Directory holding the backups and the metadata file
            filename: Name of the metadata file inside backup_dir
        """
        self.backup_dir = backup_dir
        self.path = os.path.join(backup_dir, filename)

    def read(self) -> List[BackupRecord]:
        """
        Read all records, raising on a damaged file.

        Returns:
            Records sorted newest first (empty if the file does not exist)

        Raises:
            MetadataCorruptionError: If the file exists but cannot be parsed
        """
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            raise MetadataCorruptionError(f"Cannot read metadata file {self.path}: {e}")

        if not isinstance(data, list):
            raise MetadataCorruptionError(f"Metadata file {self.path} does not hold a list")

        try:
            records = [BackupRecord.from_dict(item) for item in data]
            return sort_newest_first(records)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MetadataCorruptionError(f"Invalid record in {self.path}: {e}")

    def load(self) -> List[BackupRecord]:
        """
        Read all records, treating a damaged file as empty.

        Returns:
            Records sorted newest first
        """
        try:
            return self.read()
        except MetadataCorruptionError as e:
            logger.warning(f"{e}; treating backup list as empty")
            return []

    def save(self, records: List[BackupRecord]):
        """
        Replace the metadata file with the given records, newest first.

        The document is written to a temporary file in the same directory and
        renamed over the old one so readers never see a truncated file.
        """
        os.makedirs(self.backup_dir, exist_ok=True)
        payload = json.dumps([r.to_dict() for r in sort_newest_first(records)], indent=2)

        fd, temp_path = tempfile.mkstemp(prefix='.backups_', suffix='.json.tmp', dir=self.backup_dir)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def append(self, record: BackupRecord):
        """Add one record and persist the full list."""
        records = self.load()
        records.append(record)
        self.save(records)

    def find(self, name: str) -> Optional[BackupRecord]:
        for record in self.load():
            if record.name == name:
                return record
        return None
