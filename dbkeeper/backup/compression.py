"""
Streaming gzip compression for backup artifacts.

Files are piped through gzip in fixed-size chunks so memory use does not
grow with the size of the database. Neither function removes a partially
written destination; callers are responsible for that on error.
"""

import gzip
import os
import re
import shutil
import zlib
from datetime import datetime, timezone
from typing import Optional

from .errors import CompressionError


CHUNK_SIZE = 64 * 1024

RAW_EXTENSION = '.db'
COMPRESSED_EXTENSION = '.db.gz'


def compress_file(source_path: str, destination_path: str, level: int = 6) -> str:
    """
    Compress a file with gzip.

    Args:
        source_path: File to read
        destination_path: Where the .gz output is written
        level: gzip compression level (1-9)

    Returns:
        destination_path

    Raises:
        CompressionError: If reading, compressing or writing fails
    """
    if not 1 <= level <= 9:
        raise ValueError(f"Invalid compression level: {level}. Valid range: 1-9")

    try:
        with open(source_path, 'rb') as src, \
                gzip.open(destination_path, 'wb', compresslevel=level) as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
    except (OSError, zlib.error) as e:
        raise CompressionError(f"Failed to compress {source_path}: {e}")

    return destination_path


def decompress_file(source_path: str, destination_path: str) -> str:
    """
    Decompress a gzip file.

    Args:
        source_path: .gz file to read
        destination_path: Where the raw output is written

    Returns:
        destination_path

    Raises:
        CompressionError: If the input is not valid gzip or I/O fails
    """
    try:
        with gzip.open(source_path, 'rb') as src, open(destination_path, 'wb') as dst:
            shutil.copyfileobj(src, dst, CHUNK_SIZE)
    except (OSError, EOFError, zlib.error) as e:
        # gzip.BadGzipFile is an OSError subclass
        raise CompressionError(f"Failed to decompress {source_path}: {e}")

    return destination_path


def safe_timestamp(moment: Optional[datetime] = None) -> str:
    """
    ISO-8601 UTC timestamp with filesystem-unsafe characters replaced.

    Example: 2024-01-15T10-30-00-123456Z
    """
    moment = moment or datetime.now(timezone.utc)
    iso = moment.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec='microseconds')
    return re.sub(r'[:.]', '-', iso) + 'Z'


def generate_backup_name(prefix: str, backup_type: str, moment: Optional[datetime] = None) -> str:
    """
    Generate a backup name.

    Format: {prefix}_{type}_{timestamp}

    Args:
        prefix: Project prefix (e.g. 'crm_backup')
        backup_type: Category tag such as 'manual' or 'daily'
        moment: Timestamp to use (default: now)

    Returns:
        Backup name without extension
    """
    # Sanitize type (replace spaces and special chars with underscores)
    safe_type = "".join(
        c if c.isalnum() or c in ('-', '_') else '_'
        for c in backup_type
    )

    return f"{prefix}_{safe_type}_{safe_timestamp(moment)}"


def artifact_filename(name: str, compressed: bool) -> str:
    """Filename for a backup artifact, .db or .db.gz depending on compression."""
    return name + (COMPRESSED_EXTENSION if compressed else RAW_EXTENSION)


def get_artifact_size(artifact_path: str) -> int:
    """
    Get the size of an artifact in bytes.

    Raises:
        CompressionError: If the file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(artifact_path)
    except FileNotFoundError:
        raise CompressionError(f"Artifact not found: {artifact_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get artifact size: {e}")
