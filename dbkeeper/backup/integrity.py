"""
Integrity checks for database images and backup artifacts.

The cheap check compares the 16-byte SQLite header; the deep check opens the
image through SQLAlchemy and runs PRAGMA quick_check.
"""

import hashlib
import logging
import os
import uuid
from typing import Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from .compression import decompress_file
from .errors import CompressionError


logger = logging.getLogger(__name__)

SQLITE_MAGIC = b'SQLite format 3\x00'
HASH_CHUNK_SIZE = 8192


def is_valid_store_image(path: str) -> bool:
    """
    Check whether a file starts with the SQLite header.

    Returns False for files that are missing, unreadable or too short.
    """
    try:
        with open(path, 'rb') as f:
            header = f.read(len(SQLITE_MAGIC))
    except OSError:
        return False

    return header == SQLITE_MAGIC


def calculate_file_hash(path: str) -> str:
    """Compute the SHA-256 hex digest of a file."""
    hasher = hashlib.sha256()
    with open(path, 'rb') as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_artifact(artifact_path: str, compressed: bool, scratch_dir: Optional[str] = None) -> bool:
    """
    Verify that a backup artifact holds a valid database image.

    Compressed artifacts are decompressed to a scratch file first; the
    scratch file is always removed afterwards.

    Args:
        artifact_path: Path to the .db or .db.gz artifact
        compressed: Whether the artifact is gzip compressed
        scratch_dir: Directory for the scratch file (default: artifact's directory)

    Returns:
        True if the image passes the header check
    """
    if not compressed:
        return is_valid_store_image(artifact_path)

    scratch_dir = scratch_dir or os.path.dirname(artifact_path)
    scratch_path = os.path.join(scratch_dir, f"verify_temp_{uuid.uuid4().hex}.db")

    try:
        decompress_file(artifact_path, scratch_path)
        return is_valid_store_image(scratch_path)
    except CompressionError as e:
        logger.warning(f"Verification could not decompress {artifact_path}: {e}")
        return False
    finally:
        remove_quietly(scratch_path)


def check_database(path: str) -> Tuple[bool, str]:
    """
    Run SQLite's quick_check against a database image.

    Args:
        path: Uncompressed database file

    Returns:
        Tuple of (is_ok, message)
    """
    if not is_valid_store_image(path):
        return False, "Not a SQLite database image"

    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    try:
        with engine.connect() as conn:
            rows = conn.execute(text("PRAGMA quick_check")).fetchall()
    except SQLAlchemyError as e:
        return False, f"Database check failed: {e}"
    finally:
        engine.dispose()

    messages = [row[0] for row in rows]
    if messages == ['ok']:
        return True, 'ok'
    return False, '; '.join(messages)


def remove_quietly(path: str):
    """Remove a file if it exists, logging instead of raising on failure."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")
