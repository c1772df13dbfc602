"""
Exception types raised by the backup subsystem.

Every error derives from BackupError so callers can catch the whole family.
"""


class BackupError(Exception):
    """Base class for backup and restore failures."""
    pass


class ConcurrencyConflictError(BackupError):
    """Raised when a backup is requested while another one is in flight."""
    pass


class SourceMissingError(BackupError):
    """Raised when the primary database or a backup artifact is absent."""
    pass


class CompressionError(BackupError):
    """Raised when compressing or decompressing a file fails."""
    pass


class IntegrityError(BackupError):
    """Raised when a magic-byte or hash check fails."""
    pass


class BackupNotFoundError(BackupError):
    """Raised when no backup record matches the requested name."""
    pass


class MetadataCorruptionError(BackupError):
    """Raised when the metadata file cannot be parsed."""
    pass
