"""
Custom exception hierarchy for the image scanner.

Per-file problems (hashing, metadata) are recoverable and are turned into
counters by the scan loop. Database errors are fatal to the run.
Cancellation is a normal terminal state, not a failure.
"""


class ImageScannerError(Exception):
    """Base exception for all image scanner errors."""
    pass


class FileHashError(ImageScannerError):
    """Raised when a file cannot be read for hashing (vanished, denied, I/O)."""
    pass


class DatabaseError(ImageScannerError):
    """Raised when a catalog write fails. The transaction has been rolled back."""
    pass


class ConfigurationError(ImageScannerError):
    """Raised when settings are missing or invalid."""
    pass


class ScanCancelled(ImageScannerError):
    """Raised when a cancellation request is observed mid-operation."""
    pass
