import hashlib
from pathlib import Path
from typing import Optional

from .. import config
from ..cancellation import CancellationToken
from ..exceptions import FileHashError


class FileHasher:
    def __init__(self, chunk_size: int = config.HASH_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def compute_hash(self, path: Path, token: Optional[CancellationToken] = None) -> str:
        """
        Full SHA-256 of the file, read in chunks so memory stays bounded.

        The token is checked between chunks. Cancellation raises ScanCancelled
        and no digest is returned for the partially read file.
        Any OS-level failure is raised as FileHashError.
        """
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while True:
                    if token is not None:
                        token.raise_if_cancelled()
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    h.update(chunk)
        except OSError as e:
            raise FileHashError(f"Cannot hash {path}: {e}") from e
        return h.hexdigest()
