import os
import logging
from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from ..cancellation import CancellationToken
from ..models import FileStat


def normalize_extensions(extensions: Iterable[str]) -> set[str]:
    """'JPG', ' .Png' -> {'.jpg', '.png'}. Empty entries are dropped."""
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith('.'):
            ext = '.' + ext
        normalized.add(ext)
    return normalized


def root_is_valid(root: Path) -> bool:
    """Pre-check so callers can tell 'no files found' apart from 'bad root'."""
    return root.is_dir() and os.access(root, os.R_OK | os.X_OK)


def stat_file(path: Path) -> FileStat:
    st = path.stat()
    # st_birthtime only exists on macOS/BSD/Windows; ctime is the closest on Linux
    created = getattr(st, 'st_birthtime', None) or st.st_ctime
    return FileStat(
        size_bytes=st.st_size,
        created_at=datetime.fromtimestamp(created, UTC),
        modified_at=datetime.fromtimestamp(st.st_mtime, UTC),
    )


class FileDiscoverer:
    def discover(self,
                 root: Path,
                 extensions: Iterable[str],
                 recursive: bool = True,
                 token: Optional[CancellationToken] = None) -> Iterator[Path]:
        """
        Lazily yields files under root whose extension is in the allow-list.

        Unreadable or vanished directories are logged and skipped; an unreadable
        root simply produces nothing. Nothing is yielded once the token is
        cancelled. Order is not part of the contract.
        """
        allowed = normalize_extensions(extensions)
        for path in self._iter_files(root, recursive, token):
            if path.suffix.lower() in allowed:
                if token is not None and token.is_cancelled:
                    return
                yield path

    def _iter_files(self,
                    root: Path,
                    recursive: bool,
                    token: Optional[CancellationToken]) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        stack = [root]
        while stack:
            if token is not None and token.is_cancelled:
                logging.debug("Discovery stopped: cancellation requested.")
                return
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except (FileNotFoundError, NotADirectoryError):
                logging.warning(f"Directory vanished during scan: {current}")
                continue
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            dirs: List[Path] = []
            for e in entries:
                if token is not None and token.is_cancelled:
                    return
                try:
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False):
                        yield Path(e.path)
                except OSError as err:
                    logging.warning(f"Cannot inspect {e.path}: {err}")

            if recursive:
                stack.extend(reversed(dirs))
