"""Filesystem storage for cached assets with atomic, retried writes."""

from __future__ import annotations

import errno
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, TypeVar

_log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BACKOFF_SECONDS = 0.1

_T = TypeVar("_T")


class StorageError(OSError):
    """A storage operation failed."""


def should_retry(error: BaseException) -> bool:
    """Whether an I/O error is transient and worth retrying."""
    if isinstance(error, (BlockingIOError, InterruptedError)):
        return True
    return isinstance(error, OSError) and error.errno in (errno.EBUSY, errno.EAGAIN)


def temp_path_for(final_path: Path) -> Path:
    """Return a unique temporary path next to ``final_path``."""
    final_path = Path(final_path)
    suffix = f"tmp-{os.getpid()}-{time.time_ns()}"
    if final_path.name:
        return final_path.with_name(f"{final_path.name}.{suffix}")
    return final_path / suffix


def _retrying(operation: Callable[[], _T], label: str, context: str) -> _T:
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except OSError as exc:
            if should_retry(exc) and attempt < MAX_ATTEMPTS:
                _log.debug(
                    "%s attempt %d/%d failed (%s), retrying in %.0fms",
                    label, attempt, MAX_ATTEMPTS, exc, BACKOFF_SECONDS * 1000,
                )
                time.sleep(BACKOFF_SECONDS)
                continue
            raise StorageError(f"{context} (after {attempt} attempts)") from exc


@dataclass
class FileHandle:
    """An open cached asset together with its size and location."""

    file: BinaryIO
    size: int
    path: Path

    def close(self) -> None:
        """Close the underlying file."""
        self.file.close()

    def __enter__(self) -> FileHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class TempFile:
    """A temporary file that is atomically moved into place on commit.

    Used as a context manager it commits on normal exit and rolls back
    when the block raises.
    """

    def __init__(self, tmp_path: Path, final_path: Path, file: BinaryIO) -> None:
        self._tmp_path = tmp_path
        self._final_path = final_path
        self._file = file
        self._finished = False

    @property
    def tmp_path(self) -> Path:
        return self._tmp_path

    @property
    def final_path(self) -> Path:
        return self._final_path

    def write(self, data: bytes) -> int:
        """Append ``data`` to the temporary file."""
        return self._file.write(data)

    def _close(self) -> None:
        if self._finished:
            raise StorageError(f"temp file {self._tmp_path} already committed or rolled back")
        self._finished = True
        try:
            self._file.flush()
        except OSError as exc:
            self._file.close()
            raise StorageError(f"flushing {self._tmp_path}") from exc
        self._file.close()

    def commit(self) -> None:
        """Flush and move the temporary file to its final path."""
        self._close()
        _retrying(
            lambda: os.replace(self._tmp_path, self._final_path),
            "commit (rename)",
            f"moving {self._tmp_path} to {self._final_path}",
        )

    def rollback(self) -> None:
        """Discard the temporary file."""
        self._close()
        try:
            os.remove(self._tmp_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageError(f"removing temp file {self._tmp_path}") from exc

    def __enter__(self) -> TempFile:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        if self._finished:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class FilesystemStorage:
    """Stores cached assets below a root directory."""

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def prepare(self) -> None:
        """Create the storage root if it does not exist."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"creating storage root {self._root}") from exc

    def resolve(self, relative: str) -> Path:
        """Return the absolute location of ``relative`` inside the root."""
        return self._root / relative

    def open_read(self, relative: str) -> FileHandle | None:
        """Open a stored asset for reading, or return None if it does not exist."""
        path = self.resolve(relative)

        def attempt() -> BinaryIO | None:
            try:
                return open(path, "rb")
            except FileNotFoundError:
                return None

        file = _retrying(attempt, "open_read", f"opening cached asset {path}")
        if file is None:
            return None
        try:
            size = os.fstat(file.fileno()).st_size
        except OSError as exc:
            file.close()
            raise StorageError(f"reading metadata {path}") from exc
        return FileHandle(file=file, size=size, path=path)

    def create_temp_writer(self, relative: str) -> TempFile:
        """Open a temporary file that becomes ``relative`` when committed."""
        final_path = self.resolve(relative)
        parent = final_path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"creating storage dir {parent}") from exc

        tmp_path = temp_path_for(final_path)
        file = _retrying(
            lambda: open(tmp_path, "wb"),
            "create_temp_writer",
            f"creating temp file {tmp_path}",
        )
        return TempFile(tmp_path, final_path, file)