"""Atomic file writing utilities."""

import enum
import json
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional, Union

from ..errors import AlreadyFinalized, CommitFailed

COPY_BUFFER_SIZE = 1024 * 1024


class DiscardPolicy(enum.Enum):
    """What a writer does when it is closed without commit() or rollback()."""
    ROLLBACK = "rollback"
    COMMIT = "commit"


class AtomicFileWriter:
    """Atomic file writer using temp file + rename pattern.

    Bytes go into a private, uniquely named temporary file. commit()
    publishes it to the final path with a single rename, so readers either
    see the previous content of the final path or the complete new one,
    never a partial write. The last writer to commit wins.

    Usage:
        with AtomicFileWriter(path, temp_dir=path.parent) as writer:
            writer.write_bytes(b"payload")
            writer.commit()

    Leaving the ``with`` block because of an exception always rolls back.
    Leaving it cleanly, or calling close(), applies ``on_discard``. A writer
    garbage collected while still open applies ``on_discard`` too, but only
    close() and the ``with`` block decide when that happens.
    """

    def __init__(
        self,
        final_path: Union[str, Path],
        temp_dir: Optional[Union[str, Path]] = None,
        on_discard: DiscardPolicy = DiscardPolicy.ROLLBACK,
        fsync: bool = True,
    ):
        """Create the temporary file and open it for writing.

        Args:
            final_path: Path the file is published to on commit
            temp_dir: Directory for the temporary file. It must live on the
                same filesystem as final_path for the rename to be atomic.
                Defaults to the system temp directory.
            on_discard: Policy applied by close() and clean context exit
            fsync: Force the data to disk before the rename
        """
        self.final_path = Path(final_path)
        self.on_discard = on_discard
        self.fsync = fsync
        self._finalized = False

        fd, tmp_path = tempfile.mkstemp(
            dir=str(temp_dir) if temp_dir is not None else None,
            prefix=f".{self.final_path.name}.",
            suffix=".tmp"
        )
        self.temp_path = Path(tmp_path)
        self._fp = os.fdopen(fd, "wb+")

    def __enter__(self) -> "AtomicFileWriter":
        return self

    def __del__(self):
        # Writers dropped without close() still get their discard policy
        if getattr(self, "_fp", None) is not None and not self._finalized:
            self.close()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
        else:
            self.close()

    @property
    def path(self) -> Path:
        """Final path of the artifact."""
        return self.final_path

    @property
    def finalized(self) -> bool:
        """True once committed or rolled back."""
        return self._finalized

    @property
    def stream(self) -> BinaryIO:
        """Underlying temporary file handle for lower-level copies.

        Raises:
            AlreadyFinalized: If the writer was committed or rolled back
        """
        self._check_writable()
        return self._fp

    def write(self, content, limit: Optional[int] = None) -> int:
        """Write a byte buffer or copy from a readable binary stream."""
        if isinstance(content, (bytes, bytearray, memoryview)):
            return self.write_bytes(content, limit)
        if hasattr(content, "read"):
            return self.write_from(content, limit)
        raise TypeError(
            f"Expected a bytes-like object or a readable binary stream, got {type(content).__name__}"
        )

    def write_bytes(self, data: bytes, limit: Optional[int] = None) -> int:
        """Append at most ``limit`` bytes of ``data``.

        Returns:
            Number of bytes written
        """
        self._check_writable()
        view = memoryview(data)
        if limit is not None and limit >= 0:
            view = view[:limit]
        return self._fp.write(view)

    def write_from(
        self,
        reader: BinaryIO,
        limit: Optional[int] = None,
        buffer_size: int = COPY_BUFFER_SIZE,
    ) -> int:
        """Copy at most ``limit`` bytes from ``reader``, or until EOF.

        Returns:
            Number of bytes copied
        """
        self._check_writable()
        remaining = limit if limit is not None and limit >= 0 else None
        copied = 0
        while remaining is None or remaining > 0:
            size = buffer_size if remaining is None else min(buffer_size, remaining)
            block = reader.read(size)
            if not block:
                break
            self._fp.write(block)
            copied += len(block)
            if remaining is not None:
                remaining -= len(block)
        return copied

    def commit(self) -> bool:
        """Flush, close and atomically rename the temporary file.

        Returns:
            True if the file was published, False if the writer was
            already committed or rolled back

        Raises:
            CommitFailed: If the rename fails. The temporary file is removed
                and the writer is left finalized.
        """
        if self._finalized:
            return False
        self._finalized = True

        try:
            self._fp.flush()
            if self.fsync:
                os.fsync(self._fp.fileno())  # Ensure data is written to disk
            self._fp.close()
            # Atomic rename (POSIX guarantee)
            os.replace(self.temp_path, self.final_path)
        except OSError as e:
            self._fp.close()
            self._remove_temp()
            raise CommitFailed(
                f"Cannot move {self.temp_path} to {self.final_path}: {e}"
            ) from e
        return True

    def rollback(self) -> bool:
        """Close and delete the temporary file.

        Returns:
            True if the file was discarded, False if already finalized
        """
        if self._finalized:
            return False
        self._finalized = True
        self._fp.close()
        self._remove_temp()
        return True

    def close(self) -> bool:
        """Apply the discard policy if the writer is still open."""
        if self._finalized:
            return False
        if self.on_discard is DiscardPolicy.COMMIT:
            return self.commit()
        return self.rollback()

    def _check_writable(self) -> None:
        if self._finalized:
            raise AlreadyFinalized(
                f"Writer for {self.final_path} is already committed or rolled back"
            )

    def _remove_temp(self) -> None:
        try:
            self.temp_path.unlink()
        except FileNotFoundError:
            pass


def atomic_write_text(path: Union[str, Path], content: str, encoding: str = "utf-8") -> None:
    """Atomically write text to a file, next to which the temp file is created.

    Raises:
        CommitFailed: If the final rename fails
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with AtomicFileWriter(path, temp_dir=path.parent) as writer:
        writer.write_bytes(content.encode(encoding))
        writer.commit()


def atomic_write_json(path: Union[str, Path], data: dict) -> None:
    """Atomically write ``data`` as JSON."""
    atomic_write_text(path, json.dumps(data, ensure_ascii=False))
