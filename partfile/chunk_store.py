"""Per-offset chunk storage inside a working directory."""

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .errors import NotInitialized
from .logging import get_logger
from .utils import paths
from .utils.atomic_writer import COPY_BUFFER_SIZE, AtomicFileWriter, DiscardPolicy, atomic_write_json

PART_SUFFIX = ".part"
CHUNKS_DIR = "chunks"
LOCK_FILE = ".lock"
PLACEHOLDER_KEYS = {"finished", "metadata"}
# Larger targets are never read back as placeholders
PLACEHOLDER_MAX_SIZE = 1024 * 1024


@dataclass(frozen=True)
class Chunk:
    """A committed chunk: ``size`` bytes that belong at ``offset``."""
    offset: int
    size: int
    path: Path

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class MissingRange:
    """A byte range no committed chunk covers."""
    offset: int
    size: int

    def to_dict(self) -> dict:
        return {"offset": self.offset, "size": self.size}


def work_dir_for(target: Path, work_root: Optional[Path] = None) -> Path:
    """Working directory of a target.

    ``<target>.part`` next to the target, or ``<work_root>/<sha256>.part``
    when a shared root is configured.
    """
    if work_root is None:
        return target.with_name(target.name + PART_SUFFIX)
    digest = hashlib.sha256(str(target.absolute()).encode("utf-8")).hexdigest()
    return Path(work_root) / (digest + PART_SUFFIX)


def placeholder_data(metadata: Optional[dict] = None) -> dict:
    return {
        "finished": False,
        "metadata": metadata or {},
    }


def placeholder_content(metadata: Optional[dict] = None) -> str:
    """JSON written at the target path until the file is finalized."""
    return json.dumps(placeholder_data(metadata))


class ChunkStore:
    """Owns the working directory of one logical output file.

    Layout:
        <target>                      placeholder JSON until finalize
        <target>.part/.lock           finalize lock file
        <target>.part/chunks/<offset> one file per committed chunk

    Every write goes to its own temporary file and is published with a
    rename, so writers at different offsets never contend and need no lock.
    Two writes at the same offset race; the last rename wins.
    """

    def __init__(
        self,
        target: Union[str, Path],
        work_root: Union[str, Path, None] = None,
        fsync: bool = True,
        copy_buffer_size: int = COPY_BUFFER_SIZE,
    ):
        self.target = Path(target)
        self.work_root = Path(work_root) if work_root is not None else None
        self.work_dir = work_dir_for(self.target, self.work_root)
        self.chunks_dir = self.work_dir / CHUNKS_DIR
        self.lock_path = self.work_dir / LOCK_FILE
        self.fsync = fsync
        self.copy_buffer_size = copy_buffer_size

    @property
    def is_initialized(self) -> bool:
        """True while the working directory accepts writes."""
        return self.chunks_dir.is_dir()

    @property
    def is_finalized(self) -> bool:
        """True when the target holds final bytes and no working state is left."""
        return (
            self.target.is_file()
            and not self.work_dir.exists()
            and not self.holds_placeholder()
        )

    def holds_placeholder(self) -> bool:
        """True if the target still holds the JSON written by create()."""
        try:
            if self.target.stat().st_size > PLACEHOLDER_MAX_SIZE:
                return False
            data = json.loads(self.target.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        return (
            isinstance(data, dict)
            and set(data) == PLACEHOLDER_KEYS
            and data["finished"] is False
        )

    def create(self, metadata: Optional[dict] = None) -> bool:
        """Prepare the working directory and write the target placeholder.

        The target path is claimed with O_EXCL first, so of several
        concurrent calls exactly one returns True.

        Returns:
            False, without touching the filesystem, if the target already
            exists; True otherwise
        """
        if self.target.is_file():
            get_logger().log_create(self.target, False, metadata)
            return False

        paths.mkdir(self.target.parent)
        try:
            fd = os.open(self.target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        except FileExistsError:
            get_logger().log_create(self.target, False, metadata)
            return False
        os.close(fd)

        paths.mkdir(self.chunks_dir)
        self.lock_path.touch(exist_ok=True)
        atomic_write_json(self.target, placeholder_data(metadata))

        get_logger().log_create(self.target, True, metadata)
        return True

    def open_chunk(self, offset: int) -> AtomicFileWriter:
        """Open a writer for the chunk at ``offset``.

        The writer commits when closed, so a chunk whose writes completed is
        durable even without an explicit commit().

        Raises:
            NotInitialized: If the working directory does not exist
            ValueError: If offset is not a non-negative integer
        """
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValueError(f"Chunk offset must be a non-negative integer, got {offset!r}")
        if not self.is_initialized:
            raise NotInitialized(f"{self.target} was not created or is already finalized")
        try:
            return AtomicFileWriter(
                self.chunks_dir / str(offset),
                temp_dir=self.work_dir,
                on_discard=DiscardPolicy.COMMIT,
                fsync=self.fsync,
            )
        except FileNotFoundError as e:
            # Working directory removed between the check and mkstemp()
            raise NotInitialized(f"{self.target} is already finalized") from e

    def write(self, offset: int, content, limit: Optional[int] = None) -> Chunk:
        """Store a chunk from a byte buffer or a readable binary stream."""
        if isinstance(content, (bytes, bytearray, memoryview)):
            return self.write_bytes(offset, content, limit)
        if hasattr(content, "read"):
            return self.write_from(offset, content, limit)
        raise TypeError(
            f"Expected a bytes-like object or a readable binary stream, got {type(content).__name__}"
        )

    def write_bytes(self, offset: int, data: bytes, limit: Optional[int] = None) -> Chunk:
        """Store at most ``limit`` bytes of ``data`` as the chunk at ``offset``."""
        with self.open_chunk(offset) as writer:
            size = writer.write_bytes(data, limit)
            writer.commit()
        return self._committed(offset, size)

    def write_from(self, offset: int, reader: BinaryIO, limit: Optional[int] = None) -> Chunk:
        """Copy at most ``limit`` bytes from ``reader`` into the chunk at ``offset``."""
        with self.open_chunk(offset) as writer:
            size = writer.write_from(reader, limit, buffer_size=self.copy_buffer_size)
            writer.commit()
        return self._committed(offset, size)

    def list_chunks(self) -> list[Chunk]:
        """List committed chunks sorted by offset.

        Entries whose name is not a decimal number are ignored.

        Raises:
            NotInitialized: If the chunk directory does not exist
        """
        try:
            entries = os.listdir(self.chunks_dir)
        except FileNotFoundError as e:
            raise NotInitialized(f"{self.target} was not created or is already finalized") from e

        chunks = []
        for name in entries:
            if not (name.isascii() and name.isdigit()):
                continue
            path = self.chunks_dir / name
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                continue  # Removed by a concurrent finalize
            chunks.append(Chunk(offset=int(name), size=size, path=path))

        chunks.sort(key=lambda c: c.offset)
        return chunks

    def missing_ranges(
        self,
        chunks: Optional[list[Chunk]] = None,
        total_size: Optional[int] = None,
    ) -> list[MissingRange]:
        """Find byte ranges not covered by any chunk.

        Args:
            chunks: Chunks sorted by offset; listed fresh when omitted
            total_size: Expected file size. Only when given is a gap after
                the last chunk reported.

        Returns:
            Missing ranges in ascending order; empty when complete
        """
        if chunks is None:
            chunks = self.list_chunks()

        missing = []
        covered = 0
        for chunk in chunks:
            if chunk.offset > covered:
                missing.append(MissingRange(covered, chunk.offset - covered))
            covered = max(covered, chunk.end)

        if total_size is not None and total_size > covered:
            missing.append(MissingRange(covered, total_size - covered))
        return missing

    def cleanup(self) -> bool:
        """Remove the working directory, every chunk in it and the placeholder.

        A target that already holds final bytes is left alone.

        Returns:
            True if a working directory or a placeholder was removed
        """
        placeholder = self.holds_placeholder()
        removed = paths.delete(self.work_dir)
        if placeholder:
            removed = paths.delete(self.target) or removed
        get_logger().log_cleanup(self.target, removed)
        return removed

    def _committed(self, offset: int, size: int) -> Chunk:
        get_logger().log_chunk_write(self.target, offset, size)
        return Chunk(offset=offset, size=size, path=self.chunks_dir / str(offset))
