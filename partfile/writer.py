"""Public entry point tying the chunk store and the assembler together."""

from pathlib import Path
from typing import BinaryIO, Optional, Union

from .assembler import Assembler
from .chunk_store import Chunk, ChunkStore, MissingRange, placeholder_content
from .config import Config


class ConcurrentFileWriter:
    """Write one file from many independent writers, then assemble it once.

    Usage:
        writer = ConcurrentFileWriter("out.bin")
        writer.create({"source": url})
        writer.write(0, first_block)          # any process, any order
        writer.write(1048576, second_block)
        writer.finalize()                     # False means retry later

    Every process builds its own ConcurrentFileWriter for the same target;
    all coordination happens through the filesystem.
    """

    def __init__(self, target: Union[str, Path], config: Optional[Config] = None):
        self.config = config or Config()
        self.store = ChunkStore(
            target,
            work_root=self.config.work_root_path,
            fsync=self.config.fsync,
            copy_buffer_size=self.config.copy_buffer_size,
        )
        self.assembler = Assembler(self.store)

    @property
    def target(self) -> Path:
        return self.store.target

    @property
    def work_dir(self) -> Path:
        return self.store.work_dir

    def placeholder_content(self, metadata: Optional[dict] = None) -> str:
        return placeholder_content(metadata)

    def create(self, metadata: Optional[dict] = None) -> bool:
        """Start a new logical file. False if the target already exists."""
        return self.store.create(metadata)

    def write(self, offset: int, content, limit: Optional[int] = None) -> Chunk:
        """Store bytes or a stream's content at ``offset``."""
        return self.store.write(offset, content, limit)

    def write_bytes(self, offset: int, data: bytes, limit: Optional[int] = None) -> Chunk:
        return self.store.write_bytes(offset, data, limit)

    def write_from(self, offset: int, reader: BinaryIO, limit: Optional[int] = None) -> Chunk:
        return self.store.write_from(offset, reader, limit)

    def list_chunks(self) -> list[Chunk]:
        return self.store.list_chunks()

    def missing_ranges(self, total_size: Optional[int] = None) -> list[MissingRange]:
        return self.store.missing_ranges(total_size=total_size)

    def finalize(self, expected_size: Optional[int] = None) -> bool:
        """Merge the chunks into the target. False if another finalize runs."""
        return self.assembler.finalize(expected_size)

    def cleanup(self) -> bool:
        """Drop all chunks without producing the target."""
        return self.store.cleanup()
