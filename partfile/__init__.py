"""Concurrent chunked writes assembled into a single file."""

__version__ = "0.1.0"

from .assembler import Assembler
from .chunk_store import Chunk, ChunkStore, MissingRange
from .errors import AlreadyFinalized, CommitFailed, IncompleteFile, NotInitialized, PartfileError
from .utils.atomic_writer import AtomicFileWriter, DiscardPolicy
from .writer import ConcurrentFileWriter

__all__ = [
    "Assembler",
    "AtomicFileWriter",
    "Chunk",
    "ChunkStore",
    "ConcurrentFileWriter",
    "DiscardPolicy",
    "MissingRange",
    "PartfileError",
    "AlreadyFinalized",
    "CommitFailed",
    "IncompleteFile",
    "NotInitialized",
]
