"""Merge committed chunks into the final file, exactly once."""

import shutil
from typing import Optional

from .chunk_store import ChunkStore
from .errors import AlreadyFinalized, IncompleteFile, NotInitialized, PartfileError
from .logging import get_logger
from .utils import paths
from .utils.atomic_writer import AtomicFileWriter, DiscardPolicy
from .utils.filelock import FinalizeLock


class Assembler:
    """Finalizes a ChunkStore into its target path.

    The logical file is pending while the lock file exists and done once
    the target holds the merged bytes and the working directory is gone.
    finalize() is the only transition. Any number of processes may call
    it concurrently; the one that gets the lock does the work and the
    others return False at once instead of waiting.

    The lock file is deleted together with the working directory while
    the lock is still held, which relies on POSIX unlink-while-open
    semantics.
    """

    def __init__(self, store: ChunkStore):
        self.store = store

    def finalize(self, expected_size: Optional[int] = None) -> bool:
        """Assemble all chunks into the target file.

        Args:
            expected_size: Total size the file must have. Without it a
                missing tail after the last chunk goes unnoticed.

        Returns:
            True if this call produced the final file, False if another
            finalize holds the lock (retry later or let it finish)

        Raises:
            AlreadyFinalized: If the file was already finalized
            IncompleteFile: If byte ranges are missing; the target is left
                untouched
            CommitFailed: If the merged file cannot be renamed into place
        """
        store = self.store
        logger = get_logger()

        if not store.lock_path.exists():
            raise AlreadyFinalized(f"{store.target} is already finalized")

        self._check_complete(expected_size)

        lock = FinalizeLock(store.lock_path)
        if not lock.acquire():
            logger.log_finalize_contended(store.target)
            return False

        try:
            # Chunks may have been rewritten since the first check
            chunks = self._check_complete(expected_size)
            logger.log_finalize_start(store.target, len(chunks))

            temp_dir = store.work_dir if store.work_root is None else store.target.parent
            with AtomicFileWriter(
                store.target,
                temp_dir=temp_dir,
                on_discard=DiscardPolicy.ROLLBACK,
                fsync=store.fsync,
            ) as writer:
                stream = writer.stream
                for chunk in chunks:
                    with open(chunk.path, "rb") as src:
                        stream.seek(chunk.offset)
                        shutil.copyfileobj(src, stream, store.copy_buffer_size)
                size = stream.seek(0, 2)
                writer.commit()

            # Lock file goes first; chunks only disappear once it is gone
            store.lock_path.unlink()
            paths.delete(store.work_dir)
        except PartfileError as e:
            logger.log_error(store.target, str(e))
            raise
        finally:
            lock.release()

        logger.log_finalize_done(store.target, size)
        return True

    def _check_complete(self, expected_size: Optional[int]):
        try:
            chunks = self.store.list_chunks()
            missing = self.store.missing_ranges(chunks, total_size=expected_size)
            if missing:
                raise IncompleteFile(missing)
        except (NotInitialized, IncompleteFile):
            # Finalized meanwhile by another caller
            if not self.store.lock_path.exists():
                raise AlreadyFinalized(f"{self.store.target} is already finalized")
            raise
        return chunks
