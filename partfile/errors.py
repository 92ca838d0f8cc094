"""Exceptions raised by partfile operations."""


class PartfileError(Exception):
    """Base class for all partfile errors."""
    pass


class AlreadyFinalized(PartfileError):
    """Operation attempted on a writer or logical file past its commit point."""
    pass


class NotInitialized(PartfileError):
    """Write or listing attempted without a working directory.

    Raised when create() was never called, or when a finalize already
    removed the working directory.
    """
    pass


class IncompleteFile(PartfileError):
    """Finalize attempted while byte ranges are still missing."""

    def __init__(self, missing):
        self.missing = list(missing)
        ranges = ", ".join(f"[{m.offset}, {m.offset + m.size})" for m in self.missing)
        super().__init__(f"Cannot finalize, missing byte ranges: {ranges}")


class CommitFailed(PartfileError):
    """The atomic rename of a temporary file to its final path failed."""
    pass
