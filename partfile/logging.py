"""Operation logging for debugging concurrent writers."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# Log directory
LOG_DIR = Path.home() / ".partfile" / "logs"


def ensure_log_dir(log_dir: Path = LOG_DIR) -> Path:
    """Create logs directory if it doesn't exist."""
    if not log_dir.exists():
        log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


class OperationLogger:
    """Logs chunk writes and finalize attempts to a JSONL file.

    Several processes may log about the same target; every entry carries
    the pid so their lines can be told apart.
    """

    def __init__(self, log_dir: Union[str, Path, None] = None, enabled: bool = True):
        self.enabled = enabled
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_dir = Path(log_dir) if log_dir else LOG_DIR
        self.log_file = self.log_dir / f"session_{self.session_id}_{os.getpid()}.jsonl"

        if self.enabled:
            try:
                ensure_log_dir(self.log_dir)
            except OSError:
                self.enabled = False

    def log_create(self, target: Path, created: bool, metadata: Optional[dict] = None) -> None:
        """Log a create() call."""
        self._log("create", target=str(target), created=created, metadata=metadata or {})

    def log_chunk_write(self, target: Path, offset: int, size: int) -> None:
        """Log a committed chunk."""
        self._log("chunk_write", target=str(target), offset=offset, size=size)

    def log_finalize_start(self, target: Path, chunks: int) -> None:
        self._log("finalize_start", target=str(target), chunks=chunks)

    def log_finalize_contended(self, target: Path) -> None:
        self._log("finalize_contended", target=str(target))

    def log_finalize_done(self, target: Path, size: int) -> None:
        self._log("finalize_done", target=str(target), size=size)

    def log_cleanup(self, target: Path, removed: bool) -> None:
        self._log("cleanup", target=str(target), removed=removed)

    def log_error(self, target: Path, error: str) -> None:
        """Log error."""
        self._log("error", target=str(target), error=error)

    def _log(self, entry_type: str, **payload) -> None:
        if not self.enabled:
            return
        entry = {
            "type": entry_type,
            "pid": os.getpid(),
            "timestamp": datetime.now().isoformat(),
        }
        entry.update(payload)
        self._write_entry(entry)

    def _write_entry(self, entry: dict) -> None:
        """Write a log entry to file."""
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except Exception:
            pass  # Fail silently - logging should not break the app

    @property
    def log_path(self) -> Path:
        """Return path to current log file."""
        return self.log_file


# Global logger instance
_logger: Optional[OperationLogger] = None


def get_logger() -> OperationLogger:
    """Get or create the global logger instance.

    The default instance is disabled; call init_logger() to turn logging on.
    """
    global _logger
    if _logger is None:
        _logger = OperationLogger(enabled=False)
    return _logger


def init_logger(log_dir: Union[str, Path, None] = None, enabled: bool = True) -> OperationLogger:
    """Initialize the global logger."""
    global _logger
    _logger = OperationLogger(log_dir, enabled=enabled)
    return _logger
