"""Small filesystem helpers."""

import shutil
from pathlib import Path
from typing import Union


def mkdir(path: Union[str, Path]) -> Path:
    """Create a directory and its parents if they don't exist."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def delete(path: Union[str, Path]) -> bool:
    """Delete a file or a directory tree.

    Returns:
        True if something was deleted, False if the path did not exist
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return False

    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True
