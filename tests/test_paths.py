"""Test filesystem helpers."""

from partfile.utils import paths


def test_delete_on_nothing(tmp_path):
    """Test deleting a missing path reports False."""
    assert paths.delete(tmp_path / "foo") is False


def test_create_folder(tmp_path):
    """Test recursive directory creation."""
    target = tmp_path / "foo" / "bar" / "xxx"

    assert paths.mkdir(target) == target
    assert target.is_dir()
    # Idempotent
    paths.mkdir(target)
    assert target.is_dir()


def test_delete_file(tmp_path):
    """Test deleting a single file."""
    target = tmp_path / "xxx"
    target.touch()

    assert paths.delete(target) is True
    assert not target.exists()


def test_recursive_delete(tmp_path):
    """Test deleting a populated directory tree."""
    root = tmp_path / "tmp"
    paths.mkdir(root / "foo" / "bar" / "xxx")
    (root / "xxx").touch()
    (root / "foo" / "bar" / "file").write_bytes(b"data")

    assert paths.delete(root) is True
    assert not root.exists()
