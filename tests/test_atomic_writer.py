"""Test AtomicFileWriter functionality."""

import gc
import io
import json
import os
from unittest.mock import patch

import pytest

from partfile.errors import AlreadyFinalized, CommitFailed
from partfile.utils.atomic_writer import (
    AtomicFileWriter,
    DiscardPolicy,
    atomic_write_json,
    atomic_write_text,
)


def _temp_files(directory):
    return [p for p in directory.iterdir() if p.name.endswith(".tmp")]


class TestAtomicFileWriter:
    """Tests for the temp file + rename writer."""

    def test_temp_file_created_in_temp_dir(self, tmp_path):
        """Test the temporary file lives in the requested directory."""
        writer = AtomicFileWriter(tmp_path / "out.bin", temp_dir=tmp_path)

        assert writer.temp_path.parent == tmp_path
        assert writer.temp_path.exists()
        assert writer.temp_path.name.startswith(".out.bin.")
        writer.rollback()

    def test_commit_publishes_content(self, tmp_path):
        """Test commit renames the temp file to the final path."""
        target = tmp_path / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)

        assert writer.write_bytes(b"hello") == 5
        assert not target.exists()
        assert writer.commit() is True

        assert target.read_bytes() == b"hello"
        assert _temp_files(tmp_path) == []

    def test_commit_replaces_existing_file(self, tmp_path):
        """Test commit overwrites a previous file atomically."""
        target = tmp_path / "out.bin"
        target.write_bytes(b"old content")

        writer = AtomicFileWriter(target, temp_dir=tmp_path)
        writer.write_bytes(b"new")
        writer.commit()

        assert target.read_bytes() == b"new"

    def test_commit_is_idempotent(self, tmp_path):
        """Test a second commit is a no-op."""
        writer = AtomicFileWriter(tmp_path / "out.bin", temp_dir=tmp_path)
        writer.write_bytes(b"x")

        assert writer.commit() is True
        assert writer.commit() is False
        assert writer.rollback() is False
        assert (tmp_path / "out.bin").read_bytes() == b"x"

    def test_write_after_commit_fails(self, tmp_path):
        """Test writes are refused once committed."""
        writer = AtomicFileWriter(tmp_path / "out.bin", temp_dir=tmp_path)
        writer.commit()

        with pytest.raises(AlreadyFinalized):
            writer.write_bytes(b"late")
        with pytest.raises(AlreadyFinalized):
            writer.stream

    def test_rollback_discards_temp_file(self, tmp_path):
        """Test rollback deletes the temp file and leaves the target alone."""
        target = tmp_path / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)
        writer.write_bytes(b"discard me")

        assert writer.rollback() is True
        assert writer.rollback() is False
        assert not target.exists()
        assert _temp_files(tmp_path) == []
        with pytest.raises(AlreadyFinalized):
            writer.write_bytes(b"late")

    def test_write_bytes_limit(self, tmp_path):
        """Test limit truncates a byte buffer."""
        target = tmp_path / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)

        assert writer.write_bytes(b"hi there", 3) == 3
        writer.commit()

        assert target.read_bytes() == b"hi "

    def test_write_from_stream_with_limit(self, tmp_path):
        """Test copying from a stream stops at the limit and advances it."""
        target = tmp_path / "out.bin"
        source = io.BytesIO(b"0123456789")
        writer = AtomicFileWriter(target, temp_dir=tmp_path)

        assert writer.write_from(source, 4, buffer_size=3) == 4
        writer.commit()

        assert target.read_bytes() == b"0123"
        assert source.tell() == 4

    def test_write_from_stream_until_eof(self, tmp_path):
        """Test copying a whole stream with a small buffer."""
        target = tmp_path / "out.bin"
        payload = os.urandom(10_000)
        writer = AtomicFileWriter(target, temp_dir=tmp_path)

        assert writer.write_from(io.BytesIO(payload), buffer_size=1024) == len(payload)
        writer.commit()

        assert target.read_bytes() == payload

    def test_write_dispatches_on_content(self, tmp_path):
        """Test write() accepts both buffers and streams."""
        target = tmp_path / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)

        writer.write(b"abc")
        writer.write(io.BytesIO(b"defgh"), 2)
        writer.commit()

        assert target.read_bytes() == b"abcde"

    def test_write_rejects_text(self, tmp_path):
        """Test write() refuses content that is neither bytes nor a stream."""
        writer = AtomicFileWriter(tmp_path / "out.bin", temp_dir=tmp_path)

        with pytest.raises(TypeError, match="str"):
            writer.write("text")

        writer.rollback()
        assert _temp_files(tmp_path) == []

    def test_commit_failure_raises(self, tmp_path):
        """Test a failed rename raises CommitFailed and cleans up."""
        target = tmp_path / "missing_dir" / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)
        writer.write_bytes(b"data")

        with pytest.raises(CommitFailed):
            writer.commit()

        assert writer.finalized
        assert _temp_files(tmp_path) == []
        assert writer.commit() is False

    def test_commit_failure_chains_os_error(self, tmp_path):
        """Test CommitFailed keeps the original OSError."""
        writer = AtomicFileWriter(tmp_path / "out.bin", temp_dir=tmp_path)

        with patch("partfile.utils.atomic_writer.os.replace", side_effect=PermissionError("denied")):
            with pytest.raises(CommitFailed) as exc_info:
                writer.commit()

        assert isinstance(exc_info.value.__cause__, PermissionError)
        assert not (tmp_path / "out.bin").exists()


class TestDiscardPolicy:
    """Tests for what happens when a writer is closed without a decision."""

    def test_default_policy_rolls_back(self, tmp_path):
        """Test an abandoned default writer leaves the target untouched."""
        target = tmp_path / "out.bin"
        target.write_bytes(b"original")

        with AtomicFileWriter(target, temp_dir=tmp_path) as writer:
            writer.write_bytes(b"never published")

        assert target.read_bytes() == b"original"
        assert _temp_files(tmp_path) == []

    def test_commit_policy_publishes_on_close(self, tmp_path):
        """Test a commit-on-discard writer publishes when closed."""
        target = tmp_path / "out.bin"
        writer = AtomicFileWriter(target, temp_dir=tmp_path, on_discard=DiscardPolicy.COMMIT)
        writer.write_bytes(b"durable")

        assert writer.close() is True
        assert target.read_bytes() == b"durable"
        assert writer.close() is False

    def test_dropped_writer_rolls_back(self, tmp_path):
        """Test a writer garbage collected while open removes its temp file."""
        target = tmp_path / "final"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)
        writer.write_bytes(b"x")
        assert len(_temp_files(tmp_path)) == 1

        del writer
        gc.collect()

        assert _temp_files(tmp_path) == []
        assert not target.exists()

    def test_dropped_commit_writer_publishes(self, tmp_path):
        """Test a commit-on-discard writer publishes when garbage collected."""
        target = tmp_path / "final"
        writer = AtomicFileWriter(target, temp_dir=tmp_path, on_discard=DiscardPolicy.COMMIT)
        writer.write_bytes(b"kept")

        del writer
        gc.collect()

        assert target.read_bytes() == b"kept"
        assert _temp_files(tmp_path) == []

    def test_dropped_finalized_writer_is_untouched(self, tmp_path):
        """Test collecting a committed writer does nothing more."""
        target = tmp_path / "final"
        writer = AtomicFileWriter(target, temp_dir=tmp_path)
        writer.write_bytes(b"done")
        writer.commit()

        del writer
        gc.collect()

        assert target.read_bytes() == b"done"

    def test_exception_always_rolls_back(self, tmp_path):
        """Test an exception inside the block discards even with COMMIT policy."""
        target = tmp_path / "out.bin"

        with pytest.raises(RuntimeError):
            with AtomicFileWriter(target, temp_dir=tmp_path, on_discard=DiscardPolicy.COMMIT) as writer:
                writer.write_bytes(b"partial")
                raise RuntimeError("boom")

        assert not target.exists()
        assert _temp_files(tmp_path) == []


class TestHelpers:
    """Tests for the one-shot helpers."""

    def test_atomic_write_text(self, tmp_path):
        """Test text helper creates parent directories."""
        target = tmp_path / "a" / "b" / "note.txt"

        atomic_write_text(target, "héllo")

        assert target.read_text(encoding="utf-8") == "héllo"
        assert _temp_files(target.parent) == []

    def test_atomic_write_json(self, tmp_path):
        """Test JSON helper round trip."""
        target = tmp_path / "data.json"

        atomic_write_json(target, {"finished": False, "metadata": {"k": 1}})

        assert json.loads(target.read_text()) == {"finished": False, "metadata": {"k": 1}}
