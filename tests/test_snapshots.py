"""Tests for snapshots and diffs."""

import pytest

from tierstore.exceptions import NotFoundError
from tierstore.snapshots import SnapshotManager, diff_data


class TestDiff:
    """Test structural comparison."""

    def test_added_removed_changed(self):
        old = {"same": 1, "gone": 2, "edited": {"a": [1]}}
        new = {"same": 1, "edited": {"a": [1, 2]}, "fresh": 3}

        diff = diff_data(old, new)

        assert diff.added == ["fresh"]
        assert diff.removed == ["gone"]
        assert diff.changed == ["edited"]
        assert not diff.is_empty

    def test_symmetry(self):
        first = {"x": 1, "y": 2}
        second = {"y": 3, "z": 4}

        forward = diff_data(first, second)
        backward = diff_data(second, first)

        assert forward.added == backward.removed
        assert forward.removed == backward.added
        assert forward.changed == backward.changed == ["y"]

    def test_identical(self):
        assert diff_data({"a": {1, 2}}, {"a": {2, 1}}).is_empty


class TestSnapshotManager:
    """Test capture, lookup and isolation."""

    def test_capture_is_deep_copy(self):
        manager = SnapshotManager()
        live = {"user": {"roles": ["admin"]}}

        snapshot = manager.save("s1", live, version=2)
        live["user"]["roles"].append("owner")

        assert snapshot.data == {"user": {"roles": ["admin"]}}
        assert snapshot.version == 2
        assert "s1" in manager

    def test_restore_data_is_private_copy(self):
        manager = SnapshotManager()
        manager.save("s1", {"k": [1]}, version=1)

        restored = manager.restore_data("s1")
        restored["k"].append(2)

        assert manager.get("s1").data == {"k": [1]}

    def test_unknown_snapshot(self):
        manager = SnapshotManager()

        with pytest.raises(NotFoundError, match="Snapshot not found: nope"):
            manager.get("nope")
        with pytest.raises(NotFoundError):
            manager.compare("nope", "nope")

    def test_list_and_delete(self):
        manager = SnapshotManager()
        manager.save("a", {}, version=1)
        manager.save("b", {}, version=1)

        assert [s.name for s in manager.list()] == ["a", "b"]

        manager.delete("a")
        assert len(manager) == 1
        with pytest.raises(NotFoundError):
            manager.delete("a")
