"""Point-in-time snapshots of the decoded data set and their comparison."""

import logging
from collections.abc import Mapping
from copy import deepcopy
from typing import Any

from tierstore.exceptions import NotFoundError
from tierstore.models import Snapshot, SnapshotDiff, now_ms

logger = logging.getLogger(__name__)


def diff_data(old: Mapping[str, Any], new: Mapping[str, Any]) -> SnapshotDiff:
    """Keys added in ``new``, removed from ``old``, and changed between them."""
    return SnapshotDiff(
        added=sorted(key for key in new if key not in old),
        removed=sorted(key for key in old if key not in new),
        changed=sorted(key for key in old if key in new and old[key] != new[key]),
    )


class SnapshotManager:
    """Named snapshots, deep-copied on the way in and on the way out."""

    def __init__(self):
        self._snapshots: dict[str, Snapshot] = {}

    def save(self, name: str, data: Mapping[str, Any], version: int) -> Snapshot:
        """Capture data under a name, replacing any snapshot of the same name."""
        snapshot = Snapshot(
            name=name, data=deepcopy(dict(data)), timestamp=now_ms(), version=version
        )
        if name in self._snapshots:
            logger.debug("Replacing snapshot %s", name)
        self._snapshots[name] = snapshot
        return snapshot

    def get(self, name: str) -> Snapshot:
        """Get a snapshot by name."""
        try:
            return self._snapshots[name]
        except KeyError:
            raise NotFoundError("Snapshot", name) from None

    def restore_data(self, name: str) -> dict[str, Any]:
        """A private copy of a snapshot's data, safe to hand to live state."""
        return deepcopy(self.get(name).data)

    def delete(self, name: str) -> None:
        self.get(name)
        del self._snapshots[name]

    def list(self) -> list[Snapshot]:
        """All snapshots, oldest first."""
        return sorted(self._snapshots.values(), key=lambda s: s.timestamp)

    def compare(self, first: str, second: str) -> SnapshotDiff:
        """Compare two named snapshots."""
        return diff_data(self.get(first).data, self.get(second).data)

    def __contains__(self, name: str) -> bool:
        return name in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)
