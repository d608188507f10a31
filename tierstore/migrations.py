"""Versioned per-model migrations.

Each registration is a single step ``(model, from_version) -> to_version``.
Migrating across several versions follows the chain one step at a time until
no step is registered for the current version or the target is reached, so
running a migration over data that is already current does nothing.
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import msgspec

from tierstore.exceptions import NotFoundError

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Any]


class MigrationStep(msgspec.Struct, frozen=True):
    """One registered transform between adjacent versions of a model."""

    model: str
    from_version: int
    to_version: int
    transform: Transform


@dataclass
class MigrationStats:
    """Statistics for a bulk migration run."""

    model: str
    from_version: int
    started_at: datetime
    completed_at: datetime | None = None
    total_entries: int = 0
    migrated_entries: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration(self) -> float | None:
        """Get migration duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "model": self.model,
            "from_version": self.from_version,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
            "duration": self.duration,
            "total_entries": self.total_entries,
            "migrated_entries": self.migrated_entries,
            "errors": self.errors,
        }


class MigrationRegistry:
    """Registered migration steps, keyed by ``(model, from_version)``."""

    def __init__(self):
        self._steps: dict[tuple[str, int], MigrationStep] = {}

    def register(
        self, model: str, from_version: int, to_version: int, transform: Transform
    ) -> MigrationStep:
        """Register the step from one version of a model to the next."""
        if to_version <= from_version:
            raise ValueError(
                f"Migration for {model} must move forward, got {from_version} -> {to_version}"
            )
        if (model, from_version) in self._steps:
            logger.warning("Replacing migration %s v%d", model, from_version)
        step = MigrationStep(model, from_version, to_version, transform)
        self._steps[(model, from_version)] = step
        return step

    def get_step(self, model: str, from_version: int) -> MigrationStep:
        """Get the step registered for a model at a version."""
        try:
            return self._steps[(model, from_version)]
        except KeyError:
            raise NotFoundError("Migration", f"{model} v{from_version}") from None

    def has_step(self, model: str, version: int) -> bool:
        return (model, version) in self._steps

    def models(self) -> list[str]:
        return sorted({model for model, _ in self._steps})

    def steps_for(self, model: str) -> list[MigrationStep]:
        """Steps of one model in version order."""
        return sorted(
            (step for (m, _), step in self._steps.items() if m == model),
            key=lambda step: step.from_version,
        )

    def latest_version(self, model: str, default: int = 1) -> int:
        """Highest version any registered step of the model produces."""
        steps = self.steps_for(model)
        if not steps:
            return default
        return max(step.to_version for step in steps)

    def needs_migration(self, model: str | None, version: int) -> bool:
        """Whether an entry tagged with this model and version can be upgraded."""
        return model is not None and self.has_step(model, version)

    async def migrate(
        self,
        model: str,
        value: Any,
        from_version: int,
        to_version: int | None = None,
    ) -> tuple[Any, int]:
        """Apply steps from ``from_version`` until the chain ends or the target is reached.

        Transforms may be plain functions or coroutine functions. Returns the
        migrated value and the version it ended at.
        """
        version = from_version
        while to_version is None or version < to_version:
            step = self._steps.get((model, version))
            if step is None:
                break
            if to_version is not None and step.to_version > to_version:
                break
            result = step.transform(value)
            if inspect.isawaitable(result):
                result = await result
            value, version = result, step.to_version
            logger.debug("Migrated %s v%d -> v%d", model, step.from_version, version)
        return value, version
