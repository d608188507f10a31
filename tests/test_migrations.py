"""Tests for the migration registry."""

import pytest

from tierstore.exceptions import NotFoundError
from tierstore.migrations import MigrationRegistry


def add_email(user):
    return {**user, "email": None}


def split_name(user):
    first, _, last = user.pop("name").partition(" ")
    return {**user, "first": first, "last": last}


@pytest.fixture
def registry():
    registry = MigrationRegistry()
    registry.register("user", 1, 2, add_email)
    registry.register("user", 2, 3, split_name)
    return registry


class TestMigrationRegistry:
    """Test step registration and chained migration."""

    def test_latest_version(self, registry):
        assert registry.latest_version("user") == 3
        assert registry.latest_version("unknown") == 1

    def test_steps_for(self, registry):
        assert [s.from_version for s in registry.steps_for("user")] == [1, 2]
        assert registry.models() == ["user"]

    def test_backward_step_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register("user", 3, 2, add_email)

    def test_get_step_missing(self, registry):
        with pytest.raises(NotFoundError, match="user v9"):
            registry.get_step("user", 9)

    def test_needs_migration(self, registry):
        assert registry.needs_migration("user", 1)
        assert not registry.needs_migration("user", 3)
        assert not registry.needs_migration(None, 1)

    @pytest.mark.asyncio
    async def test_chain(self, registry):
        value, version = await registry.migrate("user", {"name": "Ada Lovelace"}, 1)

        assert version == 3
        assert value == {"email": None, "first": "Ada", "last": "Lovelace"}

    @pytest.mark.asyncio
    async def test_stops_at_target(self, registry):
        value, version = await registry.migrate("user", {"name": "Ada"}, 1, to_version=2)

        assert version == 2
        assert value == {"name": "Ada", "email": None}

    @pytest.mark.asyncio
    async def test_current_data_is_untouched(self, registry):
        """Migrating data already at the latest version is a no-op."""
        current = {"email": "a@b.c", "first": "Ada", "last": ""}

        value, version = await registry.migrate("user", current, 3)

        assert value is current
        assert version == 3

    @pytest.mark.asyncio
    async def test_async_transform(self):
        registry = MigrationRegistry()

        async def bump(value):
            return value + 1

        registry.register("counter", 1, 2, bump)

        assert await registry.migrate("counter", 41, 1) == (42, 2)
