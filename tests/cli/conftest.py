"""Pytest configuration and fixtures for CLI tests."""

import asyncio

import pytest
from click.testing import CliRunner

from tierstore.config import StorageConfig
from tierstore.storage import TieredStorage


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "cli-data"
    path.mkdir()
    return path


@pytest.fixture
def cli_runner(data_dir):
    """Click CLI test runner pointed at a temporary data directory."""

    class TierStoreCliRunner(CliRunner):
        def invoke(self, args, **kwargs):  # type: ignore
            from tierstore.cli.main import cli

            if isinstance(args, list):
                return super().invoke(cli, ["--data-dir", str(data_dir), *args], **kwargs)
            return super().invoke(args, **kwargs)

    return TierStoreCliRunner()


@pytest.fixture
def seeded(data_dir):
    """Store a few values of different types where the CLI will find them."""
    data = {
        "user:1": {"name": "Ada", "roles": ["admin"]},
        "user:2": {"name": "Grace", "roles": []},
        "counter": 42,
        "motto": "hello",
        "flags": {"a", "b"},
    }

    async def seed():
        async with TieredStorage(StorageConfig(data_dir=str(data_dir))) as store:
            await store.import_all(data)

    asyncio.run(seed())
    return data


@pytest.fixture
def read_back(data_dir):
    """Decoded content of the default namespace, read outside the CLI."""

    def read():
        async def export():
            async with TieredStorage(StorageConfig(data_dir=str(data_dir))) as store:
                return await store.export_all()

        return asyncio.run(export())

    return read
