"""Tests for the tierstore command line."""

import asyncio
import json

import msgspec

from tierstore import __version__
from tierstore.config import StorageConfig
from tierstore.storage import TieredStorage


class TestGlobalOptions:
    """Test top-level options and command registration."""

    def test_all_commands_registered(self, cli_runner):
        result = cli_runner.invoke(["--help"])

        assert result.exit_code == 0
        for command in ["inspect", "export", "import", "visualize", "benchmark", "purge", "help"]:
            assert command in result.output

    def test_help_command(self, cli_runner):
        result = cli_runner.invoke(["help"])

        assert result.exit_code == 0
        assert "benchmark" in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(["--version"])

        assert __version__ in result.output

    def test_unknown_command(self, cli_runner):
        result = cli_runner.invoke(["frobnicate"])

        assert result.exit_code != 0

    def test_bad_config_file(self, cli_runner, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("- not a mapping\n")

        result = cli_runner.invoke(["--config", str(config), "inspect"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output


class TestInspect:
    def test_empty_store(self, cli_runner):
        result = cli_runner.invoke(["inspect"])

        assert result.exit_code == 0
        assert "Storage Inspector" in result.output
        assert "sqlite" in result.output

    def test_lists_keys(self, cli_runner, seeded):
        result = cli_runner.invoke(["inspect"])

        assert result.exit_code == 0
        assert "user:1" in result.output
        assert "counter" in result.output

    def test_namespace_option(self, cli_runner, seeded):
        result = cli_runner.invoke(["--namespace", "other", "inspect"])

        assert result.exit_code == 0
        assert "user:1" not in result.output

    def test_shows_backend_and_cache_statistics(self, cli_runner, seeded):
        result = cli_runner.invoke(["inspect"])

        assert result.exit_code == 0
        assert "Stored rows" in result.output
        assert "Database size" in result.output
        assert "Cache hits / misses" in result.output


class TestExportImport:
    """Test moving data through files."""

    def test_export_default_file(self, cli_runner, seeded, tmp_path):
        result = cli_runner.invoke(["export"])

        assert result.exit_code == 0
        assert "Exported 5 items" in result.output
        exported = json.loads((tmp_path / "storage-export.json").read_text())
        assert exported["counter"] == 42
        assert exported["flags"]["__kind__"] == "set"

    def test_export_msgpack(self, cli_runner, seeded, tmp_path):
        output = tmp_path / "dump.msgpack"

        result = cli_runner.invoke(["export", str(output)])

        assert result.exit_code == 0
        assert msgspec.msgpack.decode(output.read_bytes())["motto"] == "hello"

    def test_import(self, cli_runner, read_back, tmp_path):
        source = tmp_path / "input.json"
        source.write_text(json.dumps({"a": 1, "b": {"nested": True}}))

        result = cli_runner.invoke(["import", str(source)])

        assert result.exit_code == 0
        assert "Imported 2 items" in result.output
        assert read_back() == {"a": 1, "b": {"nested": True}}

    def test_round_trip(self, cli_runner, seeded, tmp_path):
        output = tmp_path / "backup.ndjson"
        assert cli_runner.invoke(["export", str(output)]).exit_code == 0

        result = cli_runner.invoke(["--namespace", "copy", "import", str(output)])

        assert result.exit_code == 0
        assert "Imported 5 items" in result.output

    def test_import_missing_file(self, cli_runner):
        result = cli_runner.invoke(["import", "does-not-exist.json"])

        assert result.exit_code == 1
        assert "valid input file" in result.output

    def test_import_without_file(self, cli_runner):
        result = cli_runner.invoke(["import"])

        assert result.exit_code == 1

    def test_import_invalid_json(self, cli_runner, read_back, tmp_path):
        source = tmp_path / "broken.json"
        source.write_text("{not json")

        result = cli_runner.invoke(["import", str(source)])

        assert result.exit_code == 1
        assert "Invalid import file" in result.output
        assert read_back() == {}

    def test_import_rejects_undecodable_file(self, cli_runner, read_back, tmp_path):
        source = tmp_path / "latin1.json"
        source.write_bytes(b"\xff\xfe\x00bad")

        result = cli_runner.invoke(["import", str(source)])

        assert result.exit_code == 1
        assert "Invalid import file" in result.output
        assert read_back() == {}


class TestVisualize:
    def test_empty(self, cli_runner):
        result = cli_runner.invoke(["visualize"])

        assert result.exit_code == 0
        assert "Storage is empty" in result.output

    def test_type_distribution(self, cli_runner, seeded):
        result = cli_runner.invoke(["visualize"])

        assert result.exit_code == 0
        assert "object" in result.output
        assert "number" in result.output
        assert "string" in result.output
        assert "set" in result.output


class TestBenchmark:
    def test_benchmark(self, cli_runner, read_back):
        result = cli_runner.invoke(["benchmark", "-n", "5"])

        assert result.exit_code == 0
        assert "Benchmark (5 iterations)" in result.output
        assert read_back() == {}

    def test_keep(self, cli_runner, read_back):
        result = cli_runner.invoke(["benchmark", "-n", "3", "--keep"])

        assert result.exit_code == 0
        assert len(read_back()) == 3

    def test_rejects_zero_iterations(self, cli_runner):
        result = cli_runner.invoke(["benchmark", "-n", "0"])

        assert result.exit_code == 2


class TestPurge:
    def test_purge_empty_store(self, cli_runner):
        result = cli_runner.invoke(["purge"])

        assert result.exit_code == 0
        assert "Purged 0 expired entries" in result.output

    def test_purge_removes_expired_rows(self, cli_runner, data_dir, read_back):
        async def seed():
            async with TieredStorage(StorageConfig(data_dir=str(data_dir))) as store:
                await store.write("live", 1)
                await store.write("gone", 2, ttl_seconds=0)

        asyncio.run(seed())

        result = cli_runner.invoke(["purge"])

        assert result.exit_code == 0
        assert "Purged 1 expired entries" in result.output
        assert read_back() == {"live": 1}
