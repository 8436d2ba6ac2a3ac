"""
Test suite for CLI interface

Tests CLI commands against a file-backed context store.
"""

import json

import pytest
from click.testing import CliRunner

from throttlekit.cli import cli
from throttlekit.config import StoreConfig, ThrottleSettings, set_config
from throttlekit.stores import ContextEntry, FileStore
from throttlekit.timers import epoch_ms


@pytest.fixture
def file_settings(tmp_path):
    settings = ThrottleSettings(store=StoreConfig(backend="file", path=str(tmp_path)))
    set_config(settings)
    return settings


@pytest.fixture
def populated_store(tmp_path, file_settings):
    store = FileStore(str(tmp_path))
    now = epoch_ms()
    store.set("_ctx.live", ContextEntry(3, now).dumps())
    store.set("_ctx.dead", ContextEntry(5, now - 3_600_000).dumps())
    store.set("_ctx.bad", "not json")
    store.set("other.live", ContextEntry(9, now).dumps())
    return store


class TestCLICommands:
    """Test CLI command functionality"""

    def setup_method(self):
        """Setup test fixtures"""
        self.runner = CliRunner()

    def test_cli_group_help(self):
        """Test CLI group help command"""
        result = self.runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "client-side admission control" in result.output
        assert "contexts" in result.output
        assert "sweep" in result.output
        assert "config" in result.output

    def test_cli_version(self):
        """Test CLI version display"""
        result = self.runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestConfigCommand:
    """Test config command"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_config_without_show(self, file_settings):
        result = self.runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "Use --show" in result.output

    def test_config_show_yaml(self, file_settings):
        result = self.runner.invoke(cli, ["config", "--show"])

        assert result.exit_code == 0
        assert "rate: 40" in result.output
        assert "backend: file" in result.output

    def test_config_show_json_masks_password(self):
        set_config(ThrottleSettings(store=StoreConfig(backend="redis", password="secret")))

        result = self.runner.invoke(cli, ["config", "--show", "--format", "json"])

        assert result.exit_code == 0
        assert "secret" not in result.output
        assert '"password": "********"' in result.output

    def test_config_file_option(self, tmp_path):
        config_file = tmp_path / "custom.yml"
        config_file.write_text("throttle:\n  rate: 12\n")

        result = self.runner.invoke(
            cli, ["--config-file", str(config_file), "config", "--show"]
        )

        assert result.exit_code == 0
        assert "rate: 12" in result.output


class TestContextCommands:
    """Test contexts and sweep commands"""

    def setup_method(self):
        self.runner = CliRunner()

    def test_contexts_empty(self, file_settings):
        result = self.runner.invoke(cli, ["contexts"])

        assert result.exit_code == 0
        assert "No context entries under '_ctx'" in result.output

    def test_contexts_json(self, populated_store):
        result = self.runner.invoke(cli, ["contexts", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        statuses = {row["key"]: row["status"] for row in data["contexts"]}
        assert statuses == {
            "_ctx.bad": "malformed",
            "_ctx.dead": "stale",
            "_ctx.live": "live",
        }
        assert data["aggregate"] == 3

    def test_contexts_text(self, populated_store):
        result = self.runner.invoke(cli, ["contexts"])

        assert result.exit_code == 0
        assert "_ctx.bad  malformed" in result.output
        assert "Aggregate concurrency: 3" in result.output

    def test_contexts_other_prefix(self, populated_store):
        result = self.runner.invoke(cli, ["contexts", "--prefix", "other", "--json"])

        assert json.loads(result.output)["aggregate"] == 9

    def test_sweep(self, populated_store):
        result = self.runner.invoke(cli, ["sweep"])

        assert result.exit_code == 0
        assert "Removed 2 stale context entries" in result.output
        assert sorted(populated_store.keys()) == ["_ctx.live", "other.live"]

    def test_sweep_custom_expire(self, populated_store):
        result = self.runner.invoke(cli, ["sweep", "--expire", "1"])

        assert result.exit_code == 0
        assert "_ctx.dead" in result.output

    def test_store_unavailable(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        set_config(
            ThrottleSettings(
                store=StoreConfig(backend="file", path=str(blocker / "nested"))
            )
        )

        result = self.runner.invoke(cli, ["contexts"])

        assert result.exit_code != 0
        assert "Store unavailable" in result.output
