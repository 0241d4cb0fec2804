"""Tests for the warporch CLI."""

import json

import pytest
import yaml
from click.testing import CliRunner

from warporch.cli import main


@pytest.fixture(autouse=True)
def isolated_home(monkeypatch, tmp_path):
    monkeypatch.setenv("WARPORCH_HOME", str(tmp_path / "home"))


@pytest.fixture
def route_file(tmp_path, route_bytes):
    path = tmp_path / "route.yaml"
    path.write_bytes(route_bytes)
    return path


@pytest.fixture
def core_file(tmp_path, core_bytes):
    path = tmp_path / "core.yaml"
    path.write_bytes(core_bytes)
    return path


@pytest.fixture
def cli():
    return CliRunner()


class TestCheck:
    def test_valid_config(self, cli, route_file):
        result = cli.invoke(main, ["check", str(route_file)])

        assert result.exit_code == 0
        assert "2 chain(s), 1 route(s)" in result.output
        assert "sha256:" in result.output

    def test_invalid_config(self, cli, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("version: warp-route/7\nchains: {}\n")

        result = cli.invoke(main, ["check", str(bad)])

        assert result.exit_code == 1
        assert "SchemaVersionUnsupported" in result.output

    def test_policy_needs_advanced(self, cli, tmp_path, route_doc):
        route_doc["chains"]["holesky"]["gas"] = {"gasLimit": 100}
        path = tmp_path / "gas.yaml"
        path.write_text(yaml.safe_dump(route_doc))

        assert cli.invoke(main, ["check", str(path)]).exit_code == 1
        assert cli.invoke(main, ["check", str(path), "--advanced"]).exit_code == 0


class TestPlan:
    def test_json(self, cli, route_file, core_file):
        result = cli.invoke(main, ["plan", str(route_file), "--core", str(core_file), "--json"])

        assert result.exit_code == 0
        plan = json.loads(result.output)
        assert [s["step_id"] for s in plan["steps"]] == [
            "deploy_warp_route:holesky",
            "deploy_core:tangletestnet",
            "deploy_warp_route:tangletestnet",
            "validate:*",
        ]

    def test_table(self, cli, route_file):
        result = cli.invoke(main, ["plan", str(route_file)])

        assert result.exit_code == 0
        assert "deploy_core:holesky" in result.output

    def test_no_chains(self, cli, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("version: warp-route/1\nchains: {}\n")

        result = cli.invoke(main, ["plan", str(path)])
        assert result.exit_code == 1
        assert "NoChainsDeclared" in result.output


class TestSimulate:
    def test_success(self, cli, route_file, core_file):
        result = cli.invoke(main, ["simulate", str(route_file), "--core", str(core_file), "--job-id", "sim-1"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["job_id"] == "sim-1"
        assert payload["status"] == "succeeded"
        assert payload["validation_report"]["fully_validated"] is True
        assert payload["deployed_addresses"]["holesky"]["mailbox"] == "0x" + "d4" * 20

    def test_malformed(self, cli, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("chains: [")

        result = cli.invoke(main, ["simulate", str(bad)])

        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["status"] == "failed"
        assert payload["error"]["kind"] == "Malformed"


class TestInit:
    def test_writes_defaults(self, cli, tmp_path):
        result = cli.invoke(main, ["init"])

        assert result.exit_code == 0
        written = yaml.safe_load((tmp_path / "home" / "config.yaml").read_text())
        assert written["max_attempts"] == 3

    def test_refuses_to_overwrite(self, cli):
        assert cli.invoke(main, ["init"]).exit_code == 0
        result = cli.invoke(main, ["init"])
        assert result.exit_code == 1
        assert "--force" in result.output
        assert cli.invoke(main, ["init", "--force"]).exit_code == 0

    def test_invalid_settings_abort(self, cli, tmp_path):
        home = tmp_path / "home"
        home.mkdir()
        (home / "config.yaml").write_text("max_attempts: 0\n")

        route = tmp_path / "r.yaml"
        route.write_text("version: warp-route/1\nchains: {}\n")
        result = cli.invoke(main, ["check", str(route)])
        assert result.exit_code == 1
        assert "Invalid settings" in result.output


def test_version(cli):
    result = cli.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "warporch" in result.output
