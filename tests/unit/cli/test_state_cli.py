"""Unit tests — state list / state show."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from infra_reconciler.cli.main import app

runner = CliRunner()


@pytest.mark.unit
class TestStateCommands:
    def test_list_empty(self, config_file: Path) -> None:
        result = runner.invoke(app, ["state", "list", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "State is empty." in result.output

    def test_list_after_apply(self, config_file: Path) -> None:
        runner.invoke(app, ["apply", "--config", str(config_file)])
        result = runner.invoke(app, ["state", "list", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Applied state" in result.output

    def test_show_record(self, config_file: Path) -> None:
        runner.invoke(app, ["apply", "--config", str(config_file)])
        result = runner.invoke(
            app, ["state", "show", "secret/db-password", "--config", str(config_file)]
        )
        assert result.exit_code == 0, result.output
        assert "remote_id" in result.output
        assert '"value"' not in result.output

    def test_show_unknown_exits_1(self, config_file: Path) -> None:
        result = runner.invoke(
            app, ["state", "show", "secret/nope", "--config", str(config_file)]
        )
        assert result.exit_code == 1
        assert "No applied state" in result.output


@pytest.mark.unit
def test_no_args_prints_help() -> None:
    result = runner.invoke(app, [])
    assert "plan" in result.output
    assert "drift" in result.output


@pytest.mark.unit
def test_plan_json_is_valid_json(config_file: Path) -> None:
    result = runner.invoke(app, ["plan", "--config", str(config_file), "--json"])
    assert json.loads(result.stdout)["summary"]["update"] == 0
