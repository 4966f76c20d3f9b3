"""Tests for the quickrest command line."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from click.testing import CliRunner

from quickrest.agent import ReplayCase
from quickrest.cli.main import EXIT_ERROR, EXIT_FOUND, EXIT_NOT_FOUND, cli
from quickrest.core import Invocation, Sequence, Verdict
from quickrest.generators import parse_operations

ANY_OK = {
    "name": "any-ok",
    "predicate": {"kind": "eventually", "operand": {"kind": "status", "codes": [200]}},
}


@pytest.fixture
def runner(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    # Reports land in the working directory unless --output says otherwise
    monkeypatch.chdir(tmp_path)
    return CliRunner()


@pytest.fixture
def spec_file(tmp_path: Path, openapi_spec: dict[str, Any]) -> Path:
    path = tmp_path / "openapi.yaml"
    path.write_text(yaml.safe_dump(openapi_spec))
    return path


@pytest.fixture
def objective_file(tmp_path: Path) -> Path:
    path = tmp_path / "any-ok.yaml"
    path.write_text(yaml.safe_dump(ANY_OK))
    return path


class TestExplore:
    def test_not_found_in_dry_run(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(
            cli, ["explore", str(spec_file), "--dry-run", "--max-attempts", "5", "--seed", "1"]
        )
        assert result.exit_code == EXIT_NOT_FOUND
        assert "EXHAUSTED" in result.output
        assert "server-error" in result.output

    def test_found_writes_replay_case(
        self, runner: CliRunner, tmp_path: Path, spec_file: Path, objective_file: Path
    ) -> None:
        out = tmp_path / "out"
        result = runner.invoke(
            cli,
            [
                "explore",
                str(spec_file),
                "--objective",
                str(objective_file),
                "--dry-run",
                "--seed",
                "3",
                "--output",
                str(out),
            ],
        )
        assert result.exit_code == EXIT_FOUND, result.output
        assert "FOUND" in result.output
        assert (out / "any-ok.json").exists()
        assert (out / "any-ok.report.json").exists()
        case = ReplayCase.load(out / "any-ok.json")
        assert case.expected is Verdict.SATISFIED
        assert len(case.sequence) == 1

    def test_report_dir_is_default_output(
        self, runner: CliRunner, tmp_path: Path, spec_file: Path, objective_file: Path
    ) -> None:
        args = ["explore", str(spec_file), "--objective", str(objective_file), "--dry-run"]
        result = runner.invoke(cli, args)
        assert result.exit_code == EXIT_FOUND, result.output
        assert (tmp_path / "reports" / "any-ok.json").exists()
        assert (tmp_path / "reports" / "any-ok.report.json").exists()

        config = tmp_path / "quickrest.yaml"
        config.write_text("exploration:\n  report_dir: elsewhere\n")
        result = runner.invoke(cli, ["--config", str(config), *args])
        assert result.exit_code == EXIT_FOUND, result.output
        assert (tmp_path / "elsewhere" / "any-ok.json").exists()

    def test_report_written_when_not_found(
        self, runner: CliRunner, tmp_path: Path, spec_file: Path
    ) -> None:
        result = runner.invoke(cli, ["explore", str(spec_file), "--dry-run", "--max-attempts", "2"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert (tmp_path / "reports" / "server-error.report.json").exists()
        assert not (tmp_path / "reports" / "server-error.json").exists()

    def test_json_format(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(
            cli,
            ["explore", str(spec_file), "--dry-run", "--max-attempts", "2", "--format", "json"],
        )
        assert result.exit_code == EXIT_NOT_FOUND
        data = json.loads(result.output)
        assert data["summary"]["attempts"] == 2
        assert data["summary"]["status"] == "exhausted"

    def test_include_filter(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(
            cli,
            [
                "explore",
                str(spec_file),
                "--dry-run",
                "--max-attempts",
                "3",
                "--include",
                "/admin/*",
                "--format",
                "json",
            ],
        )
        data = json.loads(result.output)
        assert data["coverage"]["covered"] == ["reset"]

    def test_missing_spec(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["explore", str(tmp_path / "missing.yaml"), "--dry-run"])
        assert result.exit_code == EXIT_ERROR
        assert "E1" in result.output

    def test_unknown_operation(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(cli, ["explore", str(spec_file), "--dry-run", "--operation", "nope"])
        assert result.exit_code == EXIT_ERROR

    def test_unknown_objective(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(cli, ["explore", str(spec_file), "--dry-run", "--objective", "nope"])
        assert result.exit_code == EXIT_ERROR
        assert "Unknown behaviour" in result.output

    def test_invalid_settings(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(cli, ["explore", str(spec_file), "--dry-run", "--workers", "0"])
        assert result.exit_code == EXIT_ERROR

    def test_bad_header(self, runner: CliRunner, spec_file: Path) -> None:
        result = runner.invoke(cli, ["explore", str(spec_file), "--dry-run", "-H", "no-colon"])
        assert result.exit_code != 0
        assert "Name: value" in result.output

    def test_config_file(self, runner: CliRunner, tmp_path: Path, spec_file: Path) -> None:
        config = tmp_path / "quickrest.yaml"
        config.write_text("exploration:\n  max_attempts: 4\n  seed: 2\n")
        result = runner.invoke(
            cli, ["--config", str(config), "explore", str(spec_file), "--dry-run", "-f", "json"]
        )
        assert json.loads(result.output)["summary"]["attempts"] == 4


class TestReplayCommand:
    def write_case(self, path: Path, objective: dict[str, Any], operations: list[Any]) -> Path:
        case = ReplayCase(
            objective=objective,
            expected=Verdict.SATISFIED,
            sequence=Sequence((Invocation("reset"),)),
            operations=operations,
        )
        return case.save(path)

    def test_pass(self, runner: CliRunner, tmp_path: Path, openapi_spec: dict[str, Any]) -> None:
        operations = [op for op in parse_operations(openapi_spec) if op.id == "reset"]
        path = self.write_case(tmp_path / "ok.json", ANY_OK, operations)
        result = runner.invoke(cli, ["test", str(path), "--dry-run"])
        assert result.exit_code == EXIT_FOUND
        assert "PASS" in result.output
        assert "1/1 reproduced" in result.output

    def test_mismatch(self, runner: CliRunner, tmp_path: Path, openapi_spec: dict[str, Any]) -> None:
        operations = [op for op in parse_operations(openapi_spec) if op.id == "reset"]
        objective = {"behaviour": "server-error", "operation": None}
        path = self.write_case(tmp_path / "500.json", objective, operations)
        result = runner.invoke(cli, ["test", str(path), "--dry-run"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert "MISMATCH" in result.output

    def test_unreadable_case(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["test", str(tmp_path / "missing.json"), "--dry-run"])
        assert result.exit_code == EXIT_ERROR
        assert "ERROR" in result.output


class TestBehavioursCommand:
    def test_lists_behaviours(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["behaviours"])
        assert result.exit_code == 0
        for name in ("server-error", "response-equality", "state-mutation"):
            assert name in result.output
