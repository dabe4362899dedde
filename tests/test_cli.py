"""Tests for the click CLI."""

import sys
from pathlib import Path
from textwrap import dedent

import pytest
from click.testing import CliRunner

from matrixci.cli import cli, find_workflow_files

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")


def _write(tmp_path, body, name="ci.yml"):
    path = tmp_path / name
    path.write_text(dedent(body))
    return path


PASSING = """
    name: Local
    on:
      push:
        branches: [main]
      workflow_dispatch:
    jobs:
      build:
        name: Check
        strategy:
          matrix:
            channel: [stable, nightly]
        steps:
          - run: echo build ${{ matrix.channel }}
      test:
        needs: [build]
        strategy:
          matrix:
            channel: [stable, nightly]
        steps:
          - run: test "$MATRIX_CHANNEL" = "${{ matrix.channel }}"
"""

FAILING = """
    jobs:
      format:
        steps:
          - run: "true"
      build:
        steps:
          - name: Compile
            run: echo compile error >&2; exit 4
      test:
        needs: build
        steps:
          - run: "true"
"""


@pytest.fixture
def runner():
    return CliRunner()


class TestRunCommand:
    def test_passing_workflow_exits_zero(self, runner, tmp_path):
        path = _write(tmp_path, PASSING)
        result = runner.invoke(
            cli, ["run", "--workflow", str(path), "--branch", "main", "--repo-root", str(tmp_path)]
        )
        assert result.exit_code == 0, result.output
        assert "RUN STARTED" in result.output
        assert "Jobs: 4" in result.output
        assert "Check (stable): SUCCESS" in result.output
        assert "RUN SUCCEEDED" in result.output

    def test_failing_workflow_exits_one_and_skips_dependents(self, runner, tmp_path):
        path = _write(tmp_path, FAILING)
        result = runner.invoke(
            cli, ["run", "--workflow", str(path), "--branch", "main", "--repo-root", str(tmp_path)]
        )
        assert result.exit_code == 1
        assert "format: SUCCESS" in result.output
        assert "build: FAILED" in result.output
        assert "test: SKIPPED" in result.output
        assert "STEP FAILED: Compile" in result.output
        assert "Exit code: 4" in result.output

    def test_serial_run(self, runner, tmp_path):
        path = _write(tmp_path, PASSING)
        result = runner.invoke(
            cli,
            ["run", "--workflow", str(path), "--branch", "main", "--max-concurrency", "1", "--repo-root", str(tmp_path)],
        )
        assert result.exit_code == 0, result.output

    def test_trigger_mismatch_runs_nothing(self, runner, tmp_path):
        path = _write(tmp_path, PASSING)
        result = runner.invoke(cli, ["run", "--workflow", str(path), "--event", "push", "--branch", "dev"])
        assert result.exit_code == 0
        assert "does not match" in result.output
        assert "RUN STARTED" not in result.output

    def test_cycle_exits_two(self, runner, tmp_path):
        path = _write(
            tmp_path,
            """
            jobs:
              a: {needs: [b], steps: [{run: "true"}]}
              b: {needs: [a], steps: [{run: "true"}]}
            """,
        )
        result = runner.invoke(cli, ["run", "--workflow", str(path), "--branch", "main"])
        assert result.exit_code == 2

    def test_unknown_action_fails_unless_allowed(self, runner, tmp_path):
        path = _write(
            tmp_path,
            """
            jobs:
              a:
                steps:
                  - uses: actions/checkout@v4
            """,
        )
        args = ["run", "--workflow", str(path), "--branch", "main"]
        assert runner.invoke(cli, args).exit_code == 1
        assert runner.invoke(cli, args + ["--allow-unknown-actions"]).exit_code == 0

    def test_invalid_env_config(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("MATRIXCI_FAIL_FAST", "sometimes")
        path = _write(tmp_path, PASSING)
        result = runner.invoke(cli, ["run", "--workflow", str(path), "--branch", "main"])
        assert result.exit_code == 2

    def test_missing_workflow_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["run", "--workflow", str(tmp_path / "nope.yml")])
        assert result.exit_code == 2


class TestPlanAndValidate:
    def test_plan_prints_stages(self, runner):
        result = runner.invoke(cli, ["plan", "--workflow", str(EXAMPLES / "ci.yml")])
        assert result.exit_code == 0, result.output
        assert "Continuous Integration: 6 job(s)" in result.output
        assert "=== Stage 1 ===" in result.output
        assert "=== Stage 2 ===" in result.output
        assert "test (rust=stable)  <- build (rust=stable), build (rust=nightly)" in result.output

    def test_validate_ok(self, runner):
        result = runner.invoke(cli, ["validate", "--workflow", str(EXAMPLES / "ci.yml")])
        assert result.exit_code == 0
        assert "OK (3 job(s), 6 instance(s))" in result.output

    def test_validate_unknown_dependency(self, runner, tmp_path):
        path = _write(tmp_path, 'jobs: {test: {needs: [biuld], steps: [{run: "true"}]}}\n')
        result = runner.invoke(cli, ["validate", "--workflow", str(path)])
        assert result.exit_code == 2


class TestDiscovery:
    def test_finds_default_and_github_workflows(self, tmp_path):
        (tmp_path / "matrixci.yml").write_text("jobs: {}\n")
        (tmp_path / ".github" / "workflows").mkdir(parents=True)
        (tmp_path / ".github" / "workflows" / "ci.yml").write_text("jobs: {}\n")
        found = find_workflow_files(tmp_path)
        assert [p.name for p in found] == ["matrixci.yml", "ci.yml"]

    def test_multiple_workflows_is_an_error(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "matrixci.yml").write_text("jobs: {}\n")
        (tmp_path / "other_workflow.py").write_text("")
        result = runner.invoke(cli, ["validate"])
        assert result.exit_code == 2

    def test_no_workflow_is_an_error(self, runner, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli, ["validate"])
        assert result.exit_code == 2
