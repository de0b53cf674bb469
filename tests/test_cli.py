"""
Tests for the command-line interface.

Runs the Typer app in-process over a small project on disk.
"""

import pytest
from typer.testing import CliRunner

from cli.main import app
from trustdebt import __version__

from tests.fixtures import write_minimal_project


cli_runner = CliRunner()


@pytest.fixture
def project(tmp_path):
    """A minimal project with artifact and ledger paths outside it."""
    root = write_minimal_project(tmp_path / "proj")
    storage = ["--artifacts", str(tmp_path / "runs"), "--db", str(tmp_path / "ledger.db")]
    return root, storage


def invoke(*args):
    return cli_runner.invoke(app, [str(arg) for arg in args])


class TestRunCommand:
    """Tests for `trustdebt run`."""

    def test_run_grades_project(self, project):
        """Test that a full run finishes and prints the grade."""
        root, storage = project
        result = invoke("run", root, "--no-commits", *storage)
        assert result.exit_code == 0, result.output
        assert "Pipeline finished" in result.output
        assert "grade B" in result.output

    def test_run_failure_exit_code(self, tmp_path):
        """Test that a failed run exits 1 and names the stage."""
        root = tmp_path / "empty"
        root.mkdir()
        (root / "README.md").write_text("the and\n", encoding="utf-8")
        result = invoke(
            "run", root, "--no-commits",
            "--artifacts", tmp_path / "runs", "--db", tmp_path / "ledger.db",
        )
        assert result.exit_code == 1
        assert "Failed at stage 0" in result.output
        assert "empty_corpus" in result.output

    def test_invalid_config(self, project):
        """Test that an unknown config key exits 2."""
        root, storage = project
        (root / "trustdebt.toml").write_text("root_cout = 3\n", encoding="utf-8")
        result = invoke("run", root, "--no-commits", *storage)
        assert result.exit_code == 2
        assert "Invalid configuration" in result.output

    def test_resume_latest_run(self, project):
        """Test that --from-stage resumes the latest run."""
        root, storage = project
        assert invoke("run", root, "--no-commits", *storage).exit_code == 0
        result = invoke("run", root, "--from-stage", 4, *storage)
        assert result.exit_code == 0, result.output
        assert "grade B" in result.output


class TestStageCommand:
    """Tests for `trustdebt stage`."""

    def test_single_stage(self, project):
        """Test running stage 0 on its own."""
        root, storage = project
        result = invoke("stage", "keywords", root, "--no-commits", *storage)
        assert result.exit_code == 0, result.output
        assert "RUNNING(1)" in result.output

    def test_unknown_stage(self, project):
        """Test that an unknown stage name exits 2."""
        root, storage = project
        result = invoke("stage", "report", root, *storage)
        assert result.exit_code == 2
        assert "Unknown stage" in result.output


class TestInspectionCommands:
    """Tests for status, history and explain."""

    def test_status_without_runs(self, project):
        """Test that status with no runs exits 1."""
        root, storage = project
        result = invoke("status", root, *storage)
        assert result.exit_code == 1
        assert "No runs found" in result.output

    def test_status_after_run(self, project):
        """Test that status lists the stages of the latest run."""
        root, storage = project
        invoke("run", root, "--no-commits", *storage)
        result = invoke("status", root, *storage)
        assert result.exit_code == 0, result.output
        assert "COMPLETED" in result.output
        assert "grade B" in result.output

    def test_history_after_run(self, project, tmp_path):
        """Test that history lists a recorded run."""
        root, storage = project
        invoke("run", root, "--no-commits", *storage)
        result = invoke("history", root, "--db", tmp_path / "ledger.db")
        assert result.exit_code == 0, result.output
        assert "Run History" in result.output

    def test_explain_category(self, project, tmp_path):
        """Test explaining a root category of the latest run."""
        root, storage = project
        invoke("run", root, "--no-commits", *storage)
        result = invoke("explain", "a", root, "--artifacts", tmp_path / "runs")
        assert result.exit_code == 0, result.output
        assert "Self-consistency cell" in result.output

    def test_explain_unknown_category(self, project, tmp_path):
        """Test that an unknown category exits 1."""
        root, storage = project
        invoke("run", root, "--no-commits", *storage)
        result = invoke("explain", "ZZ", root, "--artifacts", tmp_path / "runs")
        assert result.exit_code == 1
        assert "not found" in result.output


def test_version():
    """Test the --version flag."""
    result = invoke("--version")
    assert result.exit_code == 0
    assert __version__ in result.output
