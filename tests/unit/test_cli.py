"""Tests for the stackweave CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from stackweave.cli import app

runner = CliRunner()

CONFIG = """
[topology]
name = "wordpress"

[topology.environment]
account = "123456789012"
region = "us-west-2"

[topology.dns]
domain_name = "yourdomain.com"
validation_timeout_seconds = 5

[topology.dns.hosted_zones]
"yourdomain.com" = "Z0123456789"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("AWS_ACCOUNT", raising=False)
    monkeypatch.delenv("AWS_REGION", raising=False)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "stackweave.toml"
    path.write_text(CONFIG)
    return path


class TestSynthCommand:
    """Tests for `stackweave synth`."""

    def test_writes_template_and_plan(self, config_path: Path, tmp_path: Path):
        """Test a successful pass writes both files."""
        out = tmp_path / "out"
        result = runner.invoke(app, ["synth", "--config", str(config_path), "--output", str(out)])

        assert result.exit_code == 0, result.output
        template = json.loads((out / "template.json").read_text())
        plan = json.loads((out / "plan.json").read_text())
        assert "EdgeLoadBalancer" in template["Resources"]
        assert plan["name"] == "wordpress"
        assert "Success" in result.output

    def test_writes_reports(self, config_path: Path, tmp_path: Path):
        """Test reports are written on request."""
        out = tmp_path / "out"
        result = runner.invoke(
            app,
            ["synth", "--config", str(config_path), "--output", str(out), "--report", "both"],
        )

        assert result.exit_code == 0, result.output
        assert len(list((out / "reports").glob("synthesis-*.json"))) == 1
        assert len(list((out / "reports").glob("synthesis-*.md"))) == 1

    def test_failure_exits_nonzero(self, config_path: Path, tmp_path: Path):
        """Test an aborted pass exits 1 and writes no plan."""
        out = tmp_path / "out"
        result = runner.invoke(
            app,
            ["synth", "--config", str(config_path), "--output", str(out), "--timeout", "0"],
        )

        assert result.exit_code == 1
        assert "CERTIFICATE_VALIDATION_TIMEOUT" in result.output
        assert not (out / "template.json").exists()

    def test_invalid_config(self, tmp_path: Path):
        """Test invalid configuration is reported."""
        path = tmp_path / "stackweave.toml"
        path.write_text("[topology.network]\navailability_zones = 1\n")

        result = runner.invoke(app, ["synth", "--config", str(path)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestPlanCommand:
    """Tests for `stackweave plan`."""

    def test_markdown(self, config_path: Path):
        """Test the Markdown preview lists the intents."""
        result = runner.invoke(app, ["plan", "--config", str(config_path), "--markdown"])

        assert result.exit_code == 0, result.output
        assert "# Synthesis Report: wordpress" in result.output
        assert "`EdgeLoadBalancer`" in result.output

    def test_tables(self, config_path: Path):
        """Test the table preview renders."""
        result = runner.invoke(app, ["plan", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "Resource Intents" in result.output

    def test_failure(self, config_path: Path):
        """Test a failed preview exits 1."""
        result = runner.invoke(app, ["plan", "--config", str(config_path), "--timeout", "0"])

        assert result.exit_code == 1


class TestStatusCommand:
    """Tests for `stackweave status`."""

    def test_shows_configuration(self, config_path: Path):
        """Test effective settings are shown."""
        result = runner.invoke(app, ["status", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "us-west-2" in result.output
        assert "Z0123456789" in result.output

    def test_environment_override(self, config_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Test AWS_REGION overrides the file."""
        monkeypatch.setenv("AWS_REGION", "eu-west-1")

        result = runner.invoke(app, ["status", "--config", str(config_path)])

        assert result.exit_code == 0, result.output
        assert "eu-west-1" in result.output

    def test_missing_config_uses_defaults(self, tmp_path: Path):
        """Test a missing file falls back to defaults."""
        result = runner.invoke(app, ["status", "--config", str(tmp_path / "missing.toml")])

        assert result.exit_code == 0, result.output
        assert "Not found" in result.output
