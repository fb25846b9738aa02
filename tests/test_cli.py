"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from manifestor.cli import cli


@pytest.fixture
def runner(clean_env) -> CliRunner:
    return CliRunner()


class TestOrderCommand:
    def test_prints_resolution_order(self, runner, manifest_file) -> None:
        result = runner.invoke(cli, ["order", str(manifest_file)])
        assert result.exit_code == 0, result.output
        assert result.output.index("db-password") < result.output.index("app")

    def test_cycle_exits_non_zero(self, runner, tmp_path) -> None:
        manifest = tmp_path / "cycle.json"
        manifest.write_text(
            json.dumps(
                {
                    "resources": {
                        "a": {"type": "value.v0", "value": "{b.value}"},
                        "b": {"type": "value.v0", "value": "{a.value}"},
                    }
                }
            )
        )
        result = runner.invoke(cli, ["order", str(manifest)])
        assert result.exit_code == 1
        assert "cycle" in result.output


class TestGenerateCommand:
    def test_generates_artifacts(self, runner, manifest_file, tmp_path) -> None:
        out = tmp_path / "k8s"
        result = runner.invoke(
            cli,
            [
                "generate",
                str(manifest_file),
                "--output-dir",
                str(out),
                "--namespace",
                "shop",
                "--state-file",
                str(tmp_path / "state.json"),
            ],
        )
        assert result.exit_code == 0, result.output
        assert (out / "db" / "statefulset.yaml").exists()
        assert (out / "app" / "deployment.yaml").exists()
        assert "ARTIFACT GENERATION REPORT" in result.output

    def test_missing_parameter_exit_code(self, runner, tmp_path) -> None:
        manifest = tmp_path / "manifest.json"
        manifest.write_text(
            json.dumps(
                {
                    "resources": {
                        "apikey": {
                            "type": "parameter.v0",
                            "value": "{apikey.inputs.value}",
                            "inputs": {"value": {"type": "string", "secret": True}},
                        }
                    }
                }
            )
        )
        out = tmp_path / "out"
        result = runner.invoke(cli, ["generate", str(manifest), "-o", str(out)])
        assert result.exit_code == 1
        assert not out.exists()

        result = runner.invoke(
            cli, ["generate", str(manifest), "-o", str(out), "-p", "apikey=abc"]
        )
        assert result.exit_code == 0, result.output

    def test_malformed_parameter_option(self, runner, manifest_file) -> None:
        result = runner.invoke(cli, ["generate", str(manifest_file), "-p", "novalue"])
        assert result.exit_code == 2
        assert "NAME=VALUE" in result.output

    def test_invalid_log_level(self, runner, manifest_file) -> None:
        result = runner.invoke(cli, ["--log-level", "chatty", "order", str(manifest_file)])
        assert result.exit_code == 2
