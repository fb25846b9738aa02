"""Tests for the generation report."""

from pathlib import Path

from manifestor.iac.generation_report import GenerationMetrics, GenerationReport


class TestGenerationReport:
    def test_format_report(self) -> None:
        metrics = GenerationMetrics(
            resources_parsed=3,
            deployments=1,
            stateful_sets=1,
            files_written=8,
            generated_secrets=1,
            resolution_order=["db-password", "db", "app"],
        )
        text = GenerationReport(metrics, Path("/tmp/out"), "2026-01-01").format_report()

        assert "ARTIFACT GENERATION REPORT" in text
        assert "db-password -> db -> app" in text
        assert "CONTAINER BUILDS" not in text
        assert "1 secret values were generated" in text
        assert metrics.workloads == 2

    def test_save_to_file(self, tmp_path) -> None:
        report = GenerationReport(GenerationMetrics(), tmp_path, "2026-01-01")
        path = report.save_to_file()
        assert path.read_text().startswith("\n" + "=" * 80)
