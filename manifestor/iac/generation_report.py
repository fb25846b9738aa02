"""Generation reporting module for the artifact generation pipeline.

This module collects metrics from parsing through artifact writing and
formats them as a plain-text summary.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


@dataclass
class GenerationMetrics:
    """Metrics collected during artifact generation."""

    # Manifest
    resources_parsed: int = 0
    workload_resources: int = 0
    value_resources: int = 0
    generated_secrets: int = 0

    # Artifacts
    deployments: int = 0
    stateful_sets: int = 0
    config_maps: int = 0
    secrets: int = 0
    services: int = 0
    volume_claims: int = 0
    files_written: int = 0

    # Container builds (optional)
    build_enabled: bool = False
    images_built: int = 0
    images_pushed: int = 0

    resolution_order: List[str] = field(default_factory=list)

    @property
    def workloads(self) -> int:
        return self.deployments + self.stateful_sets


@dataclass
class GenerationReport:
    """Complete generation report with metrics and formatting."""

    metrics: GenerationMetrics
    output_directory: Path
    timestamp: str
    written_files: List[Path] = field(default_factory=list)

    def format_report(self) -> str:
        """Format the generation report as a human-readable string."""
        m = self.metrics
        lines = []
        lines.append("")
        lines.append("=" * 80)
        lines.append("ARTIFACT GENERATION REPORT")
        lines.append("=" * 80)
        lines.append("")

        lines.append("MANIFEST")
        lines.append("-" * 80)
        lines.append(f"  Resources Parsed:         {m.resources_parsed}")
        lines.append(f"  Workload Resources:       {m.workload_resources}")
        lines.append(f"  Value Resources:          {m.value_resources}")
        lines.append(f"  Resolution Order:         {' -> '.join(m.resolution_order)}")
        lines.append("")

        lines.append("KUBERNETES ARTIFACTS")
        lines.append("-" * 80)
        lines.append(f"  Deployments:              {m.deployments}")
        lines.append(f"  StatefulSets:             {m.stateful_sets}")
        lines.append(f"  ConfigMaps:               {m.config_maps}")
        lines.append(f"  Secrets:                  {m.secrets}")
        lines.append(f"  Services:                 {m.services}")
        lines.append(f"  Volume Claims:            {m.volume_claims}")
        lines.append(f"  Files Written:            {m.files_written}")
        lines.append("")

        if m.build_enabled:
            lines.append("CONTAINER BUILDS")
            lines.append("-" * 80)
            lines.append(f"  Images Built:             {m.images_built}")
            lines.append(f"  Images Pushed:            {m.images_pushed}")
            lines.append("")

        lines.append("NEXT STEPS")
        lines.append("-" * 80)
        lines.append(f"  1. Review generated files in: {self.output_directory}")
        lines.append(f"  2. Run: kubectl apply -k {self.output_directory}/<resource>")
        lines.append("")

        if m.generated_secrets:
            lines.append("NOTES")
            lines.append("-" * 80)
            lines.append(
                f"  • {m.generated_secrets} secret values were generated; "
                "keep the state file to reuse them"
            )
            lines.append("")

        lines.append("=" * 80)
        lines.append("")
        return "\n".join(lines)

    def save_to_file(self, filename: str = "generation_report.txt") -> Path:
        """Save the report to a file in the output directory."""
        report_path = self.output_directory / filename
        try:
            report_path.write_text(self.format_report())
        except OSError as e:
            # Non-blocking; the artifacts are already on disk
            logger.warning(f"Failed to save generation report: {e}")
        return report_path
