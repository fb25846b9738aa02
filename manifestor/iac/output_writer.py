"""Writing rendered artifact bundles to disk."""

import logging
from pathlib import Path
from typing import List

from ..exceptions import ConfigurationError
from ..utils.naming import k8s_name
from .emitters.base import ArtifactBundle

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Writes each bundle into ``<output_dir>/<resource>/``."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir).expanduser().resolve()

    def bundle_dir(self, resource_name: str) -> Path:
        return self.output_dir / k8s_name(resource_name)

    def _target(self, directory: Path, file_name: str) -> Path:
        target = (directory / file_name).resolve()
        if not target.is_relative_to(directory):
            raise ConfigurationError(
                f"Refusing to write '{file_name}' outside {directory}",
                config_section="generation",
            )
        return target

    def write_bundle(self, bundle: ArtifactBundle) -> List[Path]:
        """Write every rendered document of ``bundle``.

        Returns:
            List of written file paths
        """
        directory = self.bundle_dir(bundle.resource_name)
        directory.mkdir(parents=True, exist_ok=True)

        written = []
        for file_name, content in bundle.rendered.items():
            target = self._target(directory, file_name)
            target.write_text(content)
            written.append(target)
        logger.info(f"Wrote {len(written)} files for '{bundle.resource_name}' to {directory}")
        return written
