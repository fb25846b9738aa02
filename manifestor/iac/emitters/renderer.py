"""Template rendering for generated artifacts.

Templates only lay out documents; every decision about what a document
contains is made before rendering.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape


def to_yaml(value: Any) -> str:
    """Serialize a document the way every generated file is formatted."""
    return yaml.dump(
        value, default_flow_style=False, sort_keys=False, allow_unicode=True
    )


class TemplateRenderer:
    """Render Jinja2 templates with a YAML filter.

    Attributes:
        template_dir: Directory containing Jinja2 templates
        env: Jinja2 environment for template rendering
    """

    def __init__(self, template_dir: Optional[Path] = None):
        """Initialize the renderer.

        Args:
            template_dir: Optional custom template directory.
                         Defaults to templates/ in this package.
        """
        if template_dir is None:
            template_dir = Path(__file__).parent / "templates"

        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        self.env.filters["to_yaml"] = to_yaml

    def render(self, template_name: str, model: Dict[str, Any]) -> str:
        template = self.env.get_template(template_name)
        return template.render(**model)
