"""Tests for manifest parsing into the resource graph."""

import pytest

from manifestor.exceptions import ParseError
from manifestor.iac.manifest_parser import parse_manifest, parse_manifest_file
from manifestor.iac.models import (
    ContainerResource,
    ParameterResource,
    ProjectResource,
    ResourceKind,
    ValueResource,
)


class TestParseManifest:
    """Test cases for parse_manifest."""

    def test_preserves_manifest_order(self, db_app_graph) -> None:
        """Resources keep the order in which the manifest lists them."""
        assert db_app_graph.names == ["app", "db", "db-password"]
        assert db_app_graph.index_of("db") == 1

    def test_dispatches_by_type(self, db_app_graph) -> None:
        """Each type tag produces its own variant."""
        assert isinstance(db_app_graph.get("app"), ProjectResource)
        assert isinstance(db_app_graph.get("db"), ContainerResource)
        assert isinstance(db_app_graph.get("db-password"), ParameterResource)
        assert db_app_graph.get("db").kind == ResourceKind.CONTAINER

    def test_container_fields(self, db_app_graph) -> None:
        """Bindings and volumes are parsed with defaults filled in."""
        db = db_app_graph.get("db")
        assert db.image == "postgres:16"
        assert db.bindings["tcp"].target_port == 5432
        assert db.bindings["tcp"].transport == "tcp"
        assert db.bindings["tcp"].external is False
        assert db.volumes[0].name == "db-data"
        assert db.volumes[0].size is None

    def test_parameter_generate_policy(self, db_app_graph) -> None:
        """Generation policies default to every character class."""
        secret_input = db_app_graph.get("db-password").inputs["value"]
        assert secret_input.secret is True
        assert secret_input.generate.min_length == 22
        assert secret_input.generate.special is True
        assert secret_input.default_value is None

    def test_yaml_manifest(self) -> None:
        """YAML documents are accepted as well as JSON."""
        graph = parse_manifest(
            """
resources:
  cache:
    type: container.v0
    image: redis
    args: ["--save", "60", "1"]
    bindings:
      tcp:
        scheme: tcp
        targetPort: 6379
"""
        )
        assert graph.get("cache").args == ["--save", "60", "1"]

    def test_numbers_in_env_become_strings(self, make_graph) -> None:
        """Numeric env values are normalized to strings."""
        graph = make_graph(
            {"api": {"type": "container.v0", "image": "api", "env": {"WORKERS": 4}}}
        )
        assert graph.get("api").env == {"WORKERS": "4"}

    def test_value_resource(self, make_graph) -> None:
        """Value resources need a value or a connection string."""
        graph = make_graph(
            {"conn": {"type": "value.v0", "connectionString": "Server=x"}}
        )
        assert isinstance(graph.get("conn"), ValueResource)
        assert graph.get("conn").value is None


class TestParseErrors:
    """Malformed manifests raise ParseError."""

    def test_unknown_type(self, make_graph) -> None:
        with pytest.raises(ParseError) as exc_info:
            make_graph({"x": {"type": "azure.bicep.v0"}})
        assert "unrecognized type" in exc_info.value.message
        assert exc_info.value.context["resource"] == "x"

    def test_missing_resources(self) -> None:
        with pytest.raises(ParseError):
            parse_manifest('{"something": {}}')

    def test_not_well_formed(self) -> None:
        with pytest.raises(ParseError):
            parse_manifest("resources: [unclosed")

    def test_container_requires_image(self, make_graph) -> None:
        with pytest.raises(ParseError):
            make_graph({"web": {"type": "container.v0"}})

    def test_binding_requires_scheme(self, make_graph) -> None:
        with pytest.raises(ParseError):
            make_graph(
                {
                    "web": {
                        "type": "container.v0",
                        "image": "nginx",
                        "bindings": {"http": {"targetPort": 80}},
                    }
                }
            )

    def test_port_out_of_range(self, make_graph) -> None:
        with pytest.raises(ParseError):
            make_graph(
                {
                    "web": {
                        "type": "container.v0",
                        "image": "nginx",
                        "bindings": {"http": {"scheme": "http", "targetPort": 70000}},
                    }
                }
            )

    def test_value_requires_content(self, make_graph) -> None:
        with pytest.raises(ParseError):
            make_graph({"empty": {"type": "value.v0"}})

    def test_generate_requires_positive_min_length(self, make_graph) -> None:
        with pytest.raises(ParseError):
            make_graph(
                {
                    "pw": {
                        "type": "parameter.v0",
                        "value": "{pw.inputs.value}",
                        "inputs": {"value": {"default": {"generate": {"minLength": 0}}}},
                    }
                }
            )

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ParseError):
            parse_manifest_file(tmp_path / "missing.json")
