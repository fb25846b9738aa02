import json
from pathlib import Path
from typing import Any, Dict

import pytest

from manifestor.iac.manifest_parser import parse_manifest


def _manifest(resources: Dict[str, Any]) -> str:
    return json.dumps({"resources": resources})


@pytest.fixture
def db_app_resources() -> Dict[str, Any]:
    """A database container referenced by a project through its connection string."""
    return {
        "app": {
            "type": "project.v0",
            "path": "src/App/App.csproj",
            "env": {
                "ConnectionStrings__db": "{db.connectionString}",
                "ASPNETCORE_URLS": "{app.bindings.http.url}",
            },
            "bindings": {
                "http": {"scheme": "http", "protocol": "tcp", "transport": "http"},
            },
        },
        "db": {
            "type": "container.v0",
            "image": "postgres:16",
            "connectionString": "Host={db.bindings.tcp.host};Port={db.bindings.tcp.port}",
            "env": {"POSTGRES_PASSWORD": "{db-password.value}"},
            "bindings": {"tcp": {"scheme": "tcp", "targetPort": 5432}},
            "volumes": [{"name": "db-data", "target": "/var/lib/postgresql/data"}],
        },
        "db-password": {
            "type": "parameter.v0",
            "value": "{db-password.inputs.value}",
            "inputs": {
                "value": {
                    "type": "string",
                    "secret": True,
                    "default": {"generate": {"minLength": 22}},
                }
            },
        },
    }


@pytest.fixture
def db_app_graph(db_app_resources):
    return parse_manifest(_manifest(db_app_resources))


@pytest.fixture
def make_graph():
    """Build a ResourceGraph from a ``{name: resource}`` mapping."""

    def factory(resources: Dict[str, Any]):
        return parse_manifest(_manifest(resources))

    return factory


@pytest.fixture
def manifest_file(tmp_path: Path, db_app_resources) -> Path:
    path = tmp_path / "manifest.json"
    path.write_text(_manifest(db_app_resources))
    return path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove MANIFESTOR_* variables so configuration defaults apply."""
    import os

    for key in list(os.environ):
        if key.startswith("MANIFESTOR_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch
