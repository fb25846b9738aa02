"""Tests for placeholder resolution against the resource graph."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from manifestor.exceptions import (
    CyclicReferenceError,
    MissingParameterError,
    UnknownPath,
    UnknownResourceReference,
)
from manifestor.iac.host_strategies import LoopbackHostStrategy
from manifestor.iac.resolver import ExpressionResolver, ResolvedValue, parameter_key
from manifestor.iac.secret_store import SecretStore


class TestBindingResolution:
    """Binding attributes and connection strings."""

    def test_connection_string_through_env(self, db_app_graph) -> None:
        """A project env entry resolves through the database connection string."""
        resolver = ExpressionResolver(db_app_graph)
        resolved = resolver.resolve_resource(db_app_graph.get("app"))
        assert resolved.env["ConnectionStrings__db"] == ResolvedValue(
            "Host=db;Port=5432"
        )

    def test_default_target_port_for_http(self, db_app_graph) -> None:
        """http bindings without a targetPort default to 8080."""
        resolver = ExpressionResolver(db_app_graph)
        assert resolver.resolve_reference("app", "bindings.http.url").value == (
            "http://app:8080"
        )
        assert resolver.resolve_reference("app", "bindings.http.port").value == "8080"

    def test_loopback_strategy(self, db_app_graph) -> None:
        """The host strategy decides binding hosts."""
        resolver = ExpressionResolver(db_app_graph, host_strategy=LoopbackHostStrategy())
        assert resolver.resolve_text("{db.connectionString}").value == (
            "Host=localhost;Port=5432"
        )

    def test_host_matches_service_name(self, make_graph) -> None:
        """Hosts use the same DNS label as the generated Service."""
        graph = make_graph(
            {
                "my_db": {
                    "type": "container.v0",
                    "image": "postgres",
                    "connectionString": "Host={my_db.bindings.tcp.host};Port={my_db.bindings.tcp.port}",
                    "bindings": {"tcp": {"scheme": "tcp", "targetPort": 5432}},
                },
                "app": {
                    "type": "container.v0",
                    "image": "app",
                    "env": {"CS": "{my_db.connectionString}"},
                },
            }
        )
        resolver = ExpressionResolver(graph)
        resolved = resolver.resolve_resource(graph.get("app"))
        assert resolved.env["CS"].value == "Host=my-db;Port=5432"

    def test_binding_scheme(self, db_app_graph) -> None:
        resolver = ExpressionResolver(db_app_graph)
        assert resolver.resolve_reference("db", "bindings.tcp.scheme").value == "tcp"

    def test_tcp_binding_without_target_port(self, make_graph) -> None:
        """Only http and https have default ports."""
        graph = make_graph(
            {"q": {"type": "container.v0", "image": "q", "bindings": {"amqp": {"scheme": "tcp"}}}}
        )
        with pytest.raises(UnknownPath):
            ExpressionResolver(graph).resolve_reference("q", "bindings.amqp.port")


class TestParameterResolution:
    """Supplied, default and generated parameter values."""

    def test_secret_generated_once(self, db_app_graph) -> None:
        """A generated secret is at least minLength long and stable across references."""
        resolver = ExpressionResolver(db_app_graph)
        first = resolver.resolve_reference("db-password", "value")
        second = resolver.resolve_text("{db-password.inputs.value}")
        env = resolver.resolve_resource(db_app_graph.get("db")).env

        assert len(first.value) >= 22
        assert first.secret is True
        assert second == first
        assert env["POSTGRES_PASSWORD"] == first

    def test_supplied_parameter_wins(self, db_app_graph) -> None:
        resolver = ExpressionResolver(
            db_app_graph, parameters={"db-password": "hunter2"}
        )
        value = resolver.resolve_reference("db-password", "value")
        assert value == ResolvedValue("hunter2", secret=True)

    def test_stored_secret_reused(self, db_app_graph, tmp_path) -> None:
        """Values from the state file are used instead of generating new ones."""
        state = tmp_path / "state.json"
        state.write_text('{"secrets": {"db-password": "from-state"}}')
        resolver = ExpressionResolver(db_app_graph, secret_store=SecretStore(state))
        assert resolver.resolve_reference("db-password", "value").value == "from-state"

    def test_default_value(self, make_graph) -> None:
        graph = make_graph(
            {
                "region": {
                    "type": "parameter.v0",
                    "value": "{region.inputs.value}",
                    "inputs": {"value": {"type": "string", "default": {"value": "eu"}}},
                }
            }
        )
        resolved = ExpressionResolver(graph).resolve_reference("region", "value")
        assert resolved == ResolvedValue("eu", secret=False)

    def test_missing_parameter(self, make_graph) -> None:
        graph = make_graph(
            {
                "apikey": {
                    "type": "parameter.v0",
                    "value": "{apikey.inputs.value}",
                    "inputs": {"value": {"type": "string", "secret": True}},
                }
            }
        )
        with pytest.raises(MissingParameterError) as exc_info:
            ExpressionResolver(graph).resolve_reference("apikey", "value")
        assert exc_info.value.context["parameter"] == "apikey"

    def test_parameter_key(self) -> None:
        assert parameter_key("pw", "value") == "pw"
        assert parameter_key("creds", "username") == "creds.username"

    def test_concurrent_resolution_agrees(self, db_app_graph) -> None:
        """Parallel resolvers sharing a store observe a single secret value."""
        store = SecretStore()

        def resolve(_):
            resolver = ExpressionResolver(db_app_graph, secret_store=store)
            return resolver.resolve_reference("db-password", "value").value

        with ThreadPoolExecutor(max_workers=8) as executor:
            values = set(executor.map(resolve, range(16)))
        assert len(values) == 1
        assert store.generated_keys == {"db-password"}


class TestResolutionErrors:
    """Unknown references, unknown paths and cycles."""

    def test_unknown_resource(self, db_app_graph) -> None:
        resolver = ExpressionResolver(db_app_graph)
        with pytest.raises(UnknownResourceReference) as exc_info:
            resolver.resolve_text("{cache.bindings.tcp.host}", owner="app")
        assert exc_info.value.resource_name == "cache"
        assert exc_info.value.context["referenced_by"] == "app"

    def test_unknown_path(self, db_app_graph) -> None:
        resolver = ExpressionResolver(db_app_graph)
        with pytest.raises(UnknownPath):
            resolver.resolve_reference("db", "bindings.grpc.host")
        with pytest.raises(UnknownPath):
            resolver.resolve_reference("db", "image")

    def test_cycle(self, make_graph) -> None:
        """Two values referencing each other raise CyclicReferenceError."""
        graph = make_graph(
            {
                "a": {"type": "value.v0", "value": "{b.value}"},
                "b": {"type": "value.v0", "value": "{a.value}"},
            }
        )
        with pytest.raises(CyclicReferenceError) as exc_info:
            ExpressionResolver(graph).resolve_reference("a", "value")
        assert exc_info.value.cycle == ["a.value", "b.value", "a.value"]

    def test_self_reference_to_other_field_is_not_a_cycle(self, db_app_graph) -> None:
        """A connection string may read its own resource's bindings."""
        resolver = ExpressionResolver(db_app_graph)
        assert resolver.resolve_reference("db", "connectionString").value.startswith(
            "Host=db"
        )


class TestMemoization:
    """Resolution is idempotent and memoized."""

    def test_repeat_resolution_is_identical(self, db_app_graph) -> None:
        resolver = ExpressionResolver(db_app_graph)
        first = resolver.resolve_all(["db-password", "db", "app"])
        size = resolver.memo_size
        second = resolver.resolve_all(["db-password", "db", "app"])

        assert first == second
        assert resolver.memo_size == size
