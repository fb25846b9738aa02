"""Tests for the host strategy registry."""

import pytest

from manifestor.iac.host_strategies import (
    HostStrategy,
    LoopbackHostStrategy,
    ServiceNameHostStrategy,
    available_host_strategies,
    get_host_strategy,
    register_host_strategy,
)
from manifestor.iac.models import Binding, ContainerResource


class TestHostStrategies:
    def test_builtin_strategies(self) -> None:
        assert {"loopback", "service-name"} <= set(available_host_strategies())
        assert isinstance(get_host_strategy("service-name"), ServiceNameHostStrategy)
        assert isinstance(get_host_strategy("LOOPBACK"), LoopbackHostStrategy)

    def test_unknown_strategy(self) -> None:
        with pytest.raises(KeyError):
            get_host_strategy("mesh")

    def test_register_custom_strategy(self) -> None:
        class NamespacedHostStrategy(HostStrategy):
            name = "fqdn"

            def host_for(self, resource, binding_name, binding):
                return f"{resource.name}.shop.svc.cluster.local"

        register_host_strategy(NamespacedHostStrategy)
        strategy = get_host_strategy("fqdn")
        db = ContainerResource(name="db", image="postgres")
        assert strategy.host_for(db, "tcp", Binding(scheme="tcp")) == (
            "db.shop.svc.cluster.local"
        )

    def test_service_name_is_dns_label(self) -> None:
        db = ContainerResource(name="My_DB", image="postgres")
        host = ServiceNameHostStrategy().host_for(db, "tcp", Binding(scheme="tcp"))
        assert host == "my-db"
