"""Tests for configuration management."""

import logging

import pytest

from manifestor.config_manager import (
    BuildConfig,
    GenerationConfig,
    LoggingConfig,
    ManifestorConfig,
    create_config_from_env,
    resolve_state_file,
)


class TestDefaults:
    def test_defaults(self, clean_env) -> None:
        config = ManifestorConfig.from_environment()
        assert config.build.builder == "docker"
        assert config.build.image_tag == "latest"
        assert config.build.max_parallel_builds == 2
        assert config.generation.output_dir == "manifests"
        assert config.generation.default_volume_size == "1Gi"
        assert config.generation.pull_secret_name == "image-pull-secret"
        assert config.generation.host_strategy == "service-name"
        assert config.logging.get_log_level() == logging.INFO


class TestEnvironment:
    def test_reads_environment(self, clean_env) -> None:
        clean_env.setenv("MANIFESTOR_CONTAINER_BUILDER", "podman")
        clean_env.setenv("MANIFESTOR_REGISTRY", "ghcr.io/acme")
        clean_env.setenv("MANIFESTOR_NON_INTERACTIVE", "true")
        clean_env.setenv("MANIFESTOR_PRIVATE_REGISTRY", "1")
        clean_env.setenv("MANIFESTOR_NAMESPACE", "shop")

        config = ManifestorConfig.from_environment()
        assert config.build.builder == "podman"
        assert config.build.registry == "ghcr.io/acme"
        assert config.build.non_interactive is True
        assert config.generation.private_registry is True
        assert config.generation.namespace == "shop"

    def test_overrides_win_over_environment(self, clean_env) -> None:
        clean_env.setenv("MANIFESTOR_IMAGE_TAG", "from-env")
        config = ManifestorConfig.from_environment(image_tag="v3", namespace=None)
        assert config.build.image_tag == "v3"
        assert config.generation.namespace is None

    def test_unknown_override(self, clean_env) -> None:
        with pytest.raises(ValueError):
            ManifestorConfig.from_environment(colour="blue")


class TestValidation:
    def test_invalid_builder(self) -> None:
        with pytest.raises(ValueError):
            BuildConfig(builder="buildah")

    def test_invalid_pull_policy(self) -> None:
        with pytest.raises(ValueError):
            GenerationConfig(image_pull_policy="Sometimes")

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError):
            LoggingConfig(level="CHATTY")

    def test_override_is_validated(self, clean_env) -> None:
        with pytest.raises(ValueError):
            create_config_from_env(max_parallel_builds=0)


class TestSerialization:
    def test_parameter_values_are_not_serialized(self, clean_env) -> None:
        config = ManifestorConfig.from_environment(parameters={"db-password": "hunter2"})
        data = config.to_dict()
        assert data["parameters"] == ["db-password"]
        assert "hunter2" not in str(data)

    def test_resolve_state_file(self, clean_env) -> None:
        assert resolve_state_file(GenerationConfig()) is None
        assert resolve_state_file(GenerationConfig(state_file="s.json")).name == "s.json"
