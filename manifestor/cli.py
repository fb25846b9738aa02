"""
Command line interface for Manifestor

Compiles a deployment manifest into per-resource Kubernetes artifacts.
"""

import sys
from typing import Dict, Optional, Tuple

import click

from .config_manager import (
    VALID_BUILDERS,
    VALID_PULL_POLICIES,
    LoggingConfig,
    setup_logging,
)
from .iac.cli_handler import generate_command_handler, order_command_handler
from .iac.host_strategies import available_host_strategies
from .logging_config import configure_logging


def _parse_parameters(
    ctx: click.Context, param: click.Parameter, values: Tuple[str, ...]
) -> Dict[str, str]:
    parameters = {}
    for item in values:
        name, separator, value = item.partition("=")
        if not separator or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got '{item}'")
        parameters[name] = value
    return parameters


@click.group()
@click.option(
    "--log-level",
    default=None,
    help="Logging level (DEBUG, INFO, WARNING, ERROR); defaults to MANIFESTOR_LOG_LEVEL",
)
@click.version_option(package_name="manifestor")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Manifestor - compile deployment manifests into Kubernetes artifacts."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None

    try:
        logging_config = LoggingConfig()
        if log_level:
            logging_config = LoggingConfig(
                level=log_level,
                format=logging_config.format,
                file_output=logging_config.file_output,
            )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--log-level") from e
    setup_logging(logging_config)
    configure_logging(logging_config.get_log_level())


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@click.option("--output-dir", "-o", default=None, help="Output directory for artifacts")
@click.option("--namespace", default=None, help="Kubernetes namespace for all resources")
@click.option(
    "--build/--no-build",
    default=False,
    help="Build (and push, with --registry) container images before generating",
)
@click.option(
    "--builder",
    type=click.Choice(list(VALID_BUILDERS)),
    default=None,
    help="Container builder to use",
)
@click.option("--registry", default=None, help="Container registry to push images to")
@click.option("--prefix", default=None, help="Repository prefix for built images")
@click.option("--tag", default=None, help="Tag for built images")
@click.option(
    "--image-pull-policy",
    type=click.Choice(list(VALID_PULL_POLICIES)),
    default=None,
    help="imagePullPolicy for every workload",
)
@click.option(
    "--private-registry/--public-registry",
    default=None,
    help="Reference an image pull secret from every workload",
)
@click.option("--pull-secret-name", default=None, help="Name of the image pull secret")
@click.option(
    "--parameter",
    "-p",
    "parameters",
    multiple=True,
    callback=_parse_parameters,
    help="Parameter value as NAME=VALUE (repeatable)",
)
@click.option(
    "--non-interactive",
    is_flag=True,
    default=None,
    help="Never prompt; retry recoverable build failures automatically",
)
@click.option(
    "--host-strategy",
    type=click.Choice(available_host_strategies()),
    default=None,
    help="How binding hosts are resolved",
)
@click.option("--state-file", default=None, help="JSON file holding generated secrets")
@click.option(
    "--max-parallel-builds", type=int, default=None, help="Concurrent image builds"
)
@click.pass_context
def generate(
    ctx: click.Context,
    manifest: str,
    output_dir: Optional[str],
    namespace: Optional[str],
    build: bool,
    builder: Optional[str],
    registry: Optional[str],
    prefix: Optional[str],
    tag: Optional[str],
    image_pull_policy: Optional[str],
    private_registry: Optional[bool],
    pull_secret_name: Optional[str],
    parameters: Dict[str, str],
    non_interactive: Optional[bool],
    host_strategy: Optional[str],
    state_file: Optional[str],
    max_parallel_builds: Optional[int],
) -> None:
    """Generate Kubernetes artifacts for every resource in MANIFEST."""
    exit_code = generate_command_handler(
        manifest,
        log_level=ctx.obj["log_level"],
        parameters=parameters,
        build=build,
        output_dir=output_dir,
        namespace=namespace,
        builder=builder,
        registry=registry,
        repository_prefix=prefix,
        image_tag=tag,
        image_pull_policy=image_pull_policy,
        private_registry=private_registry,
        pull_secret_name=pull_secret_name,
        non_interactive=non_interactive,
        host_strategy=host_strategy,
        state_file=state_file,
        max_parallel_builds=max_parallel_builds,
    )
    ctx.exit(exit_code)


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def order(ctx: click.Context, manifest: str) -> None:
    """Show the order in which MANIFEST's resources are resolved."""
    ctx.exit(order_command_handler(manifest, log_level=ctx.obj["log_level"]))


def main() -> None:
    """Main entry point."""
    sys.exit(cli())


if __name__ == "__main__":
    main()
