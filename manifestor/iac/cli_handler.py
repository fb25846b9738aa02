"""CLI command handlers for artifact generation.

Handlers build configuration, run the engine and translate errors into process
exit codes. They return the exit code instead of exiting so they stay
testable.
"""

import logging
import signal
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from rich.console import Console
from rich.table import Table

from ..config_manager import create_config_from_env
from ..exceptions import ManifestorError
from ..utils.process_runner import CancellationToken
from ..utils.prompts import AutoConfirmPrompt, InteractivePrompt
from .engine import TransformationEngine

logger = logging.getLogger(__name__)

console = Console()


@contextmanager
def cancel_on_signals(token: CancellationToken) -> Iterator[None]:
    """Route SIGINT and SIGTERM to ``token`` for the duration of the block."""

    def handler(signum, frame):
        logger.warning(f"Received signal {signum}, cancelling")
        token.cancel()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, handler)
        except ValueError:
            # Not on the main thread; signals stay with the caller
            pass
    try:
        yield
    finally:
        for signum, original in previous.items():
            signal.signal(signum, original)


def _report_error(error: ManifestorError) -> int:
    logger.debug(f"Generation failed: {error.to_dict()}")
    console.print(f"[red]❌ {error.message}[/red]")
    for key, value in error.context.items():
        console.print(f"   [dim]{key}:[/dim] {value}")
    if error.recovery_suggestion:
        console.print(f"[yellow]💡 {error.recovery_suggestion}[/yellow]")
    return error.exit_code


def generate_command_handler(
    manifest_path: str,
    log_level: Optional[str] = None,
    parameters: Optional[Dict[str, str]] = None,
    build: bool = False,
    **overrides,
) -> int:
    """Handle the generate CLI command.

    Args:
        manifest_path: Path to the manifest file
        log_level: Optional log level override
        parameters: Externally supplied parameter values
        build: Build and push container images before generating
        **overrides: Configuration overrides (None values are ignored)

    Returns:
        Process exit code
    """
    try:
        config = create_config_from_env(
            log_level=log_level, parameters=parameters, **overrides
        )
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return 1
    config.log_configuration_summary()

    token = CancellationToken()
    prompt = (
        AutoConfirmPrompt() if config.build.non_interactive else InteractivePrompt()
    )
    engine = TransformationEngine(config, cancellation=token, prompt=prompt)

    try:
        with cancel_on_signals(token):
            report = engine.generate(manifest_path, build=build)
    except ManifestorError as e:
        return _report_error(e)

    console.print(report.format_report())
    console.print(
        f"[green]✅ Wrote {report.metrics.files_written} files to "
        f"{report.output_directory}[/green]"
    )
    return 0


def order_command_handler(manifest_path: str, log_level: Optional[str] = None) -> int:
    """Handle the order CLI command: print the resolution order."""
    try:
        config = create_config_from_env(log_level=log_level)
    except ValueError as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        return 1

    try:
        dependencies = TransformationEngine(config).plan(manifest_path).analyze()
    except ManifestorError as e:
        return _report_error(e)

    table = Table(title="Resolution Order")
    table.add_column("#", justify="right")
    table.add_column("Resource", style="cyan")
    table.add_column("Type")
    table.add_column("References")
    for dependency in dependencies:
        table.add_row(
            str(dependency.order + 1),
            dependency.name,
            dependency.kind.value,
            ", ".join(sorted(dependency.depends_on)) or "-",
        )
    console.print(table)
    return 0
