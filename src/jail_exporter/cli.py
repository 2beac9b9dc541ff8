"""jail_exporter command line interface.

Usage:
    jail_exporter                                  # Serve metrics over HTTP
    jail_exporter --output.file-path=/path/x.prom  # Write metrics once and exit
    jail_exporter --output.file-path=-             # Write metrics to stdout
    jail_exporter --rc-script                      # Dump the rc(8) script
    jail_exporter bcrypt [PASSWORD]                # Hash a basic auth password

Every option can also be set with the environment variable named after it
(WEB_LISTEN_ADDRESS, WEB_TELEMETRY_PATH, WEB_AUTH_CONFIG, OUTPUT_FILE_PATH),
or in jail_exporter.toml.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from jail_exporter import ExporterError, __version__
from jail_exporter.auth import (
    DEFAULT_COST,
    DEFAULT_PASSWORD_LENGTH,
    BasicAuthConfig,
    generate_password,
    hash_password,
)
from jail_exporter.config import ExporterConfig, load_config
from jail_exporter.engine import ReconciliationEngine
from jail_exporter.freebsd import JailSource, RctlAccountingSource
from jail_exporter.httpd import serve
from jail_exporter.privilege import ensure_racct_available, ensure_root
from jail_exporter.rcscript import render_rc_script
from jail_exporter.registry import MetricRegistry
from jail_exporter.textfile import FileExporter
from jail_exporter.validators import (
    click_callback,
    is_valid_basic_auth_config_path,
    is_valid_bcrypt_cost,
    is_valid_length,
    is_valid_output_file_path,
    is_valid_password,
    is_valid_socket_addr,
    is_valid_telemetry_path,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_engine() -> ReconciliationEngine:
    """Create an engine reading from the running kernel."""
    return ReconciliationEngine(
        container_source=JailSource(),
        accounting_source=RctlAccountingSource(),
        registry=MetricRegistry(),
    )


def validate_config(config: ExporterConfig) -> None:
    """Validate values that may have come from the config file.

    Raises:
        click.BadParameter: On the first invalid value.
    """
    checks = [
        ("web.listen-address", config.web.listen_address, is_valid_socket_addr),
        ("web.telemetry-path", config.web.telemetry_path, is_valid_telemetry_path),
        ("web.auth-config", config.web.auth_config, is_valid_basic_auth_config_path),
        ("output.file-path", config.output.file_path, is_valid_output_file_path),
    ]
    for name, value, validator in checks:
        if value is None:
            continue
        try:
            validator(value)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint=f"'--{name}'") from e


# =============================================================================
# CLI Context
# =============================================================================


class CLIContext:
    """Context object for CLI commands."""

    def __init__(self, config: ExporterConfig, verbose: bool = False):
        """Initialize CLI context.

        Args:
            config: Resolved configuration.
            verbose: Enable debug logging.
        """
        self.config = config
        self.verbose = verbose

        # Lazy-loaded components
        self._engine: ReconciliationEngine | None = None

    @property
    def engine(self) -> ReconciliationEngine:
        """Get or create the reconciliation engine."""
        if self._engine is None:
            self._engine = build_engine()
        return self._engine

    def auth_config(self) -> BasicAuthConfig | None:
        """Load the basic auth config, if one is configured."""
        if self.config.web.auth_config is None:
            return None
        return BasicAuthConfig.from_yaml(self.config.web.auth_config)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group(invoke_without_command=True)
@click.option(
    "--web.listen-address",
    "listen_address",
    envvar="WEB_LISTEN_ADDRESS",
    metavar="[ADDR:PORT]",
    callback=click_callback(is_valid_socket_addr),
    help="Address on which to expose metrics and web interface. [default: 127.0.0.1:9452]",
)
@click.option(
    "--web.telemetry-path",
    "telemetry_path",
    envvar="WEB_TELEMETRY_PATH",
    metavar="PATH",
    callback=click_callback(is_valid_telemetry_path),
    help="Path under which to expose metrics. [default: /metrics]",
)
@click.option(
    "--web.auth-config",
    "auth_config",
    envvar="WEB_AUTH_CONFIG",
    metavar="CONFIG",
    callback=click_callback(is_valid_basic_auth_config_path),
    help="Path to HTTP Basic Authentication configuration",
)
@click.option(
    "--output.file-path",
    "file_path",
    envvar="OUTPUT_FILE_PATH",
    metavar="FILE",
    callback=click_callback(is_valid_output_file_path),
    help="File to output metrics to, or - for stdout.",
)
@click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to jail_exporter.toml",
)
@click.option(
    "--rc-script",
    is_flag=True,
    help="Dump the jail_exporter rc(8) script to stdout",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable debug logging",
)
@click.version_option(version=__version__, prog_name="jail_exporter")
@click.pass_context
def cli(
    ctx: click.Context,
    listen_address: str | None,
    telemetry_path: str | None,
    auth_config: Path | None,
    file_path: str | Path | None,
    config_path: Path | None,
    rc_script: bool,
    verbose: bool,
) -> None:
    """Prometheus exporter for FreeBSD jails.

    Exports per-jail resource usage as reported by rctl(8).
    """
    if ctx.invoked_subcommand is not None:
        return

    if rc_script:
        click.echo(render_rc_script())
        return

    try:
        config = load_config(config_path).merged(
            listen_address=listen_address,
            telemetry_path=telemetry_path,
            auth_config=str(auth_config) if auth_config is not None else None,
            file_path=str(file_path) if file_path is not None else None,
        )
    except ExporterError as e:
        raise click.ClickException(str(e)) from e

    validate_config(config)
    configure_logging(logging.DEBUG if verbose else config.log_level)

    ctx.obj = CLIContext(config, verbose=verbose)
    run_exporter(ctx.obj)


def run_exporter(ctx: CLIContext) -> None:
    """Run the exporter in file or HTTP mode."""
    config = ctx.config

    try:
        ensure_root()
        ensure_racct_available()

        if config.output.file_path is not None:
            output = is_valid_output_file_path(config.output.file_path)
            logger.debug(f"Exporting metrics to {output}")
            FileExporter(output).export(ctx.engine)
            return

        serve(
            ctx.engine,
            listen_address=config.web.listen_address,
            telemetry_path=config.web.telemetry_path,
            auth_config=ctx.auth_config(),
        )
    except ExporterError as e:
        logger.debug(f"Exiting on {type(e).__name__}")
        raise click.ClickException(str(e)) from e


# =============================================================================
# bcrypt Command
# =============================================================================


@cli.command()
@click.option(
    "-c", "--cost",
    default=DEFAULT_COST,
    show_default=True,
    callback=click_callback(is_valid_bcrypt_cost),
    help="Computes the hash using the given cost",
)
@click.option(
    "-l", "--length",
    default=DEFAULT_PASSWORD_LENGTH,
    show_default=True,
    callback=click_callback(is_valid_length),
    help="Specify the random password length",
)
@click.option(
    "-r", "--random",
    is_flag=True,
    help="Generate a random password instead of having to specify one",
)
@click.argument(
    "password",
    required=False,
    callback=click_callback(is_valid_password),
)
def bcrypt(cost: int, length: int, random: bool, password: str | None) -> None:
    """Returns bcrypt encrypted passwords suitable for HTTP Basic Auth.

    A prompt is provided if PASSWORD is not given and --random is not set.
    """
    if password is None:
        if random:
            password = generate_password(length)
        else:
            password = click.prompt(
                "Password",
                hide_input=True,
                confirmation_prompt="Confirm password",
            )

    hashed = hash_password(password, cost)

    if random:
        click.echo(f"Password: {password}")
    click.echo(f"Hash: {hashed}")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
