"""Validation of command line arguments.

Each validator returns the parsed value or raises ValueError with a message
suitable for showing to the user.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from jail_exporter.auth import MAX_COST, MIN_COST

T = TypeVar("T")

# Passed to --output.file-path to write metrics to stdout.
STDOUT = "-"


def is_valid_socket_addr(value: str) -> str:
    """Check an ADDR:PORT string. IPv6 addresses must be bracketed."""
    host, sep, port = value.rpartition(":")
    if not sep or not host:
        raise ValueError(f"'{value}' is not a valid ADDR:PORT string")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        ipaddress.ip_address(host)
        port_number = int(port)
    except ValueError:
        raise ValueError(f"'{value}' is not a valid ADDR:PORT string") from None

    if not 0 <= port_number <= 65535:
        raise ValueError(f"'{value}' is not a valid ADDR:PORT string")

    return value


def split_socket_addr(value: str) -> tuple[str, int]:
    """Split a validated ADDR:PORT string into host and port."""
    host, _, port = value.rpartition(":")
    return host.strip("[]"), int(port)


def is_valid_telemetry_path(value: str) -> str:
    if not value:
        raise ValueError("path must not be empty")
    if not value.startswith("/"):
        raise ValueError("path must start with /")
    if value == "/":
        raise ValueError("path must not be /")
    return value


def is_valid_output_file_path(value: str) -> str | Path:
    """Basic checks for a node_exporter textfile path.

    Returns:
        STDOUT for ``-``, otherwise the Path to write.
    """
    if value == STDOUT:
        return STDOUT

    path = Path(value)

    if not path.is_absolute():
        raise ValueError("output.file-path only accepts absolute paths")
    if path.is_dir():
        raise ValueError("output.file-path must not point at a directory")

    # Node Exporter textfiles must end with .prom
    if path.suffix != ".prom":
        raise ValueError("output.file-path must have .prom extension")

    if not path.parent.is_dir():
        raise ValueError("output.file-path directory must exist")

    return path


def is_valid_basic_auth_config_path(value: str) -> Path:
    path = Path(value)
    if not path.is_file():
        raise ValueError("web.auth-config doesn't exist")
    return path


def is_valid_bcrypt_cost(value: str | int) -> int:
    try:
        cost = int(value)
    except ValueError:
        raise ValueError("could not parse bcrypt cost as integer") from None

    if not MIN_COST <= cost <= MAX_COST:
        raise ValueError(f"cost cannot be less than {MIN_COST} or more than {MAX_COST}")
    return cost


def is_valid_length(value: str | int) -> int:
    try:
        length = int(value)
    except ValueError:
        raise ValueError(f"Could not parse '{value}' as valid length") from None

    if length < 1:
        raise ValueError("--length cannot be less than 1")
    return length


def is_valid_password(value: str) -> str:
    if not value:
        raise ValueError("password cannot be empty")
    return value


def click_callback(validator: Callable[[Any], T]) -> Callable[[click.Context, click.Parameter, Any], T | None]:
    """Adapt a validator for use as a click option callback.

    None (option not given) passes through untouched.
    """

    def callback(ctx: click.Context, param: click.Parameter, value: Any) -> T | None:
        if value is None:
            return None
        try:
            return validator(value)
        except ValueError as e:
            raise click.BadParameter(str(e), ctx=ctx, param=param) from e

    return callback
