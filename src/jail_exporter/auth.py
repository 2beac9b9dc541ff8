"""HTTP Basic Authentication for the exporter.

Users and bcrypt password hashes are read from a YAML file:

    basic_auth_users:
      prometheus: $2b$12$...

Hashes can be produced with ``jail_exporter bcrypt``.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import logging
import re
import secrets
import string
from dataclasses import dataclass
from pathlib import Path

import bcrypt
import yaml

from jail_exporter import ExporterError

logger = logging.getLogger(__name__)

# Invalid username characters as defined in RFC 7617: CTLs and colon.
INVALID_USERNAME_CHARS = frozenset([chr(c) for c in range(0x00, 0x20)] + ["\x7f", ":"])

# $2a$ / $2b$ / $2x$ / $2y$, two digit cost, 22 chars of salt + 31 of hash.
BCRYPT_HASH_RE = re.compile(r"^\$2[abxy]?\$(\d{2})\$[./A-Za-z0-9]{53}$")

DEFAULT_COST = 12
MIN_COST = 4
MAX_COST = 31
DEFAULT_PASSWORD_LENGTH = 32


class AuthConfigError(ExporterError):
    """Raised when the basic auth configuration is invalid."""

    pass


def is_bcrypt_hash(value: str) -> bool:
    """Check that a string looks like a usable bcrypt hash."""
    match = BCRYPT_HASH_RE.match(value)
    if match is None:
        return False
    return MIN_COST <= int(match.group(1)) <= MAX_COST


@dataclass
class BasicAuthConfig:
    """Users allowed to scrape the exporter."""

    basic_auth_users: dict[str, str] | None = None

    @classmethod
    def from_yaml(cls, path: str | Path) -> BasicAuthConfig:
        """Load and validate a configuration file.

        Raises:
            AuthConfigError: If the file cannot be read or is invalid.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise AuthConfigError(f"Cannot read auth config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise AuthConfigError(f"Invalid YAML in auth config {path}: {e}") from e

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> BasicAuthConfig:
        if not isinstance(data, dict):
            raise AuthConfigError("auth config must be a mapping")

        users = data.get("basic_auth_users")
        if users is not None:
            if not isinstance(users, dict):
                raise AuthConfigError("basic_auth_users must be a mapping of user: hash")
            users = {str(k): str(v) for k, v in users.items()}

        config = cls(basic_auth_users=users)
        config.validate()
        return config

    def validate(self) -> None:
        """Validate usernames and password hashes.

        Not having users is perfectly valid.

        Raises:
            AuthConfigError: On the first invalid entry.
        """
        if not self.basic_auth_users:
            return

        for username, hashed in self.basic_auth_users.items():
            if any(c in INVALID_USERNAME_CHARS for c in username):
                raise AuthConfigError(f"invalid username: {username!r}")

            if not is_bcrypt_hash(hashed):
                raise AuthConfigError(f"invalid bcrypt hash for user {username}")

    def has_users(self) -> bool:
        return bool(self.basic_auth_users)

    def verify(self, username: str, password: str) -> bool:
        """Check a username and password against the configured hashes."""
        users = self.basic_auth_users or {}

        hashed = None
        for candidate, candidate_hash in users.items():
            if hmac.compare_digest(candidate.encode(), username.encode()):
                hashed = candidate_hash

        known = hashed is not None
        if not known:
            logger.debug(f"Unknown basic auth user: {username!r}")
            if not users:
                return False
            # Unknown users still pay for a full bcrypt check.
            hashed = next(iter(users.values()))

        try:
            valid = bcrypt.checkpw(password.encode(), hashed.encode())
        except ValueError:
            return False

        return known and valid


def parse_basic_authorization(header: str) -> tuple[str, str] | None:
    """Decode an ``Authorization: Basic ...`` header.

    Returns:
        Tuple of (username, password), or None if the header is not valid
        Basic credentials.
    """
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def hash_password(password: str, cost: int = DEFAULT_COST) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=cost)).decode()


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """Generate a random alphanumeric password."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
