"""Credential discovery for SSH authentication."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import asyncssh
from loguru import logger

from .hosts import Host

# Tried in this order; anything missing or unreadable is skipped
DEFAULT_KEY_FILES = (
    "~/.ssh/id_ecdsa",
    "~/.ssh/id_rsa",
    "~/.ssh/id_dsa",
)


def load_keyring(key_files: Iterable[str | Path] = DEFAULT_KEY_FILES) -> list[asyncssh.SSHKey]:
    """Load every readable, unencrypted private key from ``key_files``."""
    keys = []
    for key_file in key_files:
        path = Path(key_file).expanduser()
        try:
            keys.append(asyncssh.read_private_key(str(path)))
        except OSError:
            logger.debug(f"Skipping key {path}: not readable")
        except (asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            logger.debug(f"Skipping key {path}: {e}")
        else:
            logger.debug(f"Loaded key {path}")
    return keys


@dataclass(frozen=True)
class Credentials:
    """The ordered authentication methods offered to every host.

    Public keys are shared by all hosts; a host's password is only ever added
    to that host's own copy of the options.
    """

    keys: tuple[asyncssh.SSHKey, ...] = field(default_factory=tuple)

    @classmethod
    def discover(cls, key_files: Iterable[str | Path] = DEFAULT_KEY_FILES) -> Credentials:
        return cls(keys=tuple(load_keyring(key_files)))

    def for_host(self, host: Host) -> dict[str, Any]:
        """Return asyncssh connect options authenticating as ``host.user``."""
        options: dict[str, Any] = {
            "username": host.user,
            "client_keys": list(self.keys),
            "agent_path": None,
            "preferred_auth": ("publickey",),
        }
        if host.password is not None:
            options["password"] = host.password
            options["preferred_auth"] = ("publickey", "password")
        return options
