"""Host descriptors and host specification parsing."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import unquote, urlsplit

from .errors import HostSpecError

DEFAULT_PORT = 22
FALLBACK_USER = "root"


@dataclass(frozen=True)
class Host:
    """A single remote endpoint.

    Equality and hashing use (name, port, user) only; the password is an
    authentication hint and never shows up in repr.
    """

    name: str
    port: int = DEFAULT_PORT
    user: str = FALLBACK_USER
    password: str | None = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.name, self.port, self.user)

    def __str__(self) -> str:
        name = f"[{self.name}]" if ":" in self.name else self.name
        return f"{self.user}@{name}:{self.port}"


def local_user() -> str:
    """Return the invoking user's name, or a fixed fallback."""
    return os.environ.get("USER") or FALLBACK_USER


def parse_host(
    spec: str,
    default_user: str | None = None,
    default_port: int = DEFAULT_PORT,
) -> Host:
    """Parse ``[user[:password]@]host[:port]`` into a Host.

    IPv6 literals must be bracketed (``[::1]:2222``). User and password may
    contain percent-escapes.
    """
    if not spec or not spec.strip():
        raise HostSpecError("empty host specification")
    spec = spec.strip()

    try:
        parts = urlsplit(f"ssh://{spec}")
        port = parts.port
    except ValueError as e:
        raise HostSpecError(f"invalid host '{spec}': {e}") from e

    if port is not None and port < 1:
        raise HostSpecError(f"invalid host '{spec}': port must be between 1 and 65535")

    if parts.path or parts.query or parts.fragment:
        raise HostSpecError(f"invalid host '{spec}': unexpected characters after host")

    if not parts.hostname:
        raise HostSpecError(f"invalid host '{spec}': missing host name")

    user = default_user or local_user()
    password = None
    if "@" in parts.netloc:
        if not parts.username:
            raise HostSpecError(f"invalid host '{spec}': empty user name")
        user = unquote(parts.username)
        if parts.password is not None:
            password = unquote(parts.password)

    # urlsplit lower-cases the host name; keep what the user typed
    hostinfo = parts.netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        name = hostinfo[1:].partition("]")[0]
    else:
        name = hostinfo.partition(":")[0]

    return Host(
        name=name,
        port=port if port is not None else default_port,
        user=user,
        password=password,
    )


def parse_hosts(
    specs: Iterable[str],
    default_user: str | None = None,
    default_port: int = DEFAULT_PORT,
) -> list[Host]:
    """Parse every spec, failing on the first malformed one."""
    return [parse_host(spec, default_user, default_port) for spec in specs]
