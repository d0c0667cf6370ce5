"""Error types for clusterssh."""

from __future__ import annotations


class ClusterSSHError(Exception):
    """Base exception for clusterssh errors."""


class HostSpecError(ClusterSSHError, ValueError):
    """A host specification string could not be parsed."""


class ConfigError(ClusterSSHError, ValueError):
    """The configuration file is invalid."""


class LocalIOError(ClusterSSHError):
    """Reading local input failed."""


class HostError(ClusterSSHError):
    """Base for errors scoped to a single host; carried in that host's Result."""


class HostConnectionError(HostError):
    """The transport connection could not be opened or was lost."""


class AuthenticationError(HostConnectionError):
    """The remote host rejected every offered credential."""


class SessionSetupError(HostError):
    """The session channel could not be opened."""


class PtyRequestError(SessionSetupError):
    """The remote host refused to allocate a pseudo-terminal."""


class CommandExecutionError(HostError):
    """The remote command exited with a non-zero status or by a signal."""

    def __init__(
        self,
        message: str,
        exit_status: int | None = None,
        exit_signal: str | None = None,
    ):
        super().__init__(message)
        self.exit_status = exit_status
        self.exit_signal = exit_signal
