"""clusterssh: Run one command on many SSH hosts in parallel."""

from loguru import logger

from .config import Config, Defaults, load_config
from .credentials import Credentials, load_keyring
from .errors import (
    AuthenticationError,
    ClusterSSHError,
    CommandExecutionError,
    ConfigError,
    HostConnectionError,
    HostError,
    HostSpecError,
    LocalIOError,
    PtyRequestError,
    SessionSetupError,
)
from .executor import Cluster, Command, HostStatus, Result, SessionOptions
from .hosts import Host, parse_host, parse_hosts
from .orchestrator import LoopState, Orchestrator

# Silent until an application opts in via setup_logging
logger.disable("clusterssh")

__all__ = [
    "Config",
    "Defaults",
    "load_config",
    "Credentials",
    "load_keyring",
    "ClusterSSHError",
    "HostError",
    "HostConnectionError",
    "AuthenticationError",
    "SessionSetupError",
    "PtyRequestError",
    "CommandExecutionError",
    "LocalIOError",
    "HostSpecError",
    "ConfigError",
    "Cluster",
    "Command",
    "HostStatus",
    "Result",
    "SessionOptions",
    "Host",
    "parse_host",
    "parse_hosts",
    "LoopState",
    "Orchestrator",
]
