"""Forceful, deterministic shutdown for trio servers."""

from importlib.metadata import version as __version

from destroyable.abc import (
    IConnection,
    IServer,
    ISecureServer,
)
from destroyable.custom_types import (
    DestroyableServer,
)
from destroyable.destroyer import (
    ServerDestroyer,
    ShutdownState,
    is_connection_closed,
    make_destroyable,
)
from destroyable.registry import (
    ConnectionRegistry,
    connection_key,
)
from destroyable.utils.logging import (
    setup_logging,
)

# Initialize logging configuration
setup_logging()

__all__ = [
    "ConnectionRegistry",
    "DestroyableServer",
    "IConnection",
    "ISecureServer",
    "IServer",
    "ServerDestroyer",
    "ShutdownState",
    "connection_key",
    "is_connection_closed",
    "make_destroyable",
]

__version__ = __version("destroyable")
