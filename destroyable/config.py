"""
Configuration for the TCP server that ``make_destroyable`` is exercised with.
"""

from dataclasses import (
    dataclass,
)
import os

from destroyable.exceptions import (
    ValidationError,
)

# Default bind address, overridable via DESTROYABLE_BIND (e.g. "0.0.0.0")
DEFAULT_BIND_ADDRESS = os.getenv("DESTROYABLE_BIND", "127.0.0.1")

# Default timeout values (in seconds)
DEFAULT_HANDSHAKE_TIMEOUT = 10.0
CONNECTION_CLOSE_TIMEOUT = 1.0


@dataclass
class ServerConfig:
    """
    Configuration for a listening server.

    Attributes:
        backlog: Listen backlog passed to ``trio.open_tcp_listeners``.
                 Default: None (let trio pick the system maximum)
        handshake_timeout: Seconds an inbound connection may spend in the
                           security upgrade before it is dropped.
                           Default: 10.0 seconds
        max_connections: Maximum number of simultaneously handled
                         connections. Sockets accepted beyond the cap are
                         closed immediately and never reported.
                         Default: None (unlimited)

    """

    backlog: int | None = None
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    max_connections: int | None = None

    def __post_init__(self) -> None:
        if self.backlog is not None and self.backlog <= 0:
            raise ValidationError(f"backlog must be positive, got {self.backlog}")
        if self.handshake_timeout <= 0:
            raise ValidationError(
                f"handshake_timeout must be positive, got {self.handshake_timeout}"
            )
        if self.max_connections is not None and self.max_connections <= 0:
            raise ValidationError(
                f"max_connections must be positive, got {self.max_connections}"
            )
