from abc import (
    ABC,
    abstractmethod,
)
from collections.abc import (
    Callable,
)
from typing import (
    Optional,
)

# -------------------------- connection interface --------------------------


class IConnection(ABC):
    """
    Interface for a single accepted transport connection.

    Attributes
    ----------
    parent (IConnection | None):
        The connection this one is layered on top of, e.g. the raw TCP
        connection underneath a TLS session. ``None`` for raw connections.

    """

    parent: Optional["IConnection"]

    @abstractmethod
    def get_remote_address(self) -> tuple[str, int] | None:
        """
        Return the remote address of the connected peer.

        :return: A tuple of (host, port) or None if not available
        """

    @property
    @abstractmethod
    def closed(self) -> bool:
        """
        Whether this connection has been closed or destroyed.

        The flag is not guaranteed to be accurate for wrapping connections
        whose underlying connection was torn down directly.
        """

    @abstractmethod
    def on_close(self, callback: Callable[[], None]) -> None:
        """
        Register ``callback`` to be called once, when the connection closes.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection gracefully."""

    @abstractmethod
    async def destroy(self) -> None:
        """
        Forcefully terminate the connection.

        Data in flight may be lost; no graceful protocol shutdown is attempted.
        """


# -------------------------- server interface --------------------------


class IServer(ABC):
    """
    Interface for a passively listening server as seen by the shutdown logic.
    """

    @abstractmethod
    def on_connection(self, callback: Callable[[IConnection], None]) -> None:
        """
        Register ``callback`` to be called with every accepted connection.
        """

    @abstractmethod
    async def close(self) -> None:
        """
        Stop accepting new connections.

        Returns once the server has fully closed.

        :raise TransportError: if the server cannot be closed
        """


class ISecureServer(IServer):
    """
    A server that additionally reports connections after a security upgrade.
    """

    @abstractmethod
    def on_secure_connection(self, callback: Callable[[IConnection], None]) -> None:
        """
        Register ``callback`` to be called with every upgraded connection.
        """
