import logging

from destroyable.abc import (
    IConnection,
)

logger = logging.getLogger("destroyable.registry")

UNKNOWN_REMOTE = ("unknown", 0)


def connection_key(conn: IConnection) -> str:
    """
    Build the registry key ``"host:port"`` for the remote end of ``conn``.

    Keys are not unique: two live connections may share one, e.g. a TLS
    session and the raw connection it is layered on.
    """
    remote = conn.get_remote_address()
    if remote is None:
        remote = UNKNOWN_REMOTE
    host, port = remote
    return f"{host}:{port}"


class ConnectionRegistry:
    """
    Open connections of a single server, keyed by remote endpoint.

    Each key maps to the connections currently open for it, in the order they
    were accepted. A key whose last connection is removed disappears.
    """

    _connections: dict[str, list[IConnection]]

    def __init__(self) -> None:
        self._connections = {}

    def register(self, key: str, conn: IConnection) -> None:
        conns = self._connections.setdefault(key, [])
        conns.append(conn)
        logger.debug("registered connection %s (%d for key)", key, len(conns))

    def unregister(self, key: str, conn: IConnection) -> None:
        """
        Remove ``conn`` from ``key``.

        Connections are matched by identity. Unknown keys and connections
        are ignored, so duplicate close notifications are harmless.
        """
        conns = self._connections.get(key)
        if conns is None:
            return

        for index, existing in enumerate(conns):
            if existing is conn:
                del conns[index]
                break
        else:
            return

        if not conns:
            del self._connections[key]
        logger.debug("unregistered connection %s", key)

    def snapshot(self) -> dict[str, tuple[IConnection, ...]]:
        """Return a copy of the current state, unaffected by later changes."""
        return {key: tuple(conns) for key, conns in self._connections.items()}

    def keys(self) -> tuple[str, ...]:
        return tuple(self._connections)

    def __contains__(self, key: object) -> bool:
        return key in self._connections

    def __len__(self) -> int:
        return sum(len(conns) for conns in self._connections.values())
