from enum import (
    Enum,
)
import logging
import math
from typing import (
    TypeVar,
)

import trio

from destroyable.abc import (
    IConnection,
    IServer,
    ISecureServer,
)
from destroyable.registry import (
    ConnectionRegistry,
    connection_key,
)

logger = logging.getLogger("destroyable.destroyer")

TServer = TypeVar("TServer", bound=IServer)


class ShutdownState(Enum):
    LIVE = "live"
    CLOSING = "closing"
    CLOSED = "closed"


def is_connection_closed(conn: IConnection) -> bool:
    """
    Whether ``conn`` or any connection it is layered on reports closed.

    A wrapping connection does not always notice that the connection under it
    was destroyed, so the parent chain is walked until a closed connection is
    found or the chain ends.
    """
    current: IConnection | None = conn
    while current is not None:
        if current.closed:
            return True
        current = current.parent
    return False


class ServerDestroyer:
    """
    Tracks the open connections of ``server`` and tears them all down on
    :meth:`destroy`.
    """

    server: IServer
    registry: ConnectionRegistry
    state: ShutdownState
    # Set while destroy() waits for the server to close
    _late_conns: trio.MemorySendChannel[tuple[str, IConnection]] | None

    def __init__(self, server: IServer) -> None:
        self.server = server
        self.registry = ConnectionRegistry()
        self.state = ShutdownState.LIVE
        self._late_conns = None

        server.on_connection(self._track)
        if isinstance(server, ISecureServer):
            server.on_secure_connection(self._track)

    def _track(self, conn: IConnection) -> None:
        key = connection_key(conn)
        self.registry.register(key, conn)
        conn.on_close(lambda: self.registry.unregister(key, conn))
        if self._late_conns is not None:
            logger.debug("connection %s accepted during destroy", key)
            self._late_conns.send_nowait((key, conn))

    async def destroy(self) -> None:
        """
        Stop the server, destroy every open connection and wait until all of
        them and the server itself have closed.

        Connections the server reports before its ``close`` returns are
        destroyed as well, even those accepted after this call started.

        :raise Exception: whatever the server's ``close`` raised
        """
        self.state = ShutdownState.CLOSING
        close_errors: list[Exception] = []
        conns_closed: list[trio.Event] = []
        server_closed = trio.Event()

        snapshot = self.registry.snapshot()
        send_late, receive_late = trio.open_memory_channel[tuple[str, IConnection]](
            math.inf
        )
        self._late_conns = send_late

        async def close_server() -> None:
            try:
                await self.server.close()
            except Exception as error:
                logger.debug("server close failed: %s", error)
                close_errors.append(error)
            finally:
                self._late_conns = None
                send_late.close()
                server_closed.set()

        async def destroy_late() -> None:
            async with receive_late:
                async for key, conn in receive_late:
                    await self._destroy_connection(key, conn, conns_closed)

        async with trio.open_nursery() as nursery:
            nursery.start_soon(close_server)
            nursery.start_soon(destroy_late)

            logger.debug(
                "destroying %d connection(s) across %d key(s)",
                sum(len(conns) for conns in snapshot.values()),
                len(snapshot),
            )
            for key, conns in snapshot.items():
                # Most recent first, so layered connections (e.g. tunnels) go
                # before the connections they run over.
                for conn in reversed(conns):
                    await self._destroy_connection(key, conn, conns_closed)

            await server_closed.wait()

        if close_errors:
            raise close_errors[0]

        for event in conns_closed:
            await event.wait()

        # Let the local end of loopback connections see the closure before
        # reporting the server as gone.
        await trio.lowlevel.checkpoint()
        self.state = ShutdownState.CLOSED
        logger.debug("server destroyed")

    async def _destroy_connection(
        self, key: str, conn: IConnection, conns_closed: list[trio.Event]
    ) -> None:
        conns_closed.append(self._wait_closed(conn))
        try:
            await conn.destroy()
        except Exception as error:
            logger.debug("error destroying connection %s: %s", key, error)
        else:
            logger.debug("destroyed connection %s", key)

    def _wait_closed(self, conn: IConnection) -> trio.Event:
        closed = trio.Event()
        if is_connection_closed(conn):
            closed.set()
        else:
            conn.on_close(closed.set)
        return closed


def make_destroyable(server: TServer) -> TServer:
    """
    Make ``server`` destroyable: track all of its connections and add a
    ``destroy()`` coroutine method which destroys every open connection and
    then closes the server.

    The server is mutated in place and returned for convenience. Type
    checkers still see the returned value as the original server type; cast it
    to :class:`~destroyable.custom_types.DestroyableServer` to reach
    ``destroy()`` and ``destroyer`` with type checking.
    """
    destroyer = ServerDestroyer(server)
    setattr(server, "destroy", destroyer.destroy)
    setattr(server, "destroyer", destroyer)
    return server

