import logging

from multiaddr import (
    Multiaddr,
)
from multiaddr.exceptions import (
    ProtocolLookupError,
)
import trio
from trio_typing import (
    TaskStatus,
)

from destroyable.abc import (
    IConnection,
    ISecureServer,
)
from destroyable.config import (
    CONNECTION_CLOSE_TIMEOUT,
    ServerConfig,
)
from destroyable.connection.tcp_connection import (
    TCPConnection,
)
from destroyable.custom_types import (
    IUpgrader,
    TConnectionCallback,
    THandler,
)
from destroyable.transport.exceptions import (
    HandshakeFailure,
    OpenConnectionError,
    ServerNotListeningError,
    TransportError,
)

logger = logging.getLogger("destroyable.transport.tcp")


def _host_from_multiaddr(maddr: Multiaddr) -> str | None:
    for proto in ("ip4", "ip6"):
        try:
            value = maddr.value_for_protocol(proto)
        except ProtocolLookupError:
            continue
        if value is not None:
            return value
    return None


def _port_from_multiaddr(maddr: Multiaddr) -> int | None:
    try:
        port_str = maddr.value_for_protocol("tcp")
    except ProtocolLookupError:
        return None
    try:
        return int(port_str)
    except (TypeError, ValueError):
        return None


class TCPServer(ISecureServer):
    """
    A TCP server running each connection's handler in its own task.

    Accepted connections are reported to ``on_connection`` callbacks before
    their handler starts. With an ``upgrader``, the upgraded connection is
    reported to ``on_secure_connection`` callbacks and handed to the handler
    instead. When the handler returns, fails or is cancelled, the connection
    is closed.
    """

    listeners: list[trio.SocketListener]
    config: ServerConfig
    upgrader: IUpgrader | None

    def __init__(
        self,
        handler_function: THandler,
        config: ServerConfig | None = None,
        upgrader: IUpgrader | None = None,
    ) -> None:
        self.listeners = []
        self.handler = handler_function
        self.config = config if config is not None else ServerConfig()
        self.upgrader = upgrader
        self._connection_callbacks: list[TConnectionCallback] = []
        self._secure_connection_callbacks: list[TConnectionCallback] = []
        self._connections: set[TCPConnection] = set()
        self._is_closing = False
        self._event_drained = trio.Event()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def on_connection(self, callback: TConnectionCallback) -> None:
        self._connection_callbacks.append(callback)

    def on_secure_connection(self, callback: TConnectionCallback) -> None:
        self._secure_connection_callbacks.append(callback)

    def emit_connection(self, conn: IConnection) -> None:
        """Report ``conn`` to every ``on_connection`` callback."""
        for callback in self._connection_callbacks:
            callback(conn)

    def emit_secure_connection(self, conn: IConnection) -> None:
        for callback in self._secure_connection_callbacks:
            callback(conn)

    async def listen(self, maddr: Multiaddr, nursery: trio.Nursery) -> bool:
        """
        Put the server in listening mode and accept connections in ``nursery``.

        :param maddr: address to listen on, e.g. ``/ip4/127.0.0.1/tcp/0``
        :param nursery: nursery running the accept loops and handler tasks
        :return: return True if successful
        """
        tcp_port = _port_from_multiaddr(maddr)
        if tcp_port is None:
            logger.error(f"Cannot listen: missing or invalid TCP port in {maddr}")
            return False

        # None listens on all available interfaces.
        host = _host_from_multiaddr(maddr)

        try:
            started_listeners = await trio.open_tcp_listeners(
                tcp_port, host=host, backlog=self.config.backlog
            )
        except OSError as error:
            logger.error(f"Failed to start TCP listener for {maddr}: {error}")
            return False

        self._is_closing = False
        self.listeners.extend(started_listeners)
        for listener in started_listeners:
            nursery.start_soon(self._accept_loop, listener, nursery)
        logger.debug("listening on %s", maddr)
        return True

    async def serve(
        self,
        maddr: Multiaddr,
        task_status: TaskStatus[tuple[Multiaddr, ...]] = trio.TASK_STATUS_IGNORED,
    ) -> None:
        """
        Listen on ``maddr`` and run until the server is closed and every
        connection it accepted has been handled.

        Meant for ``nursery.start``, which returns the listen addresses.

        :raise TransportError: if the server cannot listen on ``maddr``
        """
        async with trio.open_nursery() as nursery:
            is_listening = await self.listen(maddr, nursery)
            if is_listening:
                task_status.started(self.get_addrs())
        if not is_listening:
            raise TransportError(f"Failed to listen on {maddr}")

    def get_addrs(self) -> tuple[Multiaddr, ...]:
        """
        Retrieve list of addresses the server is listening on.

        :return: return list of addrs
        """
        return tuple(
            _multiaddr_from_socket(listener.socket) for listener in self.listeners
        )

    async def close(self) -> None:
        """
        Stop accepting connections and wait until every connection accepted so
        far has been handled and closed.

        Open connections are left alone; this only returns once their
        handlers finish.

        :raise ServerNotListeningError: if the server is not listening
        """
        if not self.listeners:
            raise ServerNotListeningError("Server is not listening")

        listeners, self.listeners = self.listeners, []
        self._is_closing = True
        self._event_drained = trio.Event()
        async with trio.open_nursery() as nursery:
            for listener in listeners:
                nursery.start_soon(listener.aclose)

        logger.debug(
            "stopped accepting, waiting for %d connection(s)", len(self._connections)
        )
        if self._connections:
            await self._event_drained.wait()
        logger.debug("server closed")

    async def _accept_loop(
        self, listener: trio.SocketListener, nursery: trio.Nursery
    ) -> None:
        while True:
            try:
                stream = await listener.accept()
            except trio.ClosedResourceError:
                return

            limit = self.config.max_connections
            if limit is not None and len(self._connections) >= limit:
                logger.debug("connection limit %d reached, dropping", limit)
                await trio.aclose_forcefully(stream)
                continue

            conn = TCPConnection(stream)
            self._connections.add(conn)
            self.emit_connection(conn)
            nursery.start_soon(self._handle, conn)

    async def _handle(self, conn: TCPConnection) -> None:
        target: IConnection = conn
        try:
            with conn.cancel_scope:
                try:
                    if self.upgrader is not None:
                        target = await self._upgrade(conn)
                        self.emit_secure_connection(target)
                    await self.handler(target)
                except Exception as error:
                    logger.debug(f"Connection {conn!r} failed: {error}")
        finally:
            await self._close_connection(conn, target)
            self._connections.discard(conn)
            if self._is_closing and not self._connections:
                self._event_drained.set()

    async def _upgrade(self, conn: TCPConnection) -> IConnection:
        assert self.upgrader is not None
        try:
            with trio.fail_after(self.config.handshake_timeout):
                return await self.upgrader.upgrade(conn)
        except trio.TooSlowError as error:
            raise HandshakeFailure(f"Upgrade of {conn!r} timed out") from error

    async def _close_connection(
        self, conn: TCPConnection, target: IConnection
    ) -> None:
        deadline = trio.current_time() + CONNECTION_CLOSE_TIMEOUT
        with trio.CancelScope(deadline=deadline, shield=True):
            try:
                if target is not conn:
                    await target.close()
            finally:
                await conn.close()


async def dial_tcp(maddr: Multiaddr) -> TCPConnection:
    """
    Dial a TCP server listening on ``maddr``.

    :param maddr: multiaddr of the server
    :return: `TCPConnection` if successful
    :raise OpenConnectionError: raised when failed to open connection
    """
    host = _host_from_multiaddr(maddr)
    if host is None:
        raise OpenConnectionError(
            f"Failed to dial {maddr}: IP address not found in multiaddr."
        )

    port = _port_from_multiaddr(maddr)
    if port is None:
        raise OpenConnectionError(
            f"Failed to dial {maddr}: TCP port not found in multiaddr."
        )

    try:
        stream = await trio.open_tcp_stream(host, port)
    except OSError as error:
        # OSError is common for network issues like "Connection refused"
        # or "Host unreachable".
        raise OpenConnectionError(
            f"Failed to open TCP stream to {maddr}: {error}"
        ) from error

    return TCPConnection(stream)


def _multiaddr_from_socket(socket: trio.socket.SocketType) -> Multiaddr:
    ip, port = socket.getsockname()[:2]
    proto = "ip6" if socket.family == trio.socket.AF_INET6 else "ip4"
    return Multiaddr(f"/{proto}/{ip}/tcp/{port}")
