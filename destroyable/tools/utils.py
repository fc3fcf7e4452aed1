from collections.abc import (
    Callable,
)

import trio

from destroyable.abc import (
    IConnection,
    ISecureServer,
)
from destroyable.connection.base_connection import (
    BaseConnection,
)
from destroyable.connection.tcp_connection import (
    TCPConnection,
)

from .constants import (
    MAX_READ_LEN,
)


class MockConnection(BaseConnection):
    """
    A connection handle without a socket behind it.

    ``reports_closed`` forces :attr:`closed` to True from the start. With
    ``emits_close=False`` the handle never fires its close callbacks, not even
    when destroyed. ``destroy_log`` collects handles in the order they were
    destroyed.
    """

    def __init__(
        self,
        remote_address: tuple[str, int] | None = ("127.0.0.1", 4001),
        parent: IConnection | None = None,
        reports_closed: bool = False,
        emits_close: bool = True,
        destroy_log: list[IConnection] | None = None,
        destroy_error: Exception | None = None,
    ) -> None:
        super().__init__(parent=parent)
        self.remote_address = remote_address
        self.reports_closed = reports_closed
        self.emits_close = emits_close
        self.destroy_log = destroy_log if destroy_log is not None else []
        self.destroy_error = destroy_error
        self.is_destroyed = False

    @property
    def closed(self) -> bool:
        return self.reports_closed or self._is_closed

    def get_remote_address(self) -> tuple[str, int] | None:
        return self.remote_address

    def fire_close(self) -> None:
        """Simulate the connection closing on its own."""
        self._mark_closed()

    async def close(self) -> None:
        await trio.lowlevel.checkpoint()
        if self.emits_close:
            self._mark_closed()

    async def destroy(self) -> None:
        await trio.lowlevel.checkpoint()
        self.is_destroyed = True
        self.destroy_log.append(self)
        if self.emits_close:
            self._mark_closed()
        if self.destroy_error is not None:
            raise self.destroy_error


class MockServer(ISecureServer):
    """
    A server whose connections are injected by the test.

    ``close()`` raises ``close_error`` when given, and blocks until
    ``release_close`` is set when given.
    """

    def __init__(
        self,
        close_error: Exception | None = None,
        release_close: trio.Event | None = None,
    ) -> None:
        self.connection_callbacks: list[Callable[[IConnection], None]] = []
        self.secure_connection_callbacks: list[Callable[[IConnection], None]] = []
        self.close_error = close_error
        self.release_close = release_close
        self.close_calls = 0
        self.is_closed = False

    def on_connection(self, callback: Callable[[IConnection], None]) -> None:
        self.connection_callbacks.append(callback)

    def on_secure_connection(self, callback: Callable[[IConnection], None]) -> None:
        self.secure_connection_callbacks.append(callback)

    def accept(self, conn: IConnection) -> None:
        for callback in self.connection_callbacks:
            callback(conn)

    def accept_secure(self, conn: IConnection) -> None:
        for callback in self.secure_connection_callbacks:
            callback(conn)

    async def close(self) -> None:
        self.close_calls += 1
        if self.release_close is not None:
            await self.release_close.wait()
        else:
            await trio.lowlevel.checkpoint()
        if self.close_error is not None:
            raise self.close_error
        self.is_closed = True


async def hold_open(conn: IConnection) -> None:
    """Connection handler that never returns on its own."""
    await trio.sleep_forever()


async def echo(conn: TCPConnection) -> None:
    """Connection handler echoing everything back until EOF."""
    while True:
        data = await conn.read(MAX_READ_LEN)
        if not data:
            return
        await conn.write(data)


class PlaintextConnection(BaseConnection):
    """
    A no-op session layered on a TCP connection, standing in for TLS where
    certificates are not available. ``destroy_log`` records destruction.
    """

    parent: TCPConnection

    def __init__(
        self, conn: TCPConnection, destroy_log: list[IConnection] | None = None
    ) -> None:
        super().__init__(parent=conn, cancel_scope=conn.cancel_scope)
        self.destroy_log = destroy_log if destroy_log is not None else []

    def get_remote_address(self) -> tuple[str, int] | None:
        return self.parent.get_remote_address()

    async def read(self, n: int | None = None) -> bytes:
        return await self.parent.read(n)

    async def write(self, data: bytes) -> None:
        await self.parent.write(data)

    async def close(self) -> None:
        await trio.lowlevel.checkpoint()
        self._mark_closed()

    async def destroy(self) -> None:
        self.destroy_log.append(self)
        self.cancel_scope.cancel()
        await trio.lowlevel.checkpoint()
        self._mark_closed()


class PlaintextUpgrader:
    def __init__(self, destroy_log: list[IConnection] | None = None) -> None:
        self.destroy_log = destroy_log if destroy_log is not None else []

    async def upgrade(self, conn: IConnection) -> PlaintextConnection:
        assert isinstance(conn, TCPConnection)
        await trio.lowlevel.checkpoint()
        return PlaintextConnection(conn, self.destroy_log)
