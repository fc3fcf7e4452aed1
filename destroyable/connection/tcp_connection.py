import logging

import trio

from destroyable.connection.base_connection import (
    BaseConnection,
)

logger = logging.getLogger("destroyable.connection.tcp")


class TCPConnection(BaseConnection):
    stream: trio.SocketStream
    # NOTE: Add both read and write lock to avoid `trio.BusyResourceError`
    read_lock: trio.Lock
    write_lock: trio.Lock
    # Cached so the key can still be computed once the socket is gone
    _cached_remote_address: tuple[str, int] | None

    def __init__(
        self,
        stream: trio.SocketStream,
        cancel_scope: trio.CancelScope | None = None,
    ) -> None:
        super().__init__(cancel_scope=cancel_scope)
        self.stream = stream
        self.read_lock = trio.Lock()
        self.write_lock = trio.Lock()
        self._cached_remote_address = None
        self.get_remote_address()

    @property
    def closed(self) -> bool:
        # The socket may have been closed from above, e.g. by a TLS session
        # being torn down, without going through this connection.
        return self._is_closed or self.stream.socket.fileno() == -1

    async def write(self, data: bytes) -> None:
        async with self.write_lock:
            try:
                await self.stream.send_all(data)
            except (trio.ClosedResourceError, trio.BrokenResourceError) as error:
                logger.debug("Write attempted on closed/broken resource: %s", error)

    async def read(self, n: int | None = None) -> bytes:
        async with self.read_lock:
            if n is not None and n == 0:
                return b""
            try:
                return await self.stream.receive_some(n)
            except (trio.ClosedResourceError, trio.BrokenResourceError) as error:
                # Treat as EOF so handlers exit through their normal path.
                logger.debug("Read attempted on closed/broken resource: %s", error)
                return b""

    async def close(self) -> None:
        try:
            await self.stream.aclose()
        finally:
            self._mark_closed()

    async def destroy(self) -> None:
        self.cancel_scope.cancel()
        await trio.aclose_forcefully(self.stream)
        self._mark_closed()

    def get_remote_address(self) -> tuple[str, int] | None:
        """
        Return the remote address as (host, port) tuple.

        The address is cached on first successful retrieval, since the socket
        cannot be queried any more once the connection is torn down.
        """
        if self._cached_remote_address is not None:
            return self._cached_remote_address

        try:
            remote_addr = self.stream.socket.getpeername()
        except OSError as e:
            logger.debug(
                "OSError getting remote address (socket may be closed/invalid): %s", e
            )
            return None

        # IPv6 sockets report (host, port, flowinfo, scope_id)
        if not isinstance(remote_addr, tuple) or len(remote_addr) < 2:
            logger.debug(f"Invalid remote address format: {remote_addr}")
            return None

        host, port = remote_addr[:2]
        self._cached_remote_address = (str(host), int(port))
        return self._cached_remote_address
