import logging
import ssl

import trio

from destroyable.connection.base_connection import (
    BaseConnection,
)
from destroyable.connection.tcp_connection import (
    TCPConnection,
)

logger = logging.getLogger("destroyable.connection.tls")


class TLSConnection(BaseConnection):
    """
    A TLS session layered on top of a :class:`TCPConnection`.

    The raw connection is kept as :attr:`parent`. Both share the remote
    address and the handler cancel scope.
    """

    parent: TCPConnection
    ssl_stream: trio.SSLStream

    def __init__(
        self,
        conn: TCPConnection,
        ssl_context: ssl.SSLContext,
        server_side: bool = True,
    ) -> None:
        super().__init__(parent=conn, cancel_scope=conn.cancel_scope)
        self.ssl_stream = trio.SSLStream(
            conn.stream, ssl_context, server_side=server_side
        )

    async def handshake(self) -> None:
        await self.ssl_stream.do_handshake()

    async def write(self, data: bytes) -> None:
        try:
            await self.ssl_stream.send_all(data)
        except (trio.ClosedResourceError, trio.BrokenResourceError) as error:
            logger.debug("Write attempted on closed/broken TLS session: %s", error)

    async def read(self, n: int | None = None) -> bytes:
        if n is not None and n == 0:
            return b""
        try:
            return await self.ssl_stream.receive_some(n)
        except (trio.ClosedResourceError, trio.BrokenResourceError) as error:
            logger.debug("Read attempted on closed/broken TLS session: %s", error)
            return b""

    async def close(self) -> None:
        try:
            await self.ssl_stream.aclose()
        except (trio.ClosedResourceError, trio.BrokenResourceError) as error:
            logger.debug("TLS session already broken on close: %s", error)
        finally:
            self._mark_closed()

    async def destroy(self) -> None:
        # Skips close_notify and closes the raw socket underneath, without
        # telling the parent connection.
        self.cancel_scope.cancel()
        await trio.aclose_forcefully(self.ssl_stream)
        self._mark_closed()

    def get_remote_address(self) -> tuple[str, int] | None:
        """Delegate to the underlying connection's get_remote_address method."""
        return self.parent.get_remote_address()
