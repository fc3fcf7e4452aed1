import logging
import ssl

import trio

from destroyable.abc import (
    IConnection,
)
from destroyable.connection.tcp_connection import (
    TCPConnection,
)
from destroyable.connection.tls_connection import (
    TLSConnection,
)
from destroyable.transport.exceptions import (
    HandshakeFailure,
    UpgradeFailure,
)

logger = logging.getLogger("destroyable.transport.tls")


class TLSUpgrader:
    """Upgrade accepted TCP connections to server-side TLS sessions."""

    ssl_context: ssl.SSLContext

    def __init__(self, ssl_context: ssl.SSLContext) -> None:
        self.ssl_context = ssl_context

    async def upgrade(self, conn: IConnection) -> TLSConnection:
        """
        Run the TLS handshake over ``conn``.

        :raise UpgradeFailure: if ``conn`` is not a TCP connection
        :raise HandshakeFailure: if the handshake fails
        """
        if not isinstance(conn, TCPConnection):
            raise UpgradeFailure(f"cannot layer TLS over {type(conn).__name__}")

        session = TLSConnection(conn, self.ssl_context)
        try:
            await session.handshake()
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise HandshakeFailure(f"TLS handshake with {conn!r} failed") from error
        logger.debug("TLS session established with %r", conn)
        return session
