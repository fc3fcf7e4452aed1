import ssl
from unittest.mock import AsyncMock, Mock

import pytest
import trio

from destroyable import is_connection_closed
from destroyable.connection.tcp_connection import TCPConnection
from destroyable.connection.tls_connection import TLSConnection


def _tcp_connection(fileno=7):
    stream = Mock()
    stream.aclose = AsyncMock()
    stream.socket.getpeername.return_value = ("10.0.0.2", 4433)
    stream.socket.fileno.return_value = fileno
    return TCPConnection(stream)


def _tls_connection(conn):
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    session = TLSConnection(conn, context)
    session.ssl_stream = Mock()
    session.ssl_stream.aclose = AsyncMock()
    session.ssl_stream.receive_some = AsyncMock(return_value=b"data")
    session.ssl_stream.send_all = AsyncMock()
    return session


def test_shares_address_and_scope_with_parent():
    conn = _tcp_connection()
    session = _tls_connection(conn)

    assert session.parent is conn
    assert session.get_remote_address() == ("10.0.0.2", 4433)
    assert session.cancel_scope is conn.cancel_scope


@pytest.mark.trio
async def test_destroy_leaves_parent_bookkeeping_alone():
    conn = _tcp_connection()
    session = _tls_connection(conn)
    calls = []
    session.on_close(lambda: calls.append("session"))
    conn.on_close(lambda: calls.append("raw"))

    await session.destroy()

    assert session.closed
    assert conn.cancel_scope.cancel_called
    assert calls == ["session"]
    assert not conn.closed

    # The raw socket went away underneath the parent
    conn.stream.socket.fileno.return_value = -1
    assert conn.closed
    assert is_connection_closed(session)


@pytest.mark.trio
async def test_close_tolerates_broken_session():
    session = _tls_connection(_tcp_connection())
    session.ssl_stream.aclose = AsyncMock(side_effect=trio.BrokenResourceError)

    await session.close()

    assert session.closed
    assert session.event_closed.is_set()


@pytest.mark.trio
async def test_read_write():
    session = _tls_connection(_tcp_connection())

    assert await session.read(10) == b"data"
    assert await session.read(0) == b""
    await session.write(b"hello")
    session.ssl_stream.send_all.assert_called_once_with(b"hello")


@pytest.mark.trio
async def test_read_from_closed_session_is_eof():
    session = _tls_connection(_tcp_connection())
    session.ssl_stream.receive_some = AsyncMock(side_effect=trio.ClosedResourceError)

    assert await session.read(10) == b""
