import argparse
import logging
from typing import (
    cast,
)

import multiaddr
import trio

from destroyable import (
    make_destroyable,
)
from destroyable.abc import (
    IConnection,
)
from destroyable.config import (
    DEFAULT_BIND_ADDRESS,
)
from destroyable.custom_types import (
    DestroyableServer,
)
from destroyable.tools.constants import (
    MAX_READ_LEN,
)
from destroyable.transport.tcp import (
    TCPServer,
    dial_tcp,
)

# Configure minimal logging
logging.basicConfig(level=logging.WARNING)
logging.getLogger("destroyable").setLevel(logging.WARNING)


async def _hold_handler(conn: IConnection) -> None:
    remote = conn.get_remote_address()
    print(f"Holding connection from {remote}")
    # Never reply, never close: only destroy() gets rid of this connection
    await trio.sleep_forever()


async def run_server(port: int, lifetime: float | None) -> None:
    listen_addr = multiaddr.Multiaddr(f"/ip4/{DEFAULT_BIND_ADDRESS}/tcp/{port}")
    server = make_destroyable(TCPServer(_hold_handler))
    destroyable_server = cast(DestroyableServer, server)

    async with trio.open_nursery() as nursery:
        addrs = await nursery.start(server.serve, listen_addr)

        for addr in addrs:
            print(f"Listening on {addr}")
            print(
                "\nRun this from the same folder in another console:\n\n"
                f"destroy-demo -d {addr}\n"
            )

        try:
            if lifetime is None:
                await trio.sleep_forever()
            else:
                await trio.sleep(lifetime)
        finally:
            open_conns = server.connection_count
            with trio.CancelScope(shield=True):
                await destroyable_server.destroy()
            print(f"Server destroyed, tore down {open_conns} connection(s)")


async def run_client(destination: str) -> None:
    conn = await dial_tcp(multiaddr.Multiaddr(destination))
    print(f"Connected to {destination}, waiting for the server to drop us")
    data = await conn.read(MAX_READ_LEN)
    while data:
        data = await conn.read(MAX_READ_LEN)
    print("Server closed the connection")
    await conn.close()


def main() -> None:
    description = """
    This program demonstrates forcefully destroying a server with open
    connections. Run 'destroy-demo -p <PORT> -t <SECONDS>' to start a server
    that holds every connection open, then 'destroy-demo -d <MULTIADDR>' in
    another console to connect to it. The server tears down all connections
    when its lifetime ends or on Ctrl+C.
    """
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("-p", "--port", default=0, type=int, help="listen port")
    parser.add_argument(
        "-t",
        "--lifetime",
        type=float,
        help="seconds until the server is destroyed (default: until Ctrl+C)",
    )
    parser.add_argument(
        "-d",
        "--destination",
        type=str,
        help="server multiaddr to connect to, e.g. /ip4/127.0.0.1/tcp/8000",
    )
    args = parser.parse_args()
    try:
        if args.destination:
            trio.run(run_client, args.destination)
        else:
            trio.run(run_server, args.port, args.lifetime)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
