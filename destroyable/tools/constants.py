import multiaddr

from destroyable.config import (
    DEFAULT_BIND_ADDRESS,
)

# Just a arbitrary large number, used as the read size in tests.
MAX_READ_LEN = 65535

LISTEN_MADDR = multiaddr.Multiaddr(f"/ip4/{DEFAULT_BIND_ADDRESS}/tcp/0")
