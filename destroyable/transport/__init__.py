from .tcp import TCPServer, dial_tcp
from .tls import TLSUpgrader

__all__ = ["TCPServer", "TLSUpgrader", "dial_tcp"]
