from destroyable.exceptions import (
    BaseDestroyableError,
)


class TransportError(BaseDestroyableError):
    """Raised when there is an error in the transport layer."""


class ServerNotListeningError(TransportError):
    """Raised when closing a server that is not listening."""


class OpenConnectionError(TransportError):
    pass


class UpgradeFailure(TransportError):
    pass


class HandshakeFailure(UpgradeFailure):
    pass
