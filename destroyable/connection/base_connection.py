import trio

from destroyable.abc import (
    IConnection,
)
from destroyable.custom_types import (
    TCloseCallback,
)


class BaseConnection(IConnection):
    """
    Close bookkeeping shared by all connection types.

    ``cancel_scope`` wraps the task handling the connection on the server side;
    destroying the connection cancels it. Layered connections share the scope
    of the connection they wrap.
    """

    parent: IConnection | None
    cancel_scope: trio.CancelScope
    event_closed: trio.Event
    _is_closed: bool
    _close_callbacks: list[TCloseCallback]

    def __init__(
        self,
        parent: IConnection | None = None,
        cancel_scope: trio.CancelScope | None = None,
    ) -> None:
        self.parent = parent
        if cancel_scope is None:
            cancel_scope = trio.CancelScope()
        self.cancel_scope = cancel_scope
        self.event_closed = trio.Event()
        self._is_closed = False
        self._close_callbacks = []

    @property
    def closed(self) -> bool:
        return self._is_closed

    def on_close(self, callback: TCloseCallback) -> None:
        """
        Callbacks registered after the connection closed are never called,
        check :attr:`closed` first.
        """
        self._close_callbacks.append(callback)

    def _mark_closed(self) -> None:
        if self._is_closed:
            return
        self._is_closed = True
        self.event_closed.set()
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    def __repr__(self) -> str:
        remote = self.get_remote_address()
        peer = f"{remote[0]}:{remote[1]}" if remote is not None else "unknown"
        state = "closed" if self.closed else "open"
        return f"<{type(self).__name__} {peer} {state}>"
