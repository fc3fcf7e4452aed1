from collections.abc import (
    Awaitable,
    Callable,
)
from typing import (
    TYPE_CHECKING,
    Protocol,
    runtime_checkable,
)

from destroyable.abc import (
    IConnection,
)

if TYPE_CHECKING:
    from destroyable.destroyer import (
        ServerDestroyer,
    )

THandler = Callable[[IConnection], Awaitable[None]]
TConnectionCallback = Callable[[IConnection], None]
TCloseCallback = Callable[[], None]


class IUpgrader(Protocol):
    async def upgrade(self, conn: IConnection) -> IConnection: ...


@runtime_checkable
class DestroyableServer(Protocol):
    """A server that has been passed through ``make_destroyable``."""

    destroyer: "ServerDestroyer"

    def on_connection(self, callback: TConnectionCallback) -> None: ...

    async def close(self) -> None: ...

    async def destroy(self) -> None: ...
