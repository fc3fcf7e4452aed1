from collections.abc import (
    AsyncIterator,
)
from contextlib import (
    asynccontextmanager,
)
from typing import (
    Any,
)

import factory
import trio

from destroyable.config import (
    ServerConfig,
)
from destroyable.custom_types import (
    IUpgrader,
    THandler,
)
from destroyable.destroyer import (
    make_destroyable,
)
from destroyable.transport.tcp import (
    TCPServer,
)

from .constants import (
    LISTEN_MADDR,
)
from .utils import (
    MockConnection,
    hold_open,
)


class MockConnectionFactory(factory.Factory):
    class Meta:
        model = MockConnection

    remote_address = factory.Sequence(lambda n: ("127.0.0.1", 40000 + n))


class TCPServerFactory(factory.Factory):
    class Meta:
        model = TCPServer

    handler_function = factory.LazyFunction(lambda: hold_open)
    config = factory.LazyFunction(ServerConfig)
    upgrader = None

    @classmethod
    @asynccontextmanager
    async def create_and_listen(
        cls,
        handler_function: THandler | None = None,
        config: ServerConfig | None = None,
        upgrader: IUpgrader | None = None,
    ) -> AsyncIterator[TCPServer]:
        """
        Yield a destroyable server listening on ``LISTEN_MADDR``.

        Tasks the server left running are cancelled on exit.
        """
        # `factory.Factory.__init__` does *not* prepare a *default value* if we pass
        # an argument explicitly with `None`, so only pass what was given.
        optional_kwargs: dict[str, Any] = {}
        if handler_function is not None:
            optional_kwargs["handler_function"] = handler_function
        if config is not None:
            optional_kwargs["config"] = config
        if upgrader is not None:
            optional_kwargs["upgrader"] = upgrader
        server = make_destroyable(cls(**optional_kwargs))
        async with trio.open_nursery() as nursery:
            if not await server.listen(LISTEN_MADDR, nursery):
                raise RuntimeError(f"failed to listen on {LISTEN_MADDR}")
            yield server
            nursery.cancel_scope.cancel()
