"""Initialisation and disposal of long-lived services."""

import logging
from typing import Optional, Protocol, TypeVar, runtime_checkable

__all__ = ["Service", "ServiceLifecycle", "ServiceLifecycleRegistry"]

S = TypeVar("S", bound="Service")

_logger = logging.getLogger(__name__)


@runtime_checkable
class Service(Protocol):
    async def initialize(self) -> None: ...

    async def dispose(self) -> None: ...


class ServiceLifecycle:
    """Base class making ``initialize`` and ``dispose`` idempotent.

    Subclasses override :meth:`on_initialize` and :meth:`on_dispose`.

    Example:
        >>> class Cache(ServiceLifecycle):
        ...     async def on_initialize(self):
        ...         self.client = await connect()
        ...
        ...     async def on_dispose(self):
        ...         await self.client.close()
    """

    _is_initialized = False
    _is_disposed = False

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    async def initialize(self) -> None:
        if self._is_initialized:
            return
        await self.on_initialize()
        self._is_initialized = True

    async def dispose(self) -> None:
        if self._is_disposed:
            return
        await self.on_dispose()
        self._is_disposed = True

    async def on_initialize(self) -> None:
        pass

    async def on_dispose(self) -> None:
        pass


class ServiceLifecycleRegistry:
    """Tracks services by type so they can be initialised and disposed together.

    Services are initialised in registration order and disposed in reverse.
    """

    def __init__(self):
        self._services: dict[type, Service] = {}

    def register(self, service: Service, service_type: Optional[type] = None):
        """Track a service under its own type, or under ``service_type``."""
        self._services[service_type or type(service)] = service

    def get(self, service_type: type[S]) -> Optional[S]:
        return self._services.get(service_type)

    async def initialize_all(self) -> None:
        for service_type, service in list(self._services.items()):
            _logger.debug("Initialising %s", service_type.__qualname__)
            await service.initialize()

    async def dispose_all(self) -> None:
        """Dispose every service, most recently registered first, then forget them all.

        A failing ``dispose`` does not stop the others from being disposed; the
        first failure is re-raised once every service has been attempted.
        """
        failures = []
        for service_type, service in reversed(list(self._services.items())):
            _logger.debug("Disposing %s", service_type.__qualname__)
            try:
                await service.dispose()
            except Exception as e:
                _logger.warning(
                    "Disposing %s failed", service_type.__qualname__, exc_info=True
                )
                failures.append(e)
        self._services.clear()

        if failures:
            raise failures[0]

    def __len__(self) -> int:
        return len(self._services)
