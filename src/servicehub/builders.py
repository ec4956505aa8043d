"""High level entry points for composing a registry from modules."""

from typing import Iterable, Optional

from servicehub.modules import Module, ModuleLoader
from servicehub.registry import ServiceRegistry

__all__ = ["make_registry", "initialize_registry"]


def make_registry(
    modules: Iterable[Module],
    profiles: Optional[set[str]] = None,
    registry: Optional[ServiceRegistry] = None,
) -> ServiceRegistry:
    """Apply modules to a registry and return it.

    Modules are loaded in the order given. No factories are invoked.

    Args:
        modules: The modules to load, in order.
        profiles: An optional set of profile names used to filter active modules.
        registry: An optional registry to load into; a new one is created if omitted.

    Returns:
        The registry the modules were loaded into.
    """
    if registry is None:
        registry = ServiceRegistry()
    ModuleLoader(registry, profiles).load_all(modules)
    return registry


async def initialize_registry(
    modules: Iterable[Module],
    profiles: Optional[set[str]] = None,
    registry: Optional[ServiceRegistry] = None,
) -> ServiceRegistry:
    """Apply modules to a registry and wait for all of its async singletons.

    Once this returns, every async singleton can be fetched with the
    synchronous ``resolve``.

    Args:
        modules: The modules to load, in order.
        profiles: An optional set of profile names used to filter active modules.
        registry: An optional registry to load into; a new one is created if omitted.

    Returns:
        The initialised registry.

    Raises:
        Exception: The first failure raised by an async singleton factory.
    """
    registry = make_registry(modules, profiles, registry)
    await registry.all_ready()
    return registry
