"""servicehub: a typed service registry for application composition roots.

Services are registered against keys (usually classes) with one of five
lifetimes, then resolved on demand:

    - singleton: a value fixed at registration time
    - lazy singleton: produced by a factory on first resolution, then cached
    - factory: produced afresh on every resolution
    - async singleton: produced once by an async factory; concurrent resolutions
      share a single in-flight production
    - parameterised factory: produced afresh from a caller-supplied parameter

Registrations are grouped into modules and applied in order by a module loader.

Basic Usage:
    >>> from servicehub import ServiceRegistry, feature_module, initialize_registry
    >>>
    >>> @feature_module()
    ... def register_storage(registry: ServiceRegistry) -> None:
    ...     registry.register_singleton_async(Database, Database.connect)
    ...     registry.register_factory(UnitOfWork, lambda: UnitOfWork(registry[Database]))
    >>>
    >>> registry = await initialize_registry([register_storage])
    >>> registry.resolve(UnitOfWork)

The package consists of several modules:
    - registry: the service registry and the process-wide default instance
    - modules: module protocol, feature modules and the module loader
    - builders: composition root helpers
    - lifecycle: initialisation and disposal of long-lived services
    - domain: registration models
    - errors: registry exceptions
"""

from servicehub.builders import initialize_registry, make_registry
from servicehub.domain import Registration, RegistrationKind, ServiceKey
from servicehub.errors import (
    InvalidParameter,
    NotParameterized,
    NotRegistered,
    RegistryError,
    WrongResolutionMethod,
)
from servicehub.lifecycle import Service, ServiceLifecycle, ServiceLifecycleRegistry
from servicehub.modules import FeatureModule, Module, ModuleLoader, feature_module
from servicehub.registry import ServiceRegistry, default_registry

__all__ = [
    "FeatureModule",
    "InvalidParameter",
    "Module",
    "ModuleLoader",
    "NotParameterized",
    "NotRegistered",
    "Registration",
    "RegistrationKind",
    "RegistryError",
    "Service",
    "ServiceKey",
    "ServiceLifecycle",
    "ServiceLifecycleRegistry",
    "ServiceRegistry",
    "WrongResolutionMethod",
    "default_registry",
    "feature_module",
    "initialize_registry",
    "make_registry",
]
