"""Grouping of registrations into modules applied to a registry as a unit.

A module is anything with a ``name``, an informational list of the keys it
depends on, and a ``register(registry)`` method. Modules may also declare the
profiles under which they are active; a :class:`ModuleLoader` with an active
profile set skips modules that do not match it.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol, Sequence, runtime_checkable

from servicehub.domain import ServiceKey
from servicehub.registry import ServiceRegistry

__all__ = ["Module", "FeatureModule", "feature_module", "ModuleLoader"]

_logger = logging.getLogger(__name__)


@runtime_checkable
class Module(Protocol):
    name: str
    dependencies: Sequence[ServiceKey]

    def register(self, registry: ServiceRegistry) -> None: ...


@dataclass(frozen=True)
class FeatureModule:
    """A module whose registrations are made by a plain function.

    Attributes:
        name: Name of the module, used in logs.
        register_func: Function applying the module's registrations to a registry.
        dependencies: Keys the module expects other modules to register. Not enforced.
        profiles: Profiles under which the module is active. Empty means always active;
            a ``!`` prefix excludes a profile.
    """

    name: str
    register_func: Callable[[ServiceRegistry], None]
    dependencies: Sequence[ServiceKey] = ()
    profiles: Sequence[str] = field(default_factory=tuple)

    def register(self, registry: ServiceRegistry) -> None:
        self.register_func(registry)


def feature_module(
    name: Optional[str] = None,
    dependencies: Iterable[ServiceKey] = (),
    profiles: Iterable[str] = (),
) -> Callable[[Callable[[ServiceRegistry], None]], FeatureModule]:
    """Decorator turning a registration function into a :class:`FeatureModule`.

    Args:
        name: Optional module name; defaults to the function name with any
            ``register_`` prefix removed.
        dependencies: Keys the module depends on (informational).
        profiles: Profiles under which the module is active.

    Example:
        @feature_module(dependencies=[Database], profiles=["!test"])
        def register_users(registry: ServiceRegistry) -> None:
            registry.register_factory(UserRepository, lambda: UserRepository(registry[Database]))
    """

    def decorator(func: Callable[[ServiceRegistry], None]) -> FeatureModule:
        return FeatureModule(
            name or _inferred_module_name(func.__name__),
            func,
            tuple(dependencies),
            tuple(profiles),
        )

    return decorator


class ModuleLoader:
    """Applies modules to a registry in the order given.

    No ordering is derived from declared dependencies: list modules so that
    later ones may rely on registrations made by earlier ones.
    """

    def __init__(self, registry: ServiceRegistry, profiles: Optional[set[str]] = None):
        self.registry = registry
        self.profiles = profiles
        self.loaded_modules: list[str] = []

    def load(self, module: Module) -> bool:
        """Apply a single module, unless the active profiles exclude it.

        Returns:
            True if the module's registrations were applied.
        """
        module_name = module.name
        if not self._is_active(module):
            _logger.info(
                "Skipping module %s for profiles %s", module_name, sorted(self.profiles)
            )
            return False

        module.register(self.registry)
        self.loaded_modules.append(module_name)
        _logger.info("Loaded module %s", module_name)
        return True

    def load_all(self, modules: Iterable[Module]) -> None:
        for module in modules:
            self.load(module)

    def _is_active(self, module: Module) -> bool:
        if self.profiles is None:
            return True
        return _profiles_match(getattr(module, "profiles", ()), self.profiles)


def _profiles_match(stated: Sequence[str], selected: set[str]) -> bool:
    """Check if a module's profile requirements match the selected profiles.

    Profile matching supports inclusion and exclusion patterns:
    - Normal profiles ("dev", "prod") must be in the selected set
    - Exclusion profiles ("!test") must NOT be in the selected set
    - Empty stated profiles match all selected profiles

    Example:
        >>> _profiles_match(["dev"], {"dev"})          # True
        >>> _profiles_match(["!test"], {"dev"})        # True
        >>> _profiles_match(["!test"], {"test"})       # False
        >>> _profiles_match(["prod"], {"dev"})         # False
    """
    provided = [p for p in stated if not p.startswith("!")]
    excluded = [p[1:] for p in stated if p.startswith("!")]

    return not any(e in selected for e in excluded) and (
        not provided or any(p in selected for p in provided)
    )


def _inferred_module_name(name: str) -> str:
    if name.startswith("register_"):
        return name[len("register_"):]
    return name
