"""Registration and resolution of services.

A :class:`ServiceRegistry` maps service keys (usually classes, sometimes plain
strings) to registrations describing how to produce a value, and caches
singleton values once they have been produced.

Asynchronous singletons are resolved single-flight: while an async factory is
running, every other caller of ``resolve_async`` for the same key awaits that
same production instead of starting another one. The registry targets a single
asyncio event loop and is not thread-safe.
"""

import asyncio
import inspect
import logging
import types
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    TypeVar,
    Union,
    get_origin,
    get_type_hints,
    overload,
)

from servicehub.domain import Registration, RegistrationKind, ServiceKey
from servicehub.errors import (
    InvalidParameter,
    NotParameterized,
    NotRegistered,
    RegistryError,
    WrongResolutionMethod,
    describe_key,
)

__all__ = [
    "ServiceRegistry",
    "default_registry",
    "inferred_key",
]

T = TypeVar("T")

_logger = logging.getLogger(__name__)

_UnionType = getattr(types, "UnionType", Union)


class ServiceRegistry:
    """Registry of services, supporting singleton, factory and async singleton lifetimes.

    Each key has at most one registration. Registering a key again replaces the
    previous registration and discards anything cached for it.

    Example:
        >>> registry = ServiceRegistry()
        >>> registry.register_lazy_singleton(Database, lambda: Database("sqlite://"))
        >>> registry.register_factory(UnitOfWork, lambda: UnitOfWork(registry.resolve(Database)))
        >>> registry.resolve(UnitOfWork)
    """

    def __init__(self):
        self._registrations: dict[ServiceKey, Registration] = {}
        self._singletons: dict[ServiceKey, Any] = {}
        self._in_flight: dict[ServiceKey, asyncio.Task] = {}

    def register(self, registration: Registration):
        """Store a registration, replacing any previous one for the same key.

        The cached singleton for the key is discarded. An in-flight async
        production is detached: callers already awaiting it still receive its
        result, but that result is not cached.

        Args:
            registration: The registration to store.
        """
        key = registration.key
        if self._registrations.pop(key, None) is not None:
            _logger.debug("Replacing registration for %s", describe_key(key))
        self._singletons.pop(key, None)
        self._in_flight.pop(key, None)

        self._registrations[key] = registration
        if registration.kind is RegistrationKind.SINGLETON:
            self._singletons[key] = registration.value
        _logger.debug(
            "Registered %s as %s", describe_key(key), registration.kind.value
        )

    def register_singleton(self, key: ServiceKey, value: Any):
        self.register(Registration.singleton(key, value))

    def register_lazy_singleton(self, key: ServiceKey, factory: Callable[[], Any]):
        self.register(Registration.lazy_singleton(key, factory))

    def register_factory(self, key: ServiceKey, factory: Callable[[], Any]):
        self.register(Registration.factory(key, factory))

    def register_singleton_async(
        self, key: ServiceKey, async_factory: Callable[[], Awaitable[Any]]
    ):
        self.register(Registration.async_singleton(key, async_factory))

    def register_factory_param(
        self,
        key: ServiceKey,
        factory: Callable[[Any], Any],
        param_type: Optional[type] = None,
    ):
        """Register a factory taking a single parameter supplied at resolution time.

        Args:
            key: The service key.
            factory: One-argument callable producing a fresh value per resolution.
            param_type: If given, ``resolve_with_param`` raises
                :class:`InvalidParameter` for parameters that are not instances of
                this type, without invoking the factory. A parameterised generic
                such as ``list[int]`` is checked against its origin (``list``).
                Unions are not supported. If omitted, parameters are passed
                through unchecked.

        Raises:
            RegistryError: If ``param_type`` cannot be used in an instance check.
        """
        if param_type is not None:
            param_type = _checkable_type(key, param_type)
        self.register(Registration.factory_with_param(key, factory, param_type))

    def provides(
        self, key: Optional[ServiceKey] = None, *, kind: Optional[RegistrationKind] = None
    ) -> Callable:
        """Decorator to register a class or function as the producer for a key.

        Args:
            key: Optional service key; defaults to the class itself, or the return
                annotation of a function.
            kind: Optional registration kind; defaults to ``ASYNC_SINGLETON`` for
                coroutine functions and callables with an ``async def __call__``,
                and ``LAZY_SINGLETON`` for everything else.
                ``SINGLETON`` is not accepted, use ``register_singleton``.

        Returns:
            A decorator that registers its target and returns it unchanged.

        Example:
            @registry.provides()
            async def make_connection_pool() -> ConnectionPool:
                return await ConnectionPool.open(DSN)
        """
        if kind is RegistrationKind.SINGLETON:
            raise RegistryError(
                "provides() registers producers; use register_singleton() for values"
            )

        def decorator(obj):
            service_key = key if key is not None else inferred_key(obj)
            if kind is not None:
                registration_kind = kind
            elif _is_async_producer(obj):
                registration_kind = RegistrationKind.ASYNC_SINGLETON
            else:
                registration_kind = RegistrationKind.LAZY_SINGLETON

            self.register(Registration(service_key, registration_kind, obj))
            return obj

        return decorator

    @overload
    def resolve(self, key: type[T]) -> T: ...

    @overload
    def resolve(self, key: ServiceKey) -> Any: ...

    def resolve(self, key):
        """Resolve a key synchronously.

        Raises:
            NotRegistered: If the key has no registration.
            WrongResolutionMethod: If the key is an async singleton or a
                parameterised factory.
        """
        if key in self._singletons:
            return self._singletons[key]

        registration = self.registration(key)
        kind = registration.kind
        if kind is RegistrationKind.ASYNC_SINGLETON:
            raise WrongResolutionMethod(key, "resolve_async")
        if kind is RegistrationKind.FACTORY_WITH_PARAM:
            raise WrongResolutionMethod(key, "resolve_with_param")

        value = registration.produce()
        if kind is RegistrationKind.LAZY_SINGLETON and self._is_current(registration):
            self._singletons[key] = value
        return value

    @overload
    async def resolve_async(self, key: type[T]) -> T: ...

    @overload
    async def resolve_async(self, key: ServiceKey) -> Any: ...

    async def resolve_async(self, key):
        """Resolve a key, awaiting async singletons.

        Concurrent callers for the same async singleton share one invocation of
        its factory. A failed production is not cached: every caller awaiting it
        receives the factory's exception, and the next call starts a new
        production. Cancelling one caller does not cancel the production for the
        others.

        Keys of any other kind are resolved as by :meth:`resolve`.

        Raises:
            NotRegistered: If the key has no registration.
        """
        if key in self._singletons:
            return self._singletons[key]

        task = self._in_flight.get(key)
        if task is not None:
            _logger.debug("Awaiting in-flight production of %s", describe_key(key))
        else:
            registration = self.registration(key)
            if registration.kind is not RegistrationKind.ASYNC_SINGLETON:
                return self.resolve(key)

            # Published before the first await so concurrent callers join it.
            task = asyncio.ensure_future(self._produce(registration))
            self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _produce(self, registration: Registration) -> Any:
        key = registration.key
        _logger.debug("Producing async singleton %s", describe_key(key))
        try:
            value = await registration.produce()
        except Exception:
            _logger.warning(
                "Async factory for %s failed", describe_key(key), exc_info=True
            )
            raise
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

        if self._is_current(registration):
            self._singletons[key] = value
        return value

    def resolve_with_param(self, key: ServiceKey, param: Any) -> Any:
        """Invoke a parameterised factory, returning a fresh value on every call.

        Raises:
            NotRegistered: If the key has no registration.
            NotParameterized: If the key is not registered with ``register_factory_param``.
            InvalidParameter: If a ``param_type`` was registered and ``param`` is
                not an instance of it.
        """
        registration = self.registration(key)
        if registration.kind is not RegistrationKind.FACTORY_WITH_PARAM:
            raise NotParameterized(key)

        param_type = registration.param_type
        if param_type is not None and not isinstance(param, param_type):
            raise InvalidParameter(key, param_type, param)
        return registration.produce(param)

    def try_resolve(self, key: ServiceKey, default: Any = None) -> Any:
        """Like :meth:`resolve`, but returns ``default`` for unregistered keys."""
        try:
            return self.resolve(key)
        except NotRegistered:
            return default

    def registration(self, key: ServiceKey) -> Registration:
        try:
            return self._registrations[key]
        except KeyError:
            raise NotRegistered(key) from None

    def registered_keys(
        self, kind: Optional[RegistrationKind] = None
    ) -> list[ServiceKey]:
        """Return registered keys in registration order, optionally filtered by kind."""
        return [
            key
            for key, registration in self._registrations.items()
            if kind is None or registration.kind is kind
        ]

    def is_registered(self, key: ServiceKey) -> bool:
        return key in self._registrations

    def unregister(self, key: ServiceKey):
        """Forget a key entirely.

        An in-flight production is not cancelled; callers already awaiting it
        still receive its result, but the result is not cached.
        """
        self._registrations.pop(key, None)
        self._singletons.pop(key, None)
        self._in_flight.pop(key, None)
        _logger.debug("Unregistered %s", describe_key(key))

    def reset(self):
        self._registrations.clear()
        self._singletons.clear()
        self._in_flight.clear()
        _logger.debug("Registry reset")

    async def all_ready(self):
        """Resolve every registered async singleton.

        Productions run concurrently. Once every one of them has settled, the
        first failure (in registration order) is re-raised, if any.
        """
        keys = self.registered_keys(RegistrationKind.ASYNC_SINGLETON)
        _logger.info("Waiting for %d async singletons", len(keys))

        results = await asyncio.gather(
            *(self.resolve_async(key) for key in keys), return_exceptions=True
        )
        failures = [
            (key, result)
            for key, result in zip(keys, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            _logger.error(
                "Async singletons failed to initialise: %s",
                ", ".join(describe_key(key) for key, _ in failures),
            )
            raise failures[0][1]

        _logger.info("All %d async singletons ready", len(keys))

    def _is_current(self, registration: Registration) -> bool:
        return self._registrations.get(registration.key) is registration

    def __contains__(self, key: ServiceKey) -> bool:
        return self.is_registered(key)

    def __getitem__(self, key: ServiceKey) -> Any:
        return self.resolve(key)


def inferred_key(target: Any) -> ServiceKey:
    """Derive a service key from a class or function.

    Args:
        target: The class or function to derive a key from.

    Returns:
        The class itself, or the function's return annotation.

    Raises:
        RegistryError: If a function has no return annotation, or is annotated
            as returning ``None``.

    Example:
        >>> inferred_key(Database)        # Returns Database
        >>> inferred_key(make_database)   # Returns the annotated return type
    """
    if inspect.isclass(target):
        return target

    return_type = get_type_hints(target).get("return", None)
    if return_type is None or return_type is type(None):
        raise RegistryError(
            f"Provider {target.__name__} has no return annotation; "
            "pass a key to provides() explicitly"
        )
    return return_type


def _is_async_producer(target: Any) -> bool:
    if inspect.iscoroutinefunction(target):
        return True
    if inspect.isclass(target):
        return False
    return inspect.iscoroutinefunction(getattr(target, "__call__", None))


def _checkable_type(key: ServiceKey, param_type: Any) -> type:
    """Reduce a parameter annotation to a class usable with ``isinstance``."""
    origin = get_origin(param_type)
    checkable = origin or param_type
    if origin is Union or origin is _UnionType or not inspect.isclass(checkable):
        raise RegistryError(
            f"Parameter type {param_type!r} for {describe_key(key)} "
            "cannot be used in an instance check"
        )
    return checkable


default_registry = ServiceRegistry()
"""Process-wide registry for composition roots.

Library code should receive a :class:`ServiceRegistry` explicitly rather than
reaching for this instance, so that tests can use isolated registries.
"""
