"""Domain models used throughout the registry."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Hashable, Optional

__all__ = ["ServiceKey", "RegistrationKind", "Registration"]


ServiceKey = Hashable


class RegistrationKind(Enum):
    """How a registration produces the value for its key."""

    SINGLETON = "singleton"
    LAZY_SINGLETON = "lazy_singleton"
    FACTORY = "factory"
    ASYNC_SINGLETON = "async_singleton"
    FACTORY_WITH_PARAM = "factory_with_param"


@dataclass(frozen=True)
class Registration:
    """Describes how to produce a value for a service key.

    Exactly one of ``value`` or ``producer`` is meaningful, depending on ``kind``:
    a ``SINGLETON`` holds its value, every other kind holds a producer.

    Attributes:
        key: The service key the registration was made under.
        kind: The variant of the registration.
        producer: The factory to invoke. Takes no arguments, except for
            ``FACTORY_WITH_PARAM`` which takes the resolution parameter. For
            ``ASYNC_SINGLETON`` it returns an awaitable.
        value: The fixed value of a ``SINGLETON``.
        param_type: Optional type the parameter of a ``FACTORY_WITH_PARAM`` must match.
    """

    key: ServiceKey
    kind: RegistrationKind
    producer: Optional[Callable[..., Any]] = None
    value: Any = None
    param_type: Optional[type] = None

    @classmethod
    def singleton(cls, key: ServiceKey, value: Any) -> "Registration":
        return cls(key, RegistrationKind.SINGLETON, value=value)

    @classmethod
    def lazy_singleton(cls, key: ServiceKey, factory: Callable[[], Any]) -> "Registration":
        return cls(key, RegistrationKind.LAZY_SINGLETON, factory)

    @classmethod
    def factory(cls, key: ServiceKey, factory: Callable[[], Any]) -> "Registration":
        return cls(key, RegistrationKind.FACTORY, factory)

    @classmethod
    def async_singleton(
        cls, key: ServiceKey, async_factory: Callable[[], Awaitable[Any]]
    ) -> "Registration":
        return cls(key, RegistrationKind.ASYNC_SINGLETON, async_factory)

    @classmethod
    def factory_with_param(
        cls,
        key: ServiceKey,
        factory: Callable[[Any], Any],
        param_type: Optional[type] = None,
    ) -> "Registration":
        return cls(
            key, RegistrationKind.FACTORY_WITH_PARAM, factory, param_type=param_type
        )

    def produce(self, *args: Any) -> Any:
        """Return the registered value, or invoke the producer with ``args``."""
        if self.kind is RegistrationKind.SINGLETON:
            return self.value
        return self.producer(*args)
