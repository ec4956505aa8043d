"""Exceptions raised by the service registry.

Failures raised by caller-supplied factories are never wrapped: they reach the
caller exactly as the factory raised them.
"""

from typing import Any, Hashable

__all__ = [
    "RegistryError",
    "NotRegistered",
    "WrongResolutionMethod",
    "NotParameterized",
    "InvalidParameter",
]


def describe_key(key: Hashable) -> str:
    """Human-readable name for a service key, used in error and log messages."""
    if isinstance(key, type):
        return key.__qualname__
    return repr(key)


class RegistryError(Exception):
    """Base class for errors raised by the registry itself."""

    pass


class NotRegistered(RegistryError, LookupError):
    """Raised when a key with no current registration is resolved."""

    def __init__(self, key: Hashable):
        super().__init__(f"No registration found for {describe_key(key)}")
        self.key = key


class WrongResolutionMethod(RegistryError):
    """Raised when ``resolve`` is used on a key that needs another resolution method."""

    def __init__(self, key: Hashable, method: str):
        super().__init__(f"Use {method}() to resolve {describe_key(key)}")
        self.key = key
        self.method = method


class NotParameterized(RegistryError):
    """Raised when ``resolve_with_param`` targets a key without a parameterised factory."""

    def __init__(self, key: Hashable):
        super().__init__(f"{describe_key(key)} is not registered with parameters")
        self.key = key


class InvalidParameter(RegistryError, TypeError):
    """Raised when a parameter does not match the type declared at registration."""

    def __init__(self, key: Hashable, expected: type, actual: Any):
        super().__init__(
            f"Parameter for {describe_key(key)} must be {expected.__qualname__}, "
            f"got {type(actual).__qualname__}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual
