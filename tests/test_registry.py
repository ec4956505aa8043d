import itertools
from typing import Optional

import pytest

from servicehub.domain import RegistrationKind
from servicehub.errors import (
    InvalidParameter,
    NotParameterized,
    NotRegistered,
    RegistryError,
    WrongResolutionMethod,
)
from servicehub.registry import ServiceRegistry, default_registry, inferred_key


class Database:
    def __init__(self, url: str = "sqlite://"):
        self.url = url


class UserRepository:
    def __init__(self, db: Database):
        self.db = db


class Greeter:
    def __init__(self, name: str):
        self.name = name


@pytest.fixture
def registry():
    return ServiceRegistry()


def test_singleton_resolves_to_the_registered_value(registry):
    db = Database()
    registry.register_singleton(Database, db)

    assert all(registry.resolve(Database) is db for _ in range(5))


def test_lazy_singleton_factory_is_invoked_once(registry):
    calls = []

    def make_database():
        calls.append(1)
        return Database()

    registry.register_lazy_singleton(Database, make_database)

    assert calls == []
    results = [registry.resolve(Database) for _ in range(3)]
    assert len(calls) == 1
    assert results[0] is results[1] is results[2]


def test_factory_is_invoked_on_every_resolution(registry):
    counter = itertools.count(1)
    registry.register_factory("ticket", lambda: next(counter))

    assert [registry.resolve("ticket") for _ in range(3)] == [1, 2, 3]


def test_failed_lazy_singleton_is_not_cached(registry):
    attempts = []

    def make_database():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("database unavailable")
        return Database()

    registry.register_lazy_singleton(Database, make_database)

    with pytest.raises(ConnectionError, match="database unavailable"):
        registry.resolve(Database)
    assert isinstance(registry.resolve(Database), Database)
    assert len(attempts) == 2


def test_resolving_unregistered_key_raises(registry):
    with pytest.raises(NotRegistered, match="No registration found for Database") as exc:
        registry.resolve(Database)

    assert exc.value.key is Database
    assert isinstance(exc.value, LookupError)


def test_resolving_async_singleton_synchronously_raises(registry):
    async def make_database():
        return Database()

    registry.register_singleton_async(Database, make_database)

    with pytest.raises(WrongResolutionMethod, match="resolve_async"):
        registry.resolve(Database)


def test_resolving_parameterised_factory_synchronously_raises(registry):
    registry.register_factory_param(Greeter, Greeter)

    with pytest.raises(WrongResolutionMethod, match="resolve_with_param") as exc:
        registry.resolve(Greeter)

    assert exc.value.method == "resolve_with_param"


def test_resolve_with_param_returns_a_fresh_value_per_call(registry):
    registry.register_factory_param(Greeter, Greeter)

    first = registry.resolve_with_param(Greeter, "Arthur")
    second = registry.resolve_with_param(Greeter, "Arthur")

    assert first.name == second.name == "Arthur"
    assert first is not second


def test_resolve_with_param_on_plain_factory_raises(registry):
    registry.register_factory(Database, Database)

    with pytest.raises(NotParameterized, match="Database is not registered with parameters"):
        registry.resolve_with_param(Database, "sqlite://")


def test_resolve_with_param_on_unregistered_key_raises(registry):
    with pytest.raises(NotRegistered):
        registry.resolve_with_param(Greeter, "Arthur")


def test_resolve_with_param_checks_declared_parameter_type(registry):
    calls = []

    def make_greeter(name):
        calls.append(name)
        return Greeter(name)

    registry.register_factory_param(Greeter, make_greeter, param_type=str)

    with pytest.raises(InvalidParameter, match="must be str, got int") as exc:
        registry.resolve_with_param(Greeter, 42)

    assert calls == []
    assert exc.value.expected is str
    assert isinstance(exc.value, TypeError)
    assert registry.resolve_with_param(Greeter, "Martha").name == "Martha"


def test_resolve_with_param_checks_generic_parameter_type_by_origin(registry):
    registry.register_factory_param("total", sum, param_type=list[int])

    assert registry.resolve_with_param("total", [1, 2]) == 3
    with pytest.raises(InvalidParameter, match="must be list, got tuple"):
        registry.resolve_with_param("total", (1, 2))


def test_register_factory_param_rejects_uncheckable_parameter_type(registry):
    with pytest.raises(RegistryError, match="cannot be used in an instance check"):
        registry.register_factory_param("total", sum, param_type="list")
    with pytest.raises(RegistryError, match="cannot be used in an instance check"):
        registry.register_factory_param("total", sum, param_type=Optional[list])

    assert not registry.is_registered("total")


def test_unregister_removes_resolved_lazy_singleton(registry):
    registry.register_lazy_singleton(Database, Database)
    registry.resolve(Database)

    registry.unregister(Database)

    assert not registry.is_registered(Database)
    with pytest.raises(NotRegistered):
        registry.resolve(Database)


def test_unregister_ignores_unknown_keys(registry):
    registry.unregister("missing")

    assert not registry.is_registered("missing")


def test_reset_clears_every_registration(registry):
    registry.register_singleton(Database, Database())
    registry.register_lazy_singleton(UserRepository, lambda: UserRepository(Database()))
    registry.register_factory("ticket", object)
    registry.resolve(UserRepository)

    registry.reset()

    for key in (Database, UserRepository, "ticket"):
        with pytest.raises(NotRegistered):
            registry.resolve(key)
    assert registry.registered_keys() == []


def test_reregistering_replaces_and_discards_cached_singleton(registry):
    registry.register_lazy_singleton(Database, lambda: Database("first://"))
    assert registry.resolve(Database).url == "first://"

    registry.register_lazy_singleton(Database, lambda: Database("second://"))

    assert registry.resolve(Database).url == "second://"


def test_reregistering_singleton_as_factory_stops_returning_old_value(registry):
    original = Database()
    registry.register_singleton(Database, original)

    registry.register_factory(Database, Database)

    assert registry.resolve(Database) is not original
    assert registry.registration(Database).kind is RegistrationKind.FACTORY


def test_is_registered_and_membership(registry):
    registry.register_factory(Database, Database)

    assert registry.is_registered(Database)
    assert Database in registry
    assert UserRepository not in registry


def test_item_access_resolves(registry):
    db = Database()
    registry.register_singleton(Database, db)
    registry.register_factory(UserRepository, lambda: UserRepository(registry[Database]))

    assert registry[UserRepository].db is db


def test_try_resolve_returns_default_for_unregistered_key(registry):
    fallback = Database("fallback://")

    assert registry.try_resolve(Database) is None
    assert registry.try_resolve(Database, fallback) is fallback


def test_try_resolve_still_raises_wrong_resolution_method(registry):
    registry.register_factory_param(Greeter, Greeter)

    with pytest.raises(WrongResolutionMethod):
        registry.try_resolve(Greeter)


def test_registered_keys_in_registration_order_filtered_by_kind(registry):
    async def make_database():
        return Database()

    registry.register_factory("ticket", object)
    registry.register_singleton_async(Database, make_database)
    registry.register_lazy_singleton(UserRepository, object)

    assert registry.registered_keys() == ["ticket", Database, UserRepository]
    assert registry.registered_keys(RegistrationKind.ASYNC_SINGLETON) == [Database]


def test_registration_never_invokes_factories(registry):
    def explode():
        raise AssertionError("factory invoked at registration")

    async def explode_async():
        raise AssertionError("factory invoked at registration")

    registry.register_lazy_singleton("a", explode)
    registry.register_factory("b", explode)
    registry.register_singleton_async("c", explode_async)
    registry.register_factory_param("d", explode)

    assert registry.registered_keys() == ["a", "b", "c", "d"]


def test_provides_registers_class_under_itself_as_lazy_singleton(registry):
    @registry.provides()
    class Clock:
        pass

    registration = registry.registration(Clock)
    assert registration.kind is RegistrationKind.LAZY_SINGLETON
    assert registry.resolve(Clock) is registry.resolve(Clock)


def test_provides_uses_function_return_annotation_as_key(registry):
    @registry.provides()
    def make_database() -> Database:
        return Database("annotated://")

    assert registry.resolve(Database).url == "annotated://"


def test_provides_registers_coroutine_functions_as_async_singletons(registry):
    @registry.provides()
    async def make_database() -> Database:
        return Database()

    assert registry.registration(Database).kind is RegistrationKind.ASYNC_SINGLETON


def test_provides_accepts_explicit_key_and_kind(registry):
    counter = itertools.count()

    @registry.provides("ticket", kind=RegistrationKind.FACTORY)
    def make_ticket():
        return next(counter)

    assert [registry.resolve("ticket") for _ in range(2)] == [0, 1]


def test_provides_rejects_singleton_kind(registry):
    with pytest.raises(RegistryError, match="register_singleton"):
        registry.provides(kind=RegistrationKind.SINGLETON)


def test_provides_without_key_or_annotation_raises(registry):
    with pytest.raises(RegistryError, match="make_thing has no return annotation"):

        @registry.provides()
        def make_thing():
            pass


@pytest.mark.asyncio
async def test_provides_registers_async_callable_objects_as_async_singletons(registry):
    class ConnectDatabase:
        async def __call__(self) -> Database:
            return Database("callable://")

    registry.provides(Database)(ConnectDatabase())

    assert registry.registration(Database).kind is RegistrationKind.ASYNC_SINGLETON
    assert (await registry.resolve_async(Database)).url == "callable://"


def test_provides_treats_none_return_annotation_as_missing(registry):
    with pytest.raises(RegistryError, match="make_nothing has no return annotation"):

        @registry.provides()
        def make_nothing() -> None:
            pass

    assert registry.registered_keys() == []


def test_inferred_key():
    def make_repository() -> UserRepository:
        pass

    assert inferred_key(Database) is Database
    assert inferred_key(make_repository) is UserRepository


def test_default_registry_is_a_shared_instance():
    from servicehub import default_registry as exported

    assert isinstance(default_registry, ServiceRegistry)
    assert exported is default_registry
