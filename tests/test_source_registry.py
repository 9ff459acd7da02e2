import pytest

from crawlers.mangaraw_crawler import MangaRawSource
from crawlers.registry import SourceRegistry, get_source, list_sources
from services.errors import RegistryMiss


class DummySource:
    def __init__(self, name="dummy"):
        self.name = name


def test_builtins_are_registered_lazily_and_once():
    created = []

    def factory():
        created.append(1)
        return DummySource("alpha")

    registry = SourceRegistry(builtins={"alpha": factory})
    assert created == []

    assert registry.list_names() == ["alpha"]
    assert registry.get("alpha").name == "alpha"
    assert registry.get("ALPHA").name == "alpha"
    assert created == [1]


def test_register_extends_without_touching_builtins():
    registry = SourceRegistry(builtins={"alpha": DummySource})
    custom = DummySource("beta")

    registry.register("Beta", custom)

    assert registry.get("beta") is custom
    assert sorted(registry.list_names()) == ["alpha", "beta"]


def test_registered_adapter_is_not_overwritten_by_builtin_initialisation():
    registry = SourceRegistry(builtins={"alpha": DummySource})
    override = DummySource("override")
    registry.register("alpha", override)

    assert registry.get("alpha") is override


def test_unknown_source_lists_available_names():
    registry = SourceRegistry(builtins={"alpha": DummySource, "beta": DummySource})

    with pytest.raises(RegistryMiss) as excinfo:
        registry.get("nope")

    assert excinfo.value.available == ["alpha", "beta"]
    assert 'Source "nope" not found' in str(excinfo.value)
    assert "alpha, beta" in str(excinfo.value)
    assert isinstance(excinfo.value, LookupError)


def test_default_registry_ships_mangaraw():
    assert "mangaraw" in list_sources()
    assert isinstance(get_source("MangaRaw"), MangaRawSource)
