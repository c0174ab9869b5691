"""Unit tests for the service container"""
import pytest

from progress_engine.db.memory_store import InMemoryStore
from progress_engine.api.server import create_api_application
from progress_engine.services.container import ServiceContainer, create_store


def test_services_are_lazy_singletons(store):
    container = ServiceContainer(store=store)

    assert container._sessions is None
    assert container.sessions is container.sessions
    assert container.sessions.aggregator is container.aggregator
    assert container.achievements.aggregator is container.aggregator


def test_create_memory_store():
    assert isinstance(create_store("memory"), InMemoryStore)


def test_create_unknown_store():
    with pytest.raises(ValueError):
        create_store("sqlite")


def test_containers_do_not_share_services(store):
    first = ServiceContainer(store=store)
    second = ServiceContainer(store=InMemoryStore())

    assert first.sessions is not second.sessions
    assert second.sessions.store is not store


def test_api_application_uses_given_container(container):
    app = create_api_application(container)

    assert app.state.container is container
