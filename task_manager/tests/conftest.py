from __future__ import annotations

import dataclasses
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from src.api.db import SQLiteTaskStore
from src.api.main import create_app
from src.api.repositories import InMemoryTaskStore, TaskStore
from src.api.settings import Settings, get_settings


def make_settings(**overrides) -> Settings:
    base = dataclasses.replace(
        get_settings(),
        persistence_backend="memory",
        cors_allow_origins=["*"],
        environment="development",
        log_file=None,
    )
    return dataclasses.replace(base, **overrides)


@pytest.fixture()
def settings_factory():
    return make_settings


@pytest.fixture()
def settings() -> Settings:
    return make_settings()


@pytest.fixture()
def memory_store() -> Iterator[InMemoryTaskStore]:
    store = InMemoryTaskStore()
    yield store
    store.close()


@pytest.fixture()
def client(settings: Settings, memory_store: InMemoryTaskStore) -> Iterator[TestClient]:
    app = create_app(settings, store=memory_store)
    with TestClient(app) as c:
        yield c


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path) -> Iterator[TaskStore]:
    """Every TaskStore backend, fresh per test."""
    if request.param == "sqlite":
        s: TaskStore = SQLiteTaskStore(str(tmp_path / "tasks.db"))
    else:
        s = InMemoryTaskStore()
    yield s
    s.close()
