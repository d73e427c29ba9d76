"""Shared pytest fixtures for the studio_producer test suite."""

import os

import pytest

# config reads the environment at import time
os.environ.setdefault("MODEL_NAME", "test-model")
os.environ.setdefault("LLM_BASE_URL", "http://localhost:9999/v1")
os.environ.setdefault("STUDIO_WEB_PASSWORD", "testpass123")
os.environ.setdefault("STUDIO_RETRY_INITIAL_DELAY", "1.0")

from fakes import FakeServices
from studio_producer.session_store import InMemorySessionStore
from studio_producer.tools.production import build_production_registry


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set minimum env vars so modules can be imported without real services."""
    monkeypatch.setenv("MODEL_NAME", "test-model")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:9999/v1")
    monkeypatch.setenv("LLM_API_KEY", "NA")
    monkeypatch.setenv("STUDIO_SERVICES_URL", "http://localhost:9998")
    monkeypatch.setenv("STUDIO_WEB_PASSWORD", "testpass123")


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def registry(store, services):
    return build_production_registry(store, services)


@pytest.fixture
def planned_session(store):
    """A session with a three-scene content plan and no narration yet."""
    session = store.create(topic="coral reefs")
    store.update(session.session_id, content_plan={
        "title": "Coral Reefs",
        "targetDuration": 30,
        "totalDuration": 30,
        "scenes": [
            {"id": "s1", "name": "Intro", "duration": 10,
             "narrationScript": "Coral reefs are alive.", "visualDescription": "Wide reef shot at dawn"},
            {"id": "s2", "name": "Threats", "duration": 10,
             "narrationScript": "Warming seas bleach them.", "visualDescription": "Bleached coral close-up"},
            {"id": "s3", "name": "Hope", "duration": 10,
             "narrationScript": "Restoration is working.", "visualDescription": "Divers planting coral"},
        ],
    })
    return store.require(session.session_id)
