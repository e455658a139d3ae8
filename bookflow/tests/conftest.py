"""
Pytest configuration and shared fixtures for bookflow tests.
"""

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from bookflow.config import GatewayConfig
from bookflow.dispatch import CommandDispatcher
from bookflow.gateway import create_app
from bookflow.metrics import GatewayMetrics
from bookflow.testing import InMemoryEngine

TEST_BOOK_ID = "b1"
TEST_WORKFLOW_ID = "book-b1"


def _running_state(workflow_id: str = TEST_WORKFLOW_ID, **fields) -> dict:
    state = {
        "workflowId": workflow_id,
        "startedAt": "2026-01-01T00:00:00+00:00",
        "updates": [],
        "status": "running",
    }
    state.update(fields)
    return state


def _make_png(size=(8, 8), mode="RGBA", color=(255, 0, 0, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def engine() -> InMemoryEngine:
    """In-memory engine with one running book workflow."""
    engine = InMemoryEngine()
    engine.add_workflow(TEST_WORKFLOW_ID)
    return engine


@pytest.fixture
def metrics() -> GatewayMetrics:
    return GatewayMetrics()


@pytest.fixture
def dispatcher(engine, metrics) -> CommandDispatcher:
    return CommandDispatcher(engine, metrics=metrics)


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(poll_interval=0.01, cover_generation_enabled=True)


@pytest.fixture
def app(engine, gateway_config, metrics):
    return create_app(engine, config=gateway_config, metrics=metrics)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def running_state():
    """Factory for engine state snapshots."""
    return _running_state


@pytest.fixture
def make_png():
    """Factory for small in-memory PNG images."""
    return _make_png
