"""
Pytest Configuration and Fixtures
"""

from unittest.mock import AsyncMock

import pytest

from conductor.events import EventBus
from conductor.providers import ScriptedAgentInvoker
from conductor.types import PieceState


@pytest.fixture
def invoker() -> ScriptedAgentInvoker:
    """Empty scripted invoker; tests enqueue replies."""
    return ScriptedAgentInvoker()


@pytest.fixture
def judge() -> AsyncMock:
    """Judge Invoker double that never matches unless told otherwise."""
    mock = AsyncMock()
    mock.evaluate = AsyncMock(return_value=-1)
    return mock


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(name="test")


@pytest.fixture
def recorded_events(event_bus):
    """List that receives every event emitted on ``event_bus``."""
    events = []
    event_bus.on_all(events.append)
    return events


@pytest.fixture
def state() -> PieceState:
    return PieceState(piece_name="test-piece", current_movement="plan")
