"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from coordinator.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def error_handler(storage):
    from coordinator.errors import ErrorHandler

    return ErrorHandler(storage)


@pytest.fixture
def router(storage, error_handler):
    """Create MessageRouter with storage."""
    from coordinator.message_router import MessageRouter

    return MessageRouter(storage, error_handler=error_handler)


@pytest_asyncio.fixture
async def scheduler(error_handler):
    """Scheduler stopped after each test so no timer outlives it."""
    from coordinator.scheduler import Scheduler

    sch = Scheduler(error_handler)
    yield sch
    await sch.stop()


@pytest.fixture
def tracker(storage, router):
    """Create Tracker with storage and router."""
    from coordinator.tracker import Tracker

    return Tracker(router=router, storage=storage)


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    llm = Mock()
    llm.complete = AsyncMock(return_value="Test response")
    return llm


@pytest.fixture
def json_llm():
    """Factory: mock LLM answering with the given objects (JSON-encoded) in order."""

    def make(*responses):
        llm = Mock()
        encoded = [r if isinstance(r, str) else json.dumps(r) for r in responses]
        if len(encoded) == 1:
            llm.complete = AsyncMock(return_value=encoded[0])
        else:
            llm.complete = AsyncMock(side_effect=encoded)
        return llm

    return make


@pytest.fixture
def recorder(router):
    """Observer collecting every routed message."""
    seen = []

    async def observe(message):
        seen.append(message)

    router.subscribe_all(observe)
    return seen
