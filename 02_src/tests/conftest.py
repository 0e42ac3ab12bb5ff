"""Pytest configuration and fixtures."""

import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeClock:
    """Manually advanced clock for lease expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from pairchat.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def tracker(storage):
    """Create Tracker with storage."""
    from pairchat.tracker import Tracker

    return Tracker(storage)


@pytest.fixture
def directory(storage, clock):
    """Create ParticipantDirectory."""
    from pairchat.directory import ParticipantDirectory

    return ParticipantDirectory(storage, clock=clock)


@pytest.fixture
def conversations(storage, clock):
    """Create ConversationStore with a 30 second pending lease."""
    from pairchat.conversations import ConversationStore

    return ConversationStore(storage, pending_ttl=30, clock=clock)


@pytest.fixture
def matchmaker(directory, conversations):
    """Create MatchMaker with a seeded RNG."""
    from pairchat.matching import MatchMaker

    return MatchMaker(directory, conversations, max_attempts=3, rng=random.Random(7))


@pytest.fixture
def mock_sink():
    """Create mock notification sink that always delivers."""
    sink = Mock()
    sink.send = AsyncMock(return_value=True)
    sink.close = AsyncMock()
    return sink


@pytest.fixture
def relay(conversations, mock_sink):
    """Create MessageRelay with mock sink."""
    from pairchat.relay import MessageRelay

    return MessageRelay(conversations, mock_sink)


@pytest.fixture
def chat_service(directory, conversations, matchmaker, relay, mock_sink, tracker):
    """Create ChatService wired to the mock sink."""
    from pairchat.service import ChatService

    return ChatService(
        directory=directory,
        conversations=conversations,
        matchmaker=matchmaker,
        relay=relay,
        sink=mock_sink,
        tracker=tracker,
    )


@pytest_asyncio.fixture
async def paired(directory, matchmaker):
    """Alice and Bob in an active conversation."""
    await directory.set_available("bob")
    result = await matchmaker.try_match("alice")
    assert result.conversation is not None
    return result.conversation
