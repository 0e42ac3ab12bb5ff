"""Tests for the traffic simulator."""

import random

import httpx
import pytest
import pytest_asyncio

from pairchat.api import create_fastapi_app
from pairchat.app import Application
from sim import Sim


@pytest_asyncio.fixture
async def application(monkeypatch):
    monkeypatch.delenv("BOT_TOKEN", raising=False)
    app = Application(db_path=":memory:")
    await app.start()
    yield app
    await app.stop()


@pytest_asyncio.fixture
async def sim(application):
    """Sim wired to the app in-process, no network."""
    transport = httpx.ASGITransport(app=create_fastapi_app(application))
    sim = Sim(
        tracker=application.tracker,
        participants=4,
        rounds=1,
        rng=random.Random(3),
    )
    sim._client = httpx.AsyncClient(transport=transport, base_url="http://test")
    yield sim
    await sim._client.aclose()


class TestSimScenario:
    """Tests for a full simulated run."""

    @pytest.mark.asyncio
    async def test_scenario_pairs_participants(self, sim, application):
        """Everyone comes online and the pool gets paired off."""
        sim._running = True
        await sim._run_scenario()

        storage = application.storage
        started = await storage.get_trace_events(event_types=["sim_started"])
        completed = await storage.get_trace_events(event_types=["sim_completed"])
        created = await storage.get_trace_events(event_types=["match_created"])

        assert started[0].data == {"participants": 4, "rounds": 1}
        assert len(completed) == 1
        assert len(created) >= 1
        with_history = [
            i for i in range(4)
            if await application.conversations.history(f"sim_{i:03d}")
        ]
        assert len(with_history) >= 2

    @pytest.mark.asyncio
    async def test_configure(self, sim):
        sim.configure(participants=10)
        assert sim._participants == 10
        assert sim._rounds == 1
