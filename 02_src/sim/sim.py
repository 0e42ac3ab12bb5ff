"""SIM implementation - random pairing traffic against the HTTP API."""

import asyncio
import random
from typing import Protocol

import httpx

from pairchat.logging_config import get_logger
from pairchat.tracker import ITracker

logger = get_logger(__name__)

DEFAULT_PARTICIPANTS = 6
DEFAULT_ROUNDS = 5

PHRASES = [
    "hi",
    "hey, where are you from?",
    "what are you up to today?",
    "nice, same here",
    "got to go, bye",
]


class ISim(Protocol):
    """Generate pairing traffic for manual testing."""

    async def start(self) -> None:
        """Start the scenario."""
        ...

    async def stop(self) -> None:
        """Stop the scenario."""
        ...


class Sim:
    """Simulated participants that match, chat and stop at random.

    Every round each participant either sends a phrase (when paired),
    asks for a partner (when not), or occasionally stops the conversation.
    All traffic goes through the public HTTP API.
    """

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        participants: int = DEFAULT_PARTICIPANTS,
        rounds: int = DEFAULT_ROUNDS,
        stop_probability: float = 0.2,
        rng: random.Random | None = None,
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._participants = participants
        self._rounds = rounds
        self._stop_probability = stop_probability
        self._rng = rng or random.Random()
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    def configure(
        self, participants: int | None = None, rounds: int | None = None
    ) -> None:
        """Change scenario size for the next start()."""
        if participants is not None:
            self._participants = participants
        if rounds is not None:
            self._rounds = rounds

    async def start(self) -> None:
        """Start the scenario in the background."""
        if self._running:
            return

        self._running = True
        self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        """Stop the scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        participant_ids = [f"sim_{i:03d}" for i in range(self._participants)]
        summary = {"participants": len(participant_ids), "rounds": self._rounds}

        try:
            if self._tracker:
                await self._tracker.track("sim_started", "sim", summary)

            # Everyone comes online concurrently, like a burst of /start.
            await asyncio.gather(
                *[self._post(f"/api/participants/{pid}/available") for pid in participant_ids]
            )

            for _ in range(self._rounds):
                if not self._running:
                    break
                await asyncio.gather(*[self._act(pid) for pid in participant_ids])
                await asyncio.sleep(self._rng.uniform(0.5, 1.5))

        except asyncio.CancelledError:
            pass
        except httpx.HTTPError as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracker:
                await self._tracker.track("sim_completed", "sim", summary)

    async def _act(self, participant_id: str) -> None:
        state = await self._get(f"/api/participants/{participant_id}")
        if state is None:
            return

        if state.get("conversation_id") is None:
            await self._post(f"/api/participants/{participant_id}/match")
        elif self._rng.random() < self._stop_probability:
            await self._post(f"/api/participants/{participant_id}/stop")
        else:
            await self._post(
                f"/api/participants/{participant_id}/messages",
                json={"text": self._rng.choice(PHRASES)},
            )

    async def _get(self, path: str) -> dict | None:
        if not self._client:
            return None

        response = await self._client.get(path)
        if response.status_code != 200:
            logger.error("SIM: GET %s -> %s", path, response.status_code)
            return None
        return response.json()

    async def _post(self, path: str, json: dict | None = None) -> dict | None:
        if not self._client:
            return None

        response = await self._client.post(path, json=json)
        if response.status_code != 200:
            logger.error("SIM: POST %s -> %s", path, response.status_code)
            return None

        data = response.json()
        logger.info("SIM: %s -> %s", path, data.get("outcome", "ok"))
        return data
