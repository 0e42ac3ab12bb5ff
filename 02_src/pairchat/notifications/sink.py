"""NotificationSink implementations."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

import httpx

from ..config import DEFAULT_BOT_API_URL
from ..errors import StoreUnavailable
from ..logging_config import get_logger
from ..models import Delivery
from ..storage import IStorage

logger = get_logger(__name__)


class INotificationSink(Protocol):
    """Delivers a message to a participant out-of-band. Fallible."""

    async def send(self, participant_id: str, content: str) -> bool:
        """Deliver content. Return False if the participant was not reached."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


class OutboxNotificationSink:
    """Writes notifications to the deliveries table for clients to poll."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def send(self, participant_id: str, content: str) -> bool:
        """Append content to the participant's outbox."""
        delivery = Delivery(
            id=str(uuid.uuid4()),
            participant_id=participant_id,
            content=content,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await self._storage.save_delivery(delivery)
        except StoreUnavailable as e:
            logger.warning(f"Outbox write for {participant_id} failed: {e}")
            return False
        return True

    async def close(self) -> None:
        """Nothing to release."""
        return


class BotApiNotificationSink:
    """Sends notifications through a Telegram-compatible Bot API."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BOT_API_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        if not token:
            raise ValueError("Bot API token is required")
        self._url = f"{base_url.rstrip('/')}/bot{token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, participant_id: str, content: str) -> bool:
        """POST sendMessage for the participant's chat."""
        try:
            response = await self._client.post(
                self._url,
                json={"chat_id": participant_id, "text": content},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Bot API delivery to {participant_id} failed: {e}")
            return False

        if not data.get("ok", False):
            logger.warning(
                f"Bot API rejected delivery to {participant_id}: "
                f"{data.get('description', 'unknown error')}"
            )
            return False
        return True

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
