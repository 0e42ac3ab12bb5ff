"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .config import (
    DEFAULT_BOT_API_URL,
    DEFAULT_MATCH_MAX_ATTEMPTS,
    DEFAULT_PENDING_TTL_SECONDS,
    env_int,
    resolve_db_path,
)
from .conversations import ConversationStore, IConversationStore
from .directory import IParticipantDirectory, ParticipantDirectory
from .logging_config import get_logger
from .matching import MatchMaker
from .notifications import (
    BotApiNotificationSink,
    INotificationSink,
    OutboxNotificationSink,
)
from .relay import MessageRelay
from .service import ChatService, IChatService
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        sink: INotificationSink | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._max_attempts = env_int("MATCH_MAX_ATTEMPTS", DEFAULT_MATCH_MAX_ATTEMPTS)
        self._pending_ttl = env_int("PENDING_TTL_SECONDS", DEFAULT_PENDING_TTL_SECONDS)

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._tracker: ITracker | None = None
        self._sink: INotificationSink | None = sink
        self._directory: IParticipantDirectory | None = None
        self._conversations: IConversationStore | None = None
        self._matchmaker: MatchMaker | None = None
        self._relay: MessageRelay | None = None
        self._chat_service: IChatService | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Tracker (depends on Storage)
        self._tracker = Tracker(self._storage)

        # 3. NotificationSink (Bot API when a token is configured)
        if self._sink is None:
            self._sink = self._create_sink(self._storage)

        # 4. Directory + ConversationStore (depend on Storage)
        self._directory = ParticipantDirectory(self._storage)
        self._conversations = ConversationStore(
            self._storage, pending_ttl=self._pending_ttl
        )
        expired = await self._conversations.expire_stale()
        logger.info(f"Stores initialized ({expired} stale reservation(s) removed)")

        # 5. MatchMaker + MessageRelay
        self._matchmaker = MatchMaker(
            self._directory,
            self._conversations,
            max_attempts=self._max_attempts,
        )
        self._relay = MessageRelay(self._conversations, self._sink)

        # 6. ChatService (entry point for inbound events)
        self._chat_service = ChatService(
            directory=self._directory,
            conversations=self._conversations,
            matchmaker=self._matchmaker,
            relay=self._relay,
            sink=self._sink,
            tracker=self._tracker,
        )
        logger.info("All components initialized successfully")

    @staticmethod
    def _create_sink(storage: IStorage) -> INotificationSink:
        token = os.getenv("BOT_TOKEN")
        if token:
            base_url = os.getenv("BOT_API_URL", DEFAULT_BOT_API_URL)
            logger.info("Notifications go through the Bot API")
            return BotApiNotificationSink(token, base_url=base_url)

        logger.info("Notifications go to the outbox")
        return OutboxNotificationSink(storage)

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._sink:
            await self._sink.close()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracker(self) -> ITracker:
        """Get tracker instance."""
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def conversations(self) -> IConversationStore:
        """Get conversation store instance."""
        if not self._conversations:
            raise RuntimeError("Application not started")
        return self._conversations

    @property
    def chat_service(self) -> IChatService:
        """Get chat service instance."""
        if not self._chat_service:
            raise RuntimeError("Application not started")
        return self._chat_service
