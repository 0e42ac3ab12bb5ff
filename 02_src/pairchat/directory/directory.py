"""ParticipantDirectory implementation."""

from datetime import datetime, timezone
from typing import Callable, Protocol

from ..logging_config import get_logger
from ..models import Participant, ParticipantStatus
from ..storage import IStorage

logger = get_logger(__name__)


class IParticipantDirectory(Protocol):
    """Tracks each participant's availability status."""

    async def touch(self, participant_id: str) -> None:
        """Register a participant as offline on first contact."""
        ...

    async def set_available(self, participant_id: str) -> ParticipantStatus:
        """Mark available unless paired. Return the resulting status."""
        ...

    async def set_paired(self, participant_id: str) -> None:
        """Mark paired."""
        ...

    async def set_offline(self, participant_id: str) -> None:
        """Mark offline."""
        ...

    async def release(self, participant_id: str) -> None:
        """Return a participant to the available pool regardless of status."""
        ...

    async def list_available(self, excluding: str | None = None) -> list[str]:
        """List available participant IDs other than `excluding`."""
        ...

    async def status(self, participant_id: str) -> ParticipantStatus:
        """Read current status; unknown participants are offline."""
        ...

    async def get(self, participant_id: str) -> Participant | None:
        """Get a participant record."""
        ...


class ParticipantDirectory:
    """Availability tracking backed by Storage.

    Nothing is cached between calls: every read goes to the store, since
    other processes may have changed a status in the meantime.
    """

    def __init__(
        self,
        storage: IStorage,
        clock: Callable[[], datetime] | None = None,
    ):
        self._storage = storage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def touch(self, participant_id: str) -> None:
        """Register a participant as offline on first contact."""
        if await self._storage.insert_participant(participant_id, self._clock()):
            logger.info(f"New participant {participant_id}")

    async def set_available(self, participant_id: str) -> ParticipantStatus:
        """Mark available unless paired. Return the resulting status."""
        status = await self._storage.upsert_available(participant_id, self._clock())
        if status is ParticipantStatus.PAIRED:
            logger.debug(f"{participant_id} is paired, availability unchanged")
        return status

    async def set_paired(self, participant_id: str) -> None:
        """Mark paired."""
        await self._write(participant_id, ParticipantStatus.PAIRED)

    async def set_offline(self, participant_id: str) -> None:
        """Mark offline."""
        await self._write(participant_id, ParticipantStatus.OFFLINE)

    async def release(self, participant_id: str) -> None:
        """Return a participant to the available pool regardless of status."""
        await self._write(participant_id, ParticipantStatus.AVAILABLE)

    async def list_available(self, excluding: str | None = None) -> list[str]:
        """List available participant IDs other than `excluding`. Order is unspecified."""
        return await self._storage.list_participants(
            ParticipantStatus.AVAILABLE, exclude=excluding
        )

    async def status(self, participant_id: str) -> ParticipantStatus:
        """Read current status; unknown participants are offline."""
        participant = await self._storage.get_participant(participant_id)
        if participant is None:
            return ParticipantStatus.OFFLINE
        return participant.status

    async def get(self, participant_id: str) -> Participant | None:
        """Get a participant record."""
        return await self._storage.get_participant(participant_id)

    async def _write(self, participant_id: str, status: ParticipantStatus) -> None:
        await self._storage.write_participant_status(
            participant_id, status, self._clock()
        )
        logger.debug(f"{participant_id} -> {status.value}")
