"""Participant event API routes."""

from datetime import datetime

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication
from ...errors import StoreUnavailable
from ...notifications import notices


class TextRequest(BaseModel):
    """Request model for relaying a text message."""

    text: str = Field(min_length=1)


class MatchResponse(BaseModel):
    """Response model for availability and match requests."""

    outcome: str
    conversation_id: str | None = None
    partner_notified: bool | None = None
    reply: str


class RelayResponse(BaseModel):
    """Response model for a relayed message."""

    outcome: str
    conversation_id: str | None = None
    reply: str


class StopResponse(BaseModel):
    """Response model for stop and offline requests."""

    outcome: str
    conversation_id: str | None = None
    partner_notified: bool = False
    reply: str


class ParticipantResponse(BaseModel):
    """Response model for participant status. Partner ids are not exposed."""

    id: str
    status: str
    updated_at: datetime | None = None
    conversation_id: str | None = None


class DeliveryResponse(BaseModel):
    """Response model for an outbox delivery."""

    id: str
    content: str
    timestamp: datetime


def _unavailable(e: StoreUnavailable) -> HTTPException:
    return HTTPException(status_code=503, detail=f"Store unavailable, retry: {e}")


def create_participants_router(app: IApplication) -> APIRouter:
    """Create participants router."""
    router = APIRouter(prefix="/api/participants", tags=["participants"])

    @router.post("/{participant_id}/available", response_model=MatchResponse)
    async def request_available(participant_id: str) -> dict:
        """Become available and try to get matched."""
        try:
            result = await app.chat_service.request_available(participant_id)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
            "partner_notified": result.partner_notified,
            "reply": notices.reply_for(result.outcome.value),
        }

    @router.post("/{participant_id}/match", response_model=MatchResponse)
    async def request_match(participant_id: str) -> dict:
        """Search for a partner."""
        try:
            result = await app.chat_service.request_match(participant_id)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
            "partner_notified": result.partner_notified,
            "reply": notices.reply_for(result.outcome.value),
        }

    @router.post("/{participant_id}/messages", response_model=RelayResponse)
    async def send_text(participant_id: str, request: TextRequest) -> dict:
        """Relay a text message to the partner."""
        try:
            result = await app.chat_service.send_text(participant_id, request.text)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
            "reply": notices.reply_for(result.outcome.value),
        }

    @router.post("/{participant_id}/stop", response_model=StopResponse)
    async def request_stop(participant_id: str) -> dict:
        """End the active conversation."""
        try:
            result = await app.chat_service.request_stop(participant_id)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
            "partner_notified": result.partner_notified,
            "reply": notices.reply_for(result.outcome.value),
        }

    @router.post("/{participant_id}/offline", response_model=StopResponse)
    async def go_offline(participant_id: str) -> dict:
        """End any conversation and leave the pool."""
        try:
            result = await app.chat_service.go_offline(participant_id)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
            "partner_notified": result.partner_notified,
            "reply": notices.reply_for("offline"),
        }

    @router.get("/{participant_id}", response_model=ParticipantResponse)
    async def get_participant(participant_id: str) -> dict:
        """Get participant status and active conversation."""
        try:
            participant, conversation = await app.chat_service.describe(
                participant_id
            )
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "id": participant.id,
            "status": participant.status.value,
            "updated_at": participant.updated_at,
            "conversation_id": conversation.id if conversation else None,
        }

    @router.get("/{participant_id}/inbox", response_model=list[DeliveryResponse])
    async def get_inbox(
        participant_id: str,
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict]:
        """Get notifications written to the participant's outbox."""
        try:
            deliveries = await app.storage.get_deliveries(participant_id, limit=limit)
        except StoreUnavailable as e:
            raise _unavailable(e)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {"id": d.id, "content": d.content, "timestamp": d.timestamp}
            for d in deliveries
        ]

    return router
