"""Reporting API routes: conversation records and the audit trail."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication
from ...errors import StoreUnavailable
from ...models import Conversation


class ConversationResponse(BaseModel):
    """Response model for a conversation record."""

    id: str
    member_a: str
    member_b: str
    status: str
    created_at: datetime
    ended_at: datetime | None = None


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


def _to_response(conversation: Conversation) -> dict:
    return {
        "id": conversation.id,
        "member_a": conversation.member_a,
        "member_b": conversation.member_b,
        "status": conversation.status.value,
        "created_at": conversation.created_at,
        "ended_at": conversation.ended_at,
    }


def create_reporting_router(app: IApplication) -> APIRouter:
    """Create reporting router."""
    router = APIRouter(prefix="/api", tags=["reporting"])

    @router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
    async def get_conversation(conversation_id: str) -> dict:
        """Get a conversation record, including ended ones."""
        try:
            conversation = await app.conversations.get(conversation_id)
        except StoreUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))

        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return _to_response(conversation)

    @router.get("/conversations", response_model=list[ConversationResponse])
    async def list_conversations(
        participant_id: str = Query(..., description="Member to report on"),
        limit: int = Query(100, ge=1, le=1000),
    ) -> list[dict]:
        """Get conversation history of a participant (newest first)."""
        try:
            history = await app.conversations.history(participant_id, limit=limit)
        except StoreUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))

        return [_to_response(c) for c in history]

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: datetime | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Get the audit trail, newest first."""
        try:
            events = await app.storage.get_trace_events(
                after=after,
                event_types=[event_type] if event_type else None,
                actor=actor,
                limit=limit,
            )
        except StoreUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))

        return [
            {
                "id": e.id,
                "event_type": e.event_type,
                "actor": e.actor,
                "data": e.data,
                "timestamp": e.timestamp,
            }
            for e in events
        ]

    return router
