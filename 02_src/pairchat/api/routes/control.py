"""Control API routes: maintenance and simulation."""

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import IApplication
from ...errors import StoreUnavailable


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class ExpireResponse(BaseModel):
    """Response model for pending reservation cleanup."""

    status: str
    expired: int


class SimStartRequest(BaseModel):
    """Optional scenario settings for the simulator."""

    participants: int | None = Field(default=None, ge=2, le=100)
    rounds: int | None = Field(default=None, ge=1, le=100)


# Global SIM instance (will be set by main app)
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Get the global SIM instance."""
    return _sim_instance


def _require_sim() -> Any:
    if not _sim_instance:
        raise HTTPException(status_code=404, detail="SIM not configured")
    return _sim_instance


def create_control_router(app: IApplication) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Drop all participants, conversations and audit data."""
        try:
            await app.reset()
        except StoreUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok"}

    @router.post("/expire-pending", response_model=ExpireResponse)
    async def expire_pending() -> dict:
        """Remove pending reservations whose lease ran out."""
        try:
            expired = await app.conversations.expire_stale()
        except StoreUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok", "expired": expired}

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim(request: SimStartRequest | None = None) -> dict:
        """Start the traffic simulator."""
        sim = _require_sim()
        if request is not None:
            sim.configure(participants=request.participants, rounds=request.rounds)
        await sim.start()
        return {"status": "ok"}

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        """Stop the traffic simulator."""
        sim = _require_sim()
        await sim.stop()
        return {"status": "ok"}

    return router
