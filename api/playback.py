"""
Session, run and playback API routes.

A client creates a session for one algorithm family, edits its domain,
starts runs on it and drives playback with intents. Frames are pushed on the
``session:{id}`` WebSocket channel and can also be read here.

All endpoints are coroutines so that every controller and its scheduler task
live on the server's event loop.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from engine import Family, InvalidParameters
from engine.registry import parse_family

from .sessions import Session, session_manager
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

SIMPLE_INTENTS = ("play", "pause", "step-forward", "step-backward", "reset", "cancel")


# ============= Request Models =============


class CreateSessionRequest(BaseModel):
    """Request model for creating a session."""

    family: str = Field(..., description="sorting, pathfinding, tree or graph")
    domain: Optional[Dict[str, Any]] = Field(None, description="Initial domain; family default when omitted")


class DeepLinkRequest(BaseModel):
    """A deep link as returned by GET /sessions/{id}/link."""

    family: str
    algorithm_id: str
    params: Dict[str, Any] = Field(default_factory=dict)
    index: int = -1


class DomainRequest(BaseModel):
    domain: Dict[str, Any]


class CellRequest(BaseModel):
    cell: List[int] = Field(..., description="[row, col]")


class EndpointsRequest(BaseModel):
    start: Optional[List[int]] = None
    end: Optional[List[int]] = None


class WeightRequest(BaseModel):
    cell: List[int] = Field(..., description="[row, col]")
    weight: float = Field(..., description="Cost of entering the cell, >= 1")


class MazeRequest(BaseModel):
    generator: str = Field("recursive-backtracker", description="random-noise, recursive-backtracker or recursive-division")
    seed: int = 0
    density: Optional[float] = Field(None, description="Wall probability for random-noise")


class ArrayRequest(BaseModel):
    size: int = 16
    ordering: str = "random"
    seed: int = 0


class TreeEditRequest(BaseModel):
    action: str = Field(..., description="insert or delete")
    key: int


class BalancedTreeRequest(BaseModel):
    count: int = Field(7, description="Number of distinct keys")
    seed: int = 0


class RunRequest(BaseModel):
    """Request model for starting a run on the session domain."""

    algorithm_id: str = Field(..., description="Algorithm id from the catalog")
    params: Dict[str, Any] = Field(default_factory=dict, description="Algorithm options; override domain values")


class SeekRequest(BaseModel):
    index: int


class SpeedRequest(BaseModel):
    multiplier: float = Field(..., description="Clamped to the configured speed range")


# ============= Helpers =============


def _get_session(session_id: str) -> Session:
    session = session_manager.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _playback_response(session: Session) -> Dict[str, Any]:
    frame = session.controller.current_frame
    return {
        "session_id": session.id,
        "playback": session.controller.to_dict(),
        "frame": frame.to_dict() if frame is not None else None,
    }


def _domain_response(session: Session) -> Dict[str, Any]:
    return {
        "session_id": session.id,
        "family": session.family.value,
        "domain": session.domain,
        "playback": session.controller.to_dict(),
    }


# ============= Sessions =============


@router.post("/sessions")
async def create_session(request: CreateSessionRequest):
    """Create a visualization session."""
    session = session_manager.create_session(request.family, request.domain)
    return session.to_dict()


@router.post("/sessions/from-link")
async def open_deep_link(request: DeepLinkRequest):
    """Recreate a session, its Run and its position from a deep link."""
    session = session_manager.open_link(request.model_dump())
    return {**session.to_dict(), "frame": _playback_response(session)["frame"]}


@router.get("/sessions")
async def list_sessions(
    family: Optional[str] = Query(None, description="Filter by family"),
    limit: int = Query(50, ge=1, le=500),
):
    """List sessions, newest first."""
    parsed: Optional[Family] = parse_family(family) if family else None
    sessions = session_manager.list_sessions(parsed, limit)
    return {"sessions": [s.to_dict() for s in sessions], "total": len(sessions)}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _get_session(session_id).to_dict()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Cancel any playback and drop the session."""
    if not session_manager.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"success": True, "message": f"Session '{session_id}' deleted"}


# ============= Domain edits =============


@router.put("/sessions/{session_id}/domain")
async def replace_domain(session_id: str, request: DomainRequest):
    session = _get_session(session_id)
    session_manager.replace_domain(session, request.domain)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/walls/toggle")
async def toggle_wall(session_id: str, request: CellRequest):
    session = _get_session(session_id)
    session_manager.toggle_wall(session, request.cell)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/endpoints")
async def move_endpoints(session_id: str, request: EndpointsRequest):
    """Move the start and/or end cell of a pathfinding grid."""
    if request.start is None and request.end is None:
        raise InvalidParameters("missing-field", "'start' or 'end' is required", "start")
    session = _get_session(session_id)
    session_manager.set_endpoints(session, request.start, request.end)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/weights")
async def set_weight(session_id: str, request: WeightRequest):
    session = _get_session(session_id)
    session_manager.set_weight(session, request.cell, request.weight)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/maze")
async def generate_maze(session_id: str, request: MazeRequest):
    """Replace the grid walls with a seeded maze."""
    session = _get_session(session_id)
    session_manager.generate_maze(session, request.generator, request.seed, request.density)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/array")
async def randomize_array(session_id: str, request: ArrayRequest):
    session = _get_session(session_id)
    session_manager.randomize_array(session, request.size, request.ordering, request.seed)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/tree")
async def edit_tree(session_id: str, request: TreeEditRequest):
    session = _get_session(session_id)
    session_manager.edit_tree(session, request.action, request.key)
    return _domain_response(session)


@router.post("/sessions/{session_id}/domain/tree/balanced")
async def generate_balanced_tree(session_id: str, request: BalancedTreeRequest):
    """Replace the tree with seeded keys inserted median first."""
    session = _get_session(session_id)
    session_manager.generate_balanced_tree(session, request.count, request.seed)
    return _domain_response(session)


# ============= Runs =============


@router.post("/sessions/{session_id}/runs")
async def start_run(session_id: str, request: RunRequest):
    """Materialize a Run for the session domain and load it paused at index -1."""
    session = _get_session(session_id)
    run = session_manager.start_run(session, request.algorithm_id, request.params)
    return {"run": run.to_dict(), **_playback_response(session)}


@router.post("/sessions/{session_id}/runs/restart")
async def restart_run(session_id: str):
    """Rebuild the last Run from its request."""
    session = _get_session(session_id)
    run = session_manager.restart_run(session)
    return {"run": run.to_dict(), **_playback_response(session)}


# ============= Playback =============


@router.post("/sessions/{session_id}/playback/seek")
async def seek(session_id: str, request: SeekRequest):
    session = _get_session(session_id)
    session_manager.seek(session, request.index)
    return _playback_response(session)


@router.post("/sessions/{session_id}/playback/speed")
async def set_speed(session_id: str, request: SpeedRequest):
    session = _get_session(session_id)
    session_manager.set_speed(session, request.multiplier)
    return _playback_response(session)


@router.post("/sessions/{session_id}/playback/{intent}")
async def playback_intent(session_id: str, intent: str):
    """Apply one of play, pause, step-forward, step-backward, reset, cancel."""
    if intent not in SIMPLE_INTENTS:
        raise HTTPException(status_code=404, detail=f"Unknown playback intent '{intent}'")
    session = _get_session(session_id)
    handlers = {
        "play": session_manager.play,
        "pause": session_manager.pause,
        "step-forward": session_manager.step_forward,
        "step-backward": session_manager.step_backward,
        "reset": session_manager.reset,
        "cancel": session_manager.cancel,
    }
    handlers[intent](session)
    return _playback_response(session)


# ============= Reads =============


@router.get("/sessions/{session_id}/frame")
async def get_current_frame(session_id: str):
    """Last published frame (still readable after cancel)."""
    return _playback_response(_get_session(session_id))


@router.get("/sessions/{session_id}/frames/{index}")
async def get_frame(session_id: str, index: int):
    """Read-only projection of any index of the loaded Run; -1 is the initial snapshot."""
    session = _get_session(session_id)
    snapshot = session.controller.snapshot_at(index)
    run = session.controller.run
    step = run.steps[index] if index >= 0 else None
    return {
        "session_id": session.id,
        "run_id": run.run_id,
        "index": index,
        "step": step.to_dict() if step is not None else None,
        "snapshot": snapshot.to_dict(),
    }


@router.get("/sessions/{session_id}/steps")
async def get_steps(
    session_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=10000),
):
    """Page through the step sequence of the loaded Run."""
    session = _get_session(session_id)
    run = session.controller.run
    if run is None:
        raise HTTPException(status_code=409, detail="No run loaded")
    steps = run.steps[offset:offset + limit]
    return {
        "run_id": run.run_id,
        "offset": offset,
        "total": len(run),
        "steps": [step.to_dict() for step in steps],
    }


@router.get("/sessions/{session_id}/link")
async def get_deep_link(session_id: str):
    """``{family, algorithm_id, params, index}`` for the current position."""
    return _get_session(session_id).controller.deep_link()
