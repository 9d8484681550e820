"""
Session HTTP endpoints.

Routes:
  POST /api/sessions                      — Create a session in LOBBY (optional profile)
  GET  /api/sessions/{session_id}         — Per-viewer state snapshot
  PUT  /api/sessions/{session_id}/profile — Save player names/avatars (used at next start)
  POST /api/sessions/{session_id}/start   — Start the game, or rematch (full reset)
  POST /api/sessions/{session_id}/clue    — Submit the human clue for the current turn
  POST /api/sessions/{session_id}/vote    — Cast the human vote
  GET  /api/sessions/{session_id}/result  — Verdict + score sheet (RESULT only)
  GET  /api/sessions/{session_id}/events  — Event log (visible only, or all post-game)
"""
import logging

from fastapi import APIRouter, HTTPException, Query

from models.game import (
    CreateSessionRequest, CreateSessionResponse,
    ClueRequest, ClueResponse, VoteRequest,
    GameConfig, Phase, ResultView, HUMAN_PLAYER_ID,
)
from services.session_service import get_session_service
from agents.turn_coordinator import coordinator
from agents.result_projector import project_result

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


def _require(session_id: str):
    # SessionNotFound is mapped to 404 by the app-level handler
    return get_session_service().require_session(session_id)


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(body: CreateSessionRequest):
    """Create a new session in the lobby."""
    state = get_session_service().create_session(body.profile)
    return CreateSessionResponse(session_id=state.id)


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    viewer: str = Query(HUMAN_PLAYER_ID, description="Player id whose view to return"),
):
    """
    State snapshot as seen by `viewer`.
    Other players' roles are hidden until the result; the impostor never sees the word.
    """
    return _require(session_id).to_public(viewer)


@router.put("/sessions/{session_id}/profile")
async def update_profile(session_id: str, body: GameConfig):
    """Save player names and avatars. Cosmetic only; applied on the next start."""
    _require(session_id)
    state = get_session_service().update_profile(session_id, body)
    return state.to_public(HUMAN_PLAYER_ID)


@router.post("/sessions/{session_id}/start")
async def start_game(session_id: str):
    """
    Deal roles, pick the word and enter REVEAL.
    Also serves as rematch: the previous game is discarded entirely.
    """
    _require(session_id)
    state = await coordinator.start_game(session_id)
    logger.info(f"Session {session_id} started (generation {state.generation})")
    return state.to_public(HUMAN_PLAYER_ID)


@router.post("/sessions/{session_id}/clue", response_model=ClueResponse)
async def submit_clue(session_id: str, body: ClueRequest):
    """Blank clues are not an error: they are ignored and `accepted` is false."""
    _require(session_id)
    accepted = await coordinator.submit_clue(session_id, body.player_id, body.text)
    return ClueResponse(accepted=accepted)


@router.post("/sessions/{session_id}/vote")
async def cast_vote(session_id: str, body: VoteRequest):
    _require(session_id)
    state = await coordinator.cast_vote(session_id, body.voter_id, body.target_id)
    return state.to_public(body.voter_id)


@router.get("/sessions/{session_id}/result", response_model=ResultView)
async def get_result(
    session_id: str,
    viewer: str = Query(HUMAN_PLAYER_ID, description="Player id the verdict is framed for"),
):
    """Post-game verdict. Only available once the votes have been tallied."""
    state = _require(session_id)
    if state.phase != Phase.RESULT:
        raise HTTPException(status_code=409, detail="Game has not finished yet")
    return project_result(state, viewer)


@router.get("/sessions/{session_id}/events")
async def get_events(
    session_id: str,
    visible_only: bool = Query(
        True, description="True = public events only; False = full log (post-game reveal)"
    ),
):
    """
    Event log for the current game.
    Hidden entries (agent clue sources, individual votes) are only served after the result.
    """
    state = _require(session_id)
    if not visible_only and state.phase != Phase.RESULT:
        raise HTTPException(
            status_code=403,
            detail="Full event log is only available after the game has ended.",
        )

    events = get_session_service().get_events(session_id, visible_only=visible_only)
    return {
        "session_id": session_id,
        "events": [
            {
                "id": e.id,
                "type": e.type,
                "round": e.round,
                "phase": e.phase.value,
                "actor": e.actor,
                "target": e.target,
                "data": e.data,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in events
        ],
    }
