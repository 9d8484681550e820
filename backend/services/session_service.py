import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict

from models.game import GameState, GameConfig, GameEvent, Phase
from config import settings

logger = logging.getLogger(__name__)


class SessionNotFound(LookupError):
    pass


class SessionService:
    """
    In-process session store. Sessions live only as long as the process.

    Every method here is synchronous: a transition is applied in one step with
    no await in the middle, so the event loop can never observe a half-built
    session. Whole-session changes (start, reset) swap in a new GameState
    object rather than editing the old one.
    """

    def __init__(self, assigner=None):
        if assigner is None:
            from agents.role_assigner import role_assigner
            assigner = role_assigner
        self._assigner = assigner
        self._sessions: Dict[str, GameState] = {}
        self._events: Dict[str, List[GameEvent]] = {}

    # ── Session CRUD ──────────────────────────────────────────────────────────

    def create_session(self, profile: Optional[GameConfig] = None) -> GameState:
        state = GameState(profile=profile or GameConfig(), total_rounds=settings.total_rounds)
        self._sessions[state.id] = state
        self._events[state.id] = []
        logger.info(f"[{state.id}] Session created")
        return state

    def get_session(self, session_id: str) -> Optional[GameState]:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> GameState:
        state = self._sessions.get(session_id)
        if state is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return state

    def update_profile(self, session_id: str, profile: GameConfig) -> GameState:
        """Store the cosmetic profile; it is applied at the next start."""
        state = self.require_session(session_id)
        state.profile = profile
        logger.info(f"[{session_id}] Profile updated")
        return state

    # ── Whole-session transitions ─────────────────────────────────────────────

    def start_game(self, session_id: str) -> GameState:
        """
        Deal a brand-new game into the session and enter REVEAL.
        Rematches go through here too: nothing from the previous game survives.
        """
        previous = self.require_session(session_id)
        deal = self._assigner.deal(previous.profile, settings.words)

        state = GameState(
            id=previous.id,
            generation=previous.generation + 1,
            phase=Phase.REVEAL,
            secret_word=deal.secret_word,
            players=deal.players,
            transcript=[],
            current_round=1,
            current_turn_index=0,
            total_rounds=settings.total_rounds,
            reveal_countdown=settings.reveal_time_seconds,
            collected_votes={},
            winner=None,
            profile=previous.profile,
            created_at=previous.created_at,
            started_at=datetime.now(timezone.utc),
        )
        self._sessions[session_id] = state
        self._events[session_id] = []
        logger.info(
            f"[{session_id}] Game started (generation {state.generation}, {state.total_rounds} rounds, "
            f"turn order {[p.id for p in state.players]})"
        )
        return state

    def reset_to_lobby(self, session_id: str, reason: str = "") -> GameState:
        """Discard the running game and return the session to LOBBY."""
        previous = self.require_session(session_id)
        state = GameState(
            id=previous.id,
            generation=previous.generation + 1,
            total_rounds=settings.total_rounds,
            profile=previous.profile,
            created_at=previous.created_at,
        )
        self._sessions[session_id] = state
        self._events[session_id] = []
        logger.warning(f"[{session_id}] Session reset to lobby: {reason or 'no reason given'}")
        return state

    # ── Events (append-only audit log) ───────────────────────────────────────

    def log_event(self, session_id: str, event: GameEvent) -> None:
        self._events.setdefault(session_id, []).append(event)

    def get_events(self, session_id: str, visible_only: bool = False) -> List[GameEvent]:
        events = self._events.get(session_id, [])
        if visible_only:
            return [e for e in events if e.visible_in_game]
        return list(events)


_session_service: Optional["SessionService"] = None


def get_session_service() -> "SessionService":
    """Lazy singleton.
    Use as a FastAPI dependency: Depends(get_session_service)
    """
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service
