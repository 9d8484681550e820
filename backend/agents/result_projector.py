"""
Result Projector — read-only verdict view of a finished game.

Builds what the result screen shows: headline, whether the viewer won, the
unmasked impostor, the secret word and a per-player score sheet. Never
mutates the session.
"""
from typing import Optional

from models.game import (
    GameState, ImpostorReveal, Phase, ResultView, Role, ScoreLine, Winner, HUMAN_PLAYER_ID,
)

HEADLINES = {
    Winner.INNOCENT: "Innocents win!",
    Winner.IMPOSTOR: "Impostor wins!",
    Winner.DRAW: "Draw",
}


def viewer_won(state: GameState, viewer_id: Optional[str]) -> bool:
    """
    True only when the winning side is the viewer's role.
    A draw is never a win, even though the impostor survives it.
    """
    viewer = state.get_player(viewer_id)
    if viewer is None or state.winner is None or state.winner == Winner.DRAW:
        return False
    return state.winner.value == viewer.role.value


def project_result(state: GameState, viewer_id: Optional[str] = HUMAN_PLAYER_ID) -> ResultView:
    """Raises ValueError if the game has not reached RESULT."""
    if state.phase != Phase.RESULT or state.winner is None:
        raise ValueError(f"Session {state.id} has no result yet (phase={state.phase.value})")

    impostor = state.impostor
    return ResultView(
        session_id=state.id,
        winner=state.winner,
        headline=HEADLINES[state.winner],
        viewer_won=viewer_won(state, viewer_id),
        secret_word=state.secret_word,
        impostor=ImpostorReveal(id=impostor.id, name=impostor.name, avatar=impostor.avatar),
        scoreboard=[
            ScoreLine(
                id=p.id,
                name=p.name,
                role=p.role,
                is_agent=p.is_agent,
                votes_received=p.votes_received,
                voted_for=state.collected_votes.get(p.id),
                is_impostor=p.role == Role.IMPOSTOR,
            )
            for p in state.players
        ],
        transcript=list(state.transcript),
    )
