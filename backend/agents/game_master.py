"""
Game Master — Pure deterministic Python, no LLM.

Responsibilities:
- Reveal countdown (REVEAL → PLAYING)
- Turn rotation and round bookkeeping (PLAYING → VOTING)
- Vote tallying and tie handling (VOTING → RESULT)
- Win condition resolution
- Invariant checks on a session snapshot

All game rules are implemented here. Nothing is hallucinated.
"""
import logging
from typing import Dict, List

from models.game import GameState, Phase, Role, TallyResult, Winner, PLAYER_COUNT

logger = logging.getLogger(__name__)


class GameMaster:
    """
    Deterministic game logic engine.
    Every method mutates the GameState it is handed in a single synchronous step.
    """

    # ── Reveal countdown ───────────────────────────────────────────────────────

    def tick_reveal(self, state: GameState) -> Phase:
        """
        One elapsed second of the reveal screen.
        When the countdown reaches 0 the game moves to PLAYING.
        Returns the (possibly new) phase; no-op outside REVEAL.
        """
        if state.phase != Phase.REVEAL:
            return state.phase
        state.reveal_countdown = max(state.reveal_countdown - 1, 0)
        if state.reveal_countdown == 0:
            state.phase = Phase.PLAYING
            logger.info(f"[{state.id}] Phase: reveal → playing (round {state.current_round})")
        return state.phase

    # ── Turn rotation ──────────────────────────────────────────────────────────

    def advance_turn(self, state: GameState) -> Phase:
        """
        Pass the turn to the next player in seating order.

        The round counter only moves when the rotation wraps back to seat 0.
        On the final wrap (rounds exhausted) the round is NOT incremented;
        the game moves to VOTING instead.
        Returns the (possibly new) phase.
        """
        if state.phase != Phase.PLAYING:
            logger.warning(f"[{state.id}] advance_turn ignored in phase {state.phase.value}")
            return state.phase

        next_index = (state.current_turn_index + 1) % len(state.players)
        if next_index != 0:
            state.current_turn_index = next_index
            return state.phase

        if state.current_round < state.total_rounds:
            state.current_round += 1
            state.current_turn_index = 0
            logger.info(f"[{state.id}] Round {state.current_round}/{state.total_rounds} begins")
        else:
            state.phase = Phase.VOTING
            logger.info(f"[{state.id}] Phase: playing → voting after {state.current_round} rounds")
        return state.phase

    # ── Vote tallying ──────────────────────────────────────────────────────────

    def votes_complete(self, state: GameState) -> bool:
        return all(p.id in state.collected_votes for p in state.players)

    def tally_votes(self, state: GameState) -> TallyResult:
        """
        Count collected votes. Targets that are not players are skipped.

        Tie-breaking: none. Two or more players sharing the top count is a
        DRAW and nobody is ejected. Otherwise the single top player is ejected:
        the Impostor → innocents win; an Innocent → impostor wins.
        """
        counts: Dict[str, int] = {p.id: 0 for p in state.players}
        for voter, target in state.collected_votes.items():
            if target in counts:
                counts[target] += 1
            else:
                logger.warning(f"[{state.id}] Ignoring vote from {voter} for unknown player {target!r}")

        max_count = max(counts.values()) if counts else 0
        tied = [pid for pid, count in counts.items() if count == max_count]

        if len(tied) != 1:
            logger.info(f"[{state.id}] Vote tie between {tied} at {max_count} — draw")
            return TallyResult(counts=counts, max_count=max_count, tied=tied, winner=Winner.DRAW)

        ejected = state.get_player(tied[0])
        winner = Winner.INNOCENT if ejected.role == Role.IMPOSTOR else Winner.IMPOSTOR
        logger.info(
            f"[{state.id}] Vote result: {ejected.id} ejected with {max_count} votes "
            f"(role={ejected.role.value}) → {winner.value} wins"
        )
        return TallyResult(
            counts=counts, max_count=max_count, tied=tied, ejected=ejected.id, winner=winner,
        )

    def resolve_votes(self, state: GameState) -> TallyResult:
        """Tally, snapshot votes_received onto each player, set winner, enter RESULT."""
        result = self.tally_votes(state)
        for p in state.players:
            p.votes_received = result.counts.get(p.id, 0)
        state.winner = result.winner
        state.phase = Phase.RESULT
        return result

    # ── Invariants ─────────────────────────────────────────────────────────────

    def validate(self, state: GameState) -> List[str]:
        """
        Return a list of invariant violations (empty when the state is sound).
        LOBBY sessions have no dealt players and are only checked for votes.
        """
        problems: List[str] = []
        ids = {p.id for p in state.players}

        # Unknown vote targets are filtered by tally_votes, not treated as corruption
        for voter in state.collected_votes:
            if voter not in ids:
                problems.append(f"vote from unknown player {voter!r}")

        if state.phase == Phase.LOBBY:
            return problems

        if len(state.players) != PLAYER_COUNT:
            problems.append(f"expected {PLAYER_COUNT} players, found {len(state.players)}")
        if len(ids) != len(state.players):
            problems.append("duplicate player ids")
        impostors = sum(1 for p in state.players if p.role == Role.IMPOSTOR)
        if impostors != 1:
            problems.append(f"expected exactly 1 impostor, found {impostors}")
        if not 0 <= state.current_turn_index < max(len(state.players), 1):
            problems.append(f"turn index {state.current_turn_index} out of range")
        if not 1 <= state.current_round <= state.total_rounds:
            problems.append(f"round {state.current_round} outside 1..{state.total_rounds}")
        if state.phase == Phase.RESULT and state.winner is None:
            problems.append("result phase without a winner")
        return problems


# Module-level singleton
game_master = GameMaster()
