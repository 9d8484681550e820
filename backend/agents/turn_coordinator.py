"""
Turn Coordinator — drives a session from REVEAL to RESULT.

Phase responsibilities:
  Reveal timer:     REVEAL → PLAYING (ticks every reveal_tick_seconds)
  Clue exchange:    one clue per turn; agent turns are played automatically
  Vote collection:  human votes first, then each agent in player-list order

Ordering rules:
  - Clue turns and vote collection each have their own busy flag per session
    generation (_busy); a repeated trigger while one is in flight is ignored.
    A clue loop still pushing its final VOTING snapshot never blocks voting.
  - A new turn starts only after the previous clue + turn advance committed.
  - Advisor replies are applied only if the session generation is unchanged;
    a rematch or reset makes every in-flight reply stale.

Everything runs on the asyncio event loop, so Session State has a single
writer at a time without locks.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from config import settings
from models.game import GameEvent, GameState, Phase, Player, Role
from agents.advisor_agent import (
    Advisor, clean_clue, fallback_clue, fallback_vote, get_advisor, resolve_vote_target,
)
from agents.game_master import GameMaster, game_master
from services.session_service import SessionService, get_session_service

logger = logging.getLogger(__name__)

Broadcaster = Callable[[GameState], Awaitable[None]]

CLUE_WORK = "clue"
VOTE_WORK = "vote"


class InvalidAction(ValueError):
    """A client command that is not allowed in the current state."""

    def __init__(self, message: str, code: str = "INVALID_ACTION"):
        super().__init__(message)
        self.code = code


class TurnCoordinator:

    def __init__(
        self,
        sessions: Optional[SessionService] = None,
        advisor: Optional[Advisor] = None,
        master: Optional[GameMaster] = None,
        broadcaster: Optional[Broadcaster] = None,
        clue_delay: Optional[float] = None,
        vote_delay: Optional[float] = None,
        reveal_tick: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self._sessions = sessions
        self._advisor = advisor
        self.master = master or game_master
        self.broadcaster = broadcaster
        self._clue_delay = clue_delay
        self._vote_delay = vote_delay
        self._reveal_tick = reveal_tick
        self._rng = rng or random.Random()

        # (session_id, generation, CLUE_WORK | VOTE_WORK) with work in flight
        self._busy: Set[Tuple[str, int, str]] = set()
        # Background work per session, so callers (and tests) can wait for it
        self._tasks: Dict[str, Set[asyncio.Task]] = {}

    # ── Collaborators (resolved lazily so settings are read at use time) ──────

    @property
    def sessions(self) -> SessionService:
        return self._sessions or get_session_service()

    @property
    def advisor(self) -> Advisor:
        return self._advisor or get_advisor()

    @property
    def clue_delay(self) -> float:
        return settings.agent_clue_delay_seconds if self._clue_delay is None else self._clue_delay

    @property
    def vote_delay(self) -> float:
        return settings.agent_vote_delay_seconds if self._vote_delay is None else self._vote_delay

    @property
    def reveal_tick(self) -> float:
        return settings.reveal_tick_seconds if self._reveal_tick is None else self._reveal_tick

    # ── Commands ──────────────────────────────────────────────────────────────

    async def start_game(self, session_id: str) -> GameState:
        """
        Start (or restart) the game. The previous game, if any, is replaced
        wholesale; replies still in flight for it will be discarded.
        """
        state = self.sessions.start_game(session_id)
        self._log(state, "game_started", data={
            "total_rounds": state.total_rounds,
            "turn_order": [p.id for p in state.players],
        })
        self._spawn(session_id, self._run_reveal(session_id, state.generation))
        await self._broadcast(session_id)
        return state

    async def submit_clue(self, session_id: str, player_id: str, text: str) -> bool:
        """
        Human clue for the current turn. Returns False (no change) for blank text.

        Raises InvalidAction outside PLAYING, when it is not this player's
        turn, or (SESSION_RESET) when committing the clue left the session in
        an invalid state and it was sent back to the lobby.
        """
        state = self.sessions.require_session(session_id)
        if state.phase != Phase.PLAYING:
            raise InvalidAction("Clues can only be given while playing", "WRONG_PHASE")
        player = state.current_player
        if player.id != player_id or player.is_agent:
            raise InvalidAction(f"It is {player.name}'s turn", "NOT_YOUR_TURN")
        if not text.strip():
            return False

        generation = state.generation
        if not self._commit_clue(state, player, text):
            raise InvalidAction("The game was reset to the lobby", "SESSION_RESET")

        await self._broadcast(session_id)
        self._spawn(session_id, self._run_agent_turns(session_id, generation))
        return True

    async def cast_vote(self, session_id: str, voter_id: str, target_id: str) -> GameState:
        """
        Human vote. Once recorded, agent votes are collected in the background
        and the tally runs when every player has voted.
        """
        state = self.sessions.require_session(session_id)
        if state.phase != Phase.VOTING:
            raise InvalidAction("Votes can only be cast during the voting phase", "WRONG_PHASE")

        voter = state.get_player(voter_id)
        if voter is None or voter.is_agent:
            raise InvalidAction(f"'{voter_id}' cannot vote manually", "INVALID_VOTER")
        if voter.id in state.collected_votes:
            raise InvalidAction("You have already voted", "VOTE_ALREADY_CAST")

        target = state.get_player(target_id)
        if target is None or target.id == voter.id:
            raise InvalidAction(f"'{target_id}' is not a valid vote target", "INVALID_TARGET")

        state.record_vote(voter.id, target.id)
        self._log(state, "vote", actor=voter.id, target=target.id, visible=False)
        if not self._check(state):
            return self.sessions.require_session(session_id)

        generation = state.generation
        await self._broadcast(session_id)
        self._spawn(session_id, self._collect_agent_votes(session_id, generation))
        return state

    async def wait_idle(self, session_id: str) -> None:
        """Wait until no background work is pending for the session."""
        while True:
            pending = [t for t in self._tasks.get(session_id, ()) if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all background work (process shutdown only)."""
        tasks = [t for group in self._tasks.values() for t in group if not t.done()]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._busy.clear()

    # ── Reveal timer ──────────────────────────────────────────────────────────

    async def _run_reveal(self, session_id: str, generation: int) -> None:
        while True:
            await asyncio.sleep(self.reveal_tick)
            state = self._current(session_id, generation)
            if state is None or state.phase != Phase.REVEAL:
                return
            phase = self.master.tick_reveal(state)
            if phase == Phase.PLAYING:
                self._log(state, "phase_change", data={"from": "reveal", "to": "playing"})
            if not self._check(state):
                return
            await self._broadcast(session_id)
            if phase == Phase.PLAYING:
                break
        await self._run_agent_turns(session_id, generation)

    # ── Clue exchange ─────────────────────────────────────────────────────────

    async def _run_agent_turns(self, session_id: str, generation: int) -> None:
        """Play agent turns back to back until a human turn or VOTING."""
        key = (session_id, generation, CLUE_WORK)
        if key in self._busy:
            logger.debug(f"[{session_id}] Agent turn already in progress — trigger ignored")
            return
        self._busy.add(key)
        try:
            while True:
                state = self._current(session_id, generation)
                if state is None or state.phase != Phase.PLAYING:
                    return
                player = state.current_player
                if not player.is_agent:
                    return

                clue, source = await self._agent_clue(state, player)

                state = self._current(session_id, generation)
                if state is None:
                    logger.info(f"[{session_id}] Dropping clue from {player.id} for a replaced game")
                    return
                self._log(state, "agent_clue", actor=player.id, data={"source": source}, visible=False)
                if not self._commit_clue(state, player, clue):
                    return
                await self._broadcast(session_id)
        finally:
            self._busy.discard(key)

    async def _agent_clue(self, state: GameState, player: Player) -> Tuple[str, str]:
        await self._set_thinking(state, player.id)
        try:
            await asyncio.sleep(self.clue_delay)
            # Only innocents are told the word
            secret_word = state.secret_word if player.role == Role.INNOCENT else ""
            try:
                raw = await self.advisor.request_clue(
                    player.model_copy(), secret_word, list(state.transcript),
                )
            except Exception:
                logger.exception(f"[{state.id}] Advisor clue request failed for {player.id}")
                raw = None
        finally:
            state.thinking_player_id = None

        clue = clean_clue(raw)
        if clue is None:
            clue = fallback_clue(player.role, self._rng)
            logger.warning(f"[{state.id}] Advisor gave no usable clue for {player.id} — fallback: {clue}")
            return clue, "fallback"
        return clue, self.advisor.name

    def _commit_clue(self, state: GameState, player: Player, text: str) -> bool:
        """append_clue + advance_turn as one step. False if nothing was committed or the session was reset."""
        entry = state.append_clue(player, text)
        if entry is None:
            return False
        before = state.phase
        after = self.master.advance_turn(state)
        if after != before:
            self._log(state, "phase_change", data={"from": before.value, "to": after.value})
        return self._check(state)

    # ── Vote collection ───────────────────────────────────────────────────────

    async def _collect_agent_votes(self, session_id: str, generation: int) -> None:
        key = (session_id, generation, VOTE_WORK)
        if key in self._busy:
            logger.debug(f"[{session_id}] Agent voting already in progress — trigger ignored")
            return
        self._busy.add(key)
        try:
            state = self._current(session_id, generation)
            if state is None or state.phase != Phase.VOTING:
                return
            # Agents never vote before every human has
            if any(p.id not in state.collected_votes for p in state.players if not p.is_agent):
                return

            for agent in state.agents:
                if agent.id in state.collected_votes:
                    continue
                await asyncio.sleep(self.vote_delay)
                target_id, source = await self._agent_vote(state, agent)

                state = self._current(session_id, generation)
                if state is None:
                    logger.info(f"[{session_id}] Dropping vote from {agent.id} for a replaced game")
                    return
                state.record_vote(agent.id, target_id)
                self._log(state, "vote", actor=agent.id, target=target_id,
                          data={"source": source}, visible=False)
                await self._broadcast(session_id)
                state = self._current(session_id, generation)
                if state is None:
                    return

            if self.master.votes_complete(state):
                result = self.master.resolve_votes(state)
                self._log(state, "vote_result", target=result.ejected, data={
                    "counts": result.counts,
                    "tied": result.tied,
                    "winner": result.winner.value,
                })
                if not self._check(state):
                    return
                await self._broadcast(session_id)
        finally:
            self._busy.discard(key)

    async def _agent_vote(self, state: GameState, agent: Player) -> Tuple[str, str]:
        roster = [p.model_copy() for p in state.players]
        await self._set_thinking(state, agent.id)
        try:
            raw = await self.advisor.request_vote(
                agent.model_copy(), roster, state.secret_word, list(state.transcript),
            )
        except Exception:
            logger.exception(f"[{state.id}] Advisor vote request failed for {agent.id}")
            raw = None
        finally:
            state.thinking_player_id = None

        target_id = resolve_vote_target(raw, agent, roster)
        if target_id is None:
            target_id = fallback_vote(agent, roster, self._rng)
            logger.warning(f"[{state.id}] Could not resolve vote from {agent.id} ({raw!r}) — random: {target_id}")
            return target_id, "fallback"
        return target_id, self.advisor.name

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _current(self, session_id: str, generation: int) -> Optional[GameState]:
        """The live session state, or None if it was replaced since `generation`."""
        state = self.sessions.get_session(session_id)
        if state is None or state.generation != generation:
            return None
        return state

    async def _set_thinking(self, state: GameState, player_id: str) -> None:
        """Mark an agent as waiting on the advisor and let viewers know."""
        state.thinking_player_id = player_id
        await self._broadcast(state.id)

    def _check(self, state: GameState) -> bool:
        """Validate after a transition; a corrupted session goes back to LOBBY."""
        problems = self.master.validate(state)
        if not problems:
            return True
        logger.error(f"[{state.id}] Invariant violation: {'; '.join(problems)}")
        self.sessions.reset_to_lobby(state.id, reason="; ".join(problems))
        return False

    def _log(
        self,
        state: GameState,
        type: str,
        actor: Optional[str] = None,
        target: Optional[str] = None,
        data: Optional[Dict] = None,
        visible: bool = True,
    ) -> None:
        self.sessions.log_event(state.id, GameEvent(
            type=type,
            round=state.current_round,
            phase=state.phase,
            actor=actor,
            target=target,
            data=data or {},
            visible_in_game=visible,
        ))

    async def _broadcast(self, session_id: str) -> None:
        if self.broadcaster is None:
            return
        state = self.sessions.get_session(session_id)
        if state is None:
            return
        try:
            await self.broadcaster(state)
        except Exception as exc:
            logger.warning(f"[{session_id}] State broadcast failed: {exc}")

    def _spawn(self, session_id: str, coro: Awaitable[None]) -> None:
        task = asyncio.create_task(self._guarded(session_id, coro))
        group = self._tasks.setdefault(session_id, set())
        group.add(task)
        task.add_done_callback(group.discard)

    @staticmethod
    async def _guarded(session_id: str, coro: Awaitable[None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[{session_id}] Background game task failed")


# Module-level singleton
coordinator = TurnCoordinator()
