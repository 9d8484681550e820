"""Pytest configuration and fixtures."""

import asyncio
import random
from typing import Dict, List, Optional, Sequence

import pytest

from agents.advisor_agent import Advisor
from agents.role_assigner import Deal
from agents.turn_coordinator import TurnCoordinator
from models.game import GameConfig, GameState, Phase, Player, Role
from services.session_service import SessionService


SEATS = {"user": False, "ai1": True, "ai2": True}


def make_players(
    order: Sequence[str] = ("user", "ai1", "ai2"),
    impostor: str = "ai2",
) -> List[Player]:
    names = {"user": "You", "ai1": "Elmer", "ai2": "Sandra"}
    return [
        Player(
            id=pid,
            name=names[pid],
            is_agent=SEATS[pid],
            role=Role.IMPOSTOR if pid == impostor else Role.INNOCENT,
            avatar=f"avatar-{'user' if pid == 'user' else names[pid].lower()}",
        )
        for pid in order
    ]


def make_state(
    order: Sequence[str] = ("user", "ai1", "ai2"),
    impostor: str = "ai2",
    phase: Phase = Phase.PLAYING,
    total_rounds: int = 2,
) -> GameState:
    return GameState(
        generation=1,
        phase=phase,
        secret_word="Guitar",
        players=make_players(order, impostor),
        total_rounds=total_rounds,
    )


class FixedAssigner:
    """Deals a fixed word, impostor and turn order (no randomness)."""

    def __init__(self, order=("user", "ai1", "ai2"), impostor="ai2", word="Guitar"):
        self.order = order
        self.impostor = impostor
        self.word = word
        self.deals = 0

    def deal(self, profile: GameConfig, words) -> Deal:
        self.deals += 1
        by_id = {pid: cfg for pid, _, cfg in profile.seats()}
        players = make_players(self.order, self.impostor)
        for p in players:
            p.name = by_id[p.id].name
            p.avatar = by_id[p.id].avatar
        return Deal(secret_word=self.word, players=players)


class FailingAdvisor(Advisor):
    """Advisor that is never available."""

    name = "failing"

    def __init__(self):
        self.clue_calls = 0
        self.vote_calls = 0

    async def request_clue(self, player, secret_word, transcript):
        self.clue_calls += 1
        raise RuntimeError("advisor unavailable")

    async def request_vote(self, player, players, secret_word, transcript):
        self.vote_calls += 1
        raise RuntimeError("advisor unavailable")


class ScriptedAdvisor(Advisor):
    """Returns canned clues/votes and records what it was asked."""

    name = "scripted"

    def __init__(self, clues: Optional[Dict[str, str]] = None, votes: Optional[Dict[str, str]] = None):
        self.clues = clues or {}
        self.votes = votes or {}
        self.clue_requests: List[tuple] = []
        self.vote_requests: List[tuple] = []

    async def request_clue(self, player, secret_word, transcript):
        self.clue_requests.append((player.id, secret_word, len(transcript)))
        return self.clues.get(player.id, f"{player.name} says it is round")

    async def request_vote(self, player, players, secret_word, transcript):
        self.vote_requests.append((player.id, [p.id for p in players]))
        return self.votes.get(player.id)


class BlockingAdvisor(Advisor):
    """First clue request waits until released; later ones answer at once."""

    name = "blocking"

    def __init__(self, first_reply: str = "Stale clue", later_reply: str = "Fresh clue"):
        self.first_reply = first_reply
        self.later_reply = later_reply
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.clue_calls = 0

    async def request_clue(self, player, secret_word, transcript):
        self.clue_calls += 1
        if self.clue_calls == 1:
            self.started.set()
            await self.release.wait()
            return self.first_reply
        return self.later_reply

    async def request_vote(self, player, players, secret_word, transcript):
        return None


class VoteBlockingAdvisor(ScriptedAdvisor):
    """Scripted clues; every vote request waits until released."""

    name = "vote-blocking"

    def __init__(self, votes: Optional[Dict[str, str]] = None):
        super().__init__(votes=votes)
        self.vote_started = asyncio.Event()
        self.vote_release = asyncio.Event()

    async def request_vote(self, player, players, secret_word, transcript):
        self.vote_started.set()
        await self.vote_release.wait()
        return await super().request_vote(player, players, secret_word, transcript)


@pytest.fixture
def assigner():
    return FixedAssigner()


@pytest.fixture
def sessions(assigner):
    return SessionService(assigner=assigner)


@pytest.fixture
def make_coordinator(sessions):
    def _make(advisor: Advisor, broadcaster=None) -> TurnCoordinator:
        return TurnCoordinator(
            sessions=sessions,
            advisor=advisor,
            broadcaster=broadcaster,
            clue_delay=0,
            vote_delay=0,
            reveal_tick=0,
            rng=random.Random(3),
        )
    return _make


async def play_human_turns(coordinator: TurnCoordinator, sessions: SessionService, session_id: str,
                           text: str = "It is made of wood") -> GameState:
    """Submit human clues until the game leaves PLAYING."""
    await coordinator.wait_idle(session_id)
    for _ in range(20):
        state = sessions.get_session(session_id)
        if state.phase != Phase.PLAYING:
            return state
        assert state.current_player.id == "user"
        assert await coordinator.submit_clue(session_id, "user", text)
        await coordinator.wait_idle(session_id)
    raise AssertionError("game never left PLAYING")
