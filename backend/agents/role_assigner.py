"""
Role Assignment — deterministic-by-seed role and seating shuffles.

Responsibilities:
- Pick the secret word uniformly from the configured pool
- Deal exactly one Impostor and two Innocents across the three seats
- Shuffle the turn order independently of the role deal

Called once per game start (including rematches) by the session service.
"""
import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from models.game import GameConfig, Player, Role, PLAYER_COUNT

logger = logging.getLogger(__name__)


# One Impostor, two Innocents — the multiset every deal is a permutation of
ROLE_POOL: List[Role] = [Role.IMPOSTOR, Role.INNOCENT, Role.INNOCENT]


@dataclass(frozen=True)
class Deal:
    secret_word: str
    players: List[Player]  # already in turn order


class RoleAssigner:
    """
    Deals roles and seating for a new game.

    Role assignment and turn order come from two separate shuffles so that
    speaking first says nothing about a player's role. Inputs are never
    mutated; every call works on copies.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def pick_word(self, words: Sequence[str]) -> str:
        if not words:
            raise ValueError("Word pool is empty — configure at least one secret word.")
        return self._rng.choice(list(words))

    def shuffle_roles(self) -> List[Role]:
        roles = list(ROLE_POOL)
        self._rng.shuffle(roles)
        return roles

    def shuffle_order(self, players: Sequence[Player]) -> List[Player]:
        order = list(players)
        self._rng.shuffle(order)
        return order

    def deal(self, profile: GameConfig, words: Sequence[str]) -> Deal:
        word = self.pick_word(words)
        roles = self.shuffle_roles()

        seated: List[Player] = []
        for (player_id, is_agent, cfg), role in zip(profile.seats(), roles):
            seated.append(Player(
                id=player_id,
                name=cfg.name,
                is_agent=is_agent,
                role=role,
                avatar=cfg.avatar,
            ))
        if len(seated) != PLAYER_COUNT:
            raise ValueError(f"Expected {PLAYER_COUNT} seats, got {len(seated)}")

        order = self.shuffle_order(seated)
        roles = {p.id: p.role.value for p in seated}
        logger.debug(f"Dealt roles {roles}, turn order {[p.id for p in order]}")
        return Deal(secret_word=word, players=order)


# Module-level singleton
role_assigner = RoleAssigner()
