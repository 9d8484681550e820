"""Tests for role dealing and turn-order shuffling."""

import random
from collections import Counter

import pytest

from agents.role_assigner import ROLE_POOL, RoleAssigner
from config import DEFAULT_WORDS
from models.game import GameConfig, Role


class TestPickWord:
    """Tests for secret word selection."""

    def test_word_comes_from_pool(self):
        """Test that the picked word is one of the configured words."""
        assigner = RoleAssigner(random.Random(1))
        for _ in range(50):
            assert assigner.pick_word(DEFAULT_WORDS) in DEFAULT_WORDS

    def test_empty_pool_raises(self):
        """Test that an empty word pool is a configuration error."""
        with pytest.raises(ValueError):
            RoleAssigner(random.Random(1)).pick_word([])

    def test_single_word_pool(self):
        assert RoleAssigner().pick_word(["Moon"]) == "Moon"


class TestDeal:
    """Tests for the full deal."""

    def test_exactly_one_impostor(self):
        """Test that every deal has one impostor and two innocents."""
        assigner = RoleAssigner(random.Random(42))
        for _ in range(200):
            deal = assigner.deal(GameConfig(), DEFAULT_WORDS)
            roles = Counter(p.role for p in deal.players)
            assert roles[Role.IMPOSTOR] == 1
            assert roles[Role.INNOCENT] == 2

    def test_all_seats_present_once(self):
        deal = RoleAssigner(random.Random(5)).deal(GameConfig(), DEFAULT_WORDS)
        assert sorted(p.id for p in deal.players) == ["ai1", "ai2", "user"]
        human = next(p for p in deal.players if p.id == "user")
        assert human.is_agent is False
        assert all(p.is_agent for p in deal.players if p.id != "user")

    def test_profile_names_and_avatars_applied(self):
        """Test that the cosmetic profile is copied onto the dealt players."""
        profile = GameConfig.model_validate({
            "user": {"name": "Ana", "avatar": "avatar-user"},
            "ai1": {"name": "Bot One", "avatar": "avatar-elmer"},
            "ai2": {"name": "Bot Two", "avatar": "avatar-sandra"},
        })
        deal = RoleAssigner(random.Random(5)).deal(profile, DEFAULT_WORDS)
        names = {p.id: p.name for p in deal.players}
        assert names == {"user": "Ana", "ai1": "Bot One", "ai2": "Bot Two"}

    def test_same_seed_same_deal(self):
        """Test that a seeded RNG gives a reproducible deal."""
        first = RoleAssigner(random.Random(9)).deal(GameConfig(), DEFAULT_WORDS)
        second = RoleAssigner(random.Random(9)).deal(GameConfig(), DEFAULT_WORDS)
        assert first.secret_word == second.secret_word
        assert [(p.id, p.role) for p in first.players] == [(p.id, p.role) for p in second.players]

    def test_every_seat_can_be_impostor_and_speak_first(self):
        """Test that roles and turn order both vary across deals."""
        assigner = RoleAssigner(random.Random(123))
        impostors = set()
        openers = set()
        for _ in range(300):
            deal = assigner.deal(GameConfig(), DEFAULT_WORDS)
            impostors.add(next(p.id for p in deal.players if p.role == Role.IMPOSTOR))
            openers.add(deal.players[0].id)
        assert impostors == {"user", "ai1", "ai2"}
        assert openers == {"user", "ai1", "ai2"}

    def test_inputs_not_mutated(self):
        """Test that shuffles work on copies."""
        words = list(DEFAULT_WORDS)
        assigner = RoleAssigner(random.Random(3))
        assigner.deal(GameConfig(), words)
        assert words == DEFAULT_WORDS
        assert ROLE_POOL == [Role.IMPOSTOR, Role.INNOCENT, Role.INNOCENT]

        seated = assigner.deal(GameConfig(), words).players
        snapshot = [p.id for p in seated]
        assigner.shuffle_order(seated)
        assert [p.id for p in seated] == snapshot
