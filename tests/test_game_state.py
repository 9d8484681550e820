"""Tests for the session data model and its per-viewer projection."""

import base64

import pytest
from pydantic import ValidationError

from conftest import make_state
from models.game import ClueRequest, GameConfig, Phase, PlayerConfig, Winner
from utils.avatar import MAX_AVATAR_BYTES


class TestTranscript:
    """Tests for clue appends."""

    def test_append_clue_records_round_and_name(self):
        state = make_state()
        player = state.get_player("ai1")
        entry = state.append_clue(player, "  It has strings  ")
        assert entry is not None
        assert entry.text == "It has strings"
        assert entry.player_name == "Elmer"
        assert entry.round == 1
        assert state.transcript == [entry]

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_clue_is_ignored(self, text):
        """Test that blank text leaves the transcript unchanged."""
        state = make_state()
        assert state.append_clue(state.get_player("user"), text) is None
        assert state.transcript == []

    def test_clue_entries_are_immutable(self):
        state = make_state()
        entry = state.append_clue(state.get_player("user"), "It is wooden")
        with pytest.raises(ValidationError):
            entry.text = "changed"

    def test_clue_ids_unique(self):
        state = make_state()
        a = state.append_clue(state.get_player("user"), "one")
        b = state.append_clue(state.get_player("user"), "one")
        assert a.id != b.id


class TestVotes:
    """Tests for vote recording."""

    def test_record_vote_last_write_wins(self):
        state = make_state(phase=Phase.VOTING)
        state.record_vote("user", "ai1")
        state.record_vote("user", "ai2")
        assert state.collected_votes == {"user": "ai2"}


class TestPublicView:
    """Tests for what each viewer is allowed to see."""

    def test_innocent_sees_word_and_own_role_only(self):
        state = make_state(impostor="ai2")
        view = state.to_public("user")
        assert view["secret_word"] == "Guitar"
        roles = {p["id"]: p["role"] for p in view["players"]}
        assert roles == {"user": "innocent", "ai1": None, "ai2": None}

    def test_impostor_never_sees_word(self):
        state = make_state(impostor="user")
        view = state.to_public("user")
        assert view["secret_word"] is None
        roles = {p["id"]: p["role"] for p in view["players"]}
        assert roles["user"] == "impostor"
        assert roles["ai1"] is None

    def test_unknown_viewer_sees_nothing_secret(self):
        view = make_state().to_public("spectator")
        assert view["secret_word"] is None
        assert all(p["role"] is None for p in view["players"])

    def test_result_reveals_everything(self):
        state = make_state(impostor="user", phase=Phase.RESULT)
        state.winner = Winner.INNOCENT
        view = state.to_public("user")
        assert view["secret_word"] == "Guitar"
        assert all(p["role"] is not None for p in view["players"])
        assert view["winner"] == "innocent"

    def test_votes_cast_lists_voters_not_targets(self):
        state = make_state(phase=Phase.VOTING)
        state.record_vote("user", "ai2")
        view = state.to_public("user")
        assert view["votes_cast"] == ["user"]
        assert "ai2" not in view["votes_cast"]

    def test_current_player_only_while_playing(self):
        assert make_state(phase=Phase.PLAYING).to_public("user")["current_player_id"] == "user"
        assert make_state(phase=Phase.VOTING).to_public("user")["current_player_id"] is None


class TestProfile:
    """Tests for cosmetic profile validation."""

    def test_defaults(self):
        cfg = GameConfig()
        assert [seat[0] for seat in cfg.seats()] == ["user", "ai1", "ai2"]
        assert cfg.ai1.name == "Elmer"

    @pytest.mark.parametrize("name", ["", "   ", "ThisNameIsTooLong"])
    def test_bad_names_rejected(self, name):
        with pytest.raises(ValidationError):
            PlayerConfig(name=name, avatar="avatar-user")

    def test_name_is_trimmed(self):
        assert PlayerConfig(name="  Ana ", avatar="avatar-user").name == "Ana"

    def test_data_url_avatar_accepted(self):
        payload = base64.b64encode(b"\x89PNG fake image bytes").decode()
        cfg = PlayerConfig(name="Ana", avatar=f"data:image/png;base64,{payload}")
        assert cfg.avatar.startswith("data:image/png;base64,")

    def test_unknown_avatar_rejected(self):
        with pytest.raises(ValidationError):
            PlayerConfig(name="Ana", avatar="https://example.com/me.png")

    def test_oversized_avatar_rejected(self):
        payload = base64.b64encode(b"x" * (MAX_AVATAR_BYTES + 1)).decode()
        with pytest.raises(ValidationError):
            PlayerConfig(name="Ana", avatar=f"data:image/png;base64,{payload}")


class TestRequests:

    def test_clue_text_capped_at_50(self):
        ClueRequest(text="x" * 50)
        with pytest.raises(ValidationError):
            ClueRequest(text="x" * 51)


class TestThinkingHint:

    def test_thinking_player_in_snapshot(self):
        state = make_state()
        assert state.to_public("user")["thinking_player_id"] is None
        state.thinking_player_id = "ai1"
        assert state.to_public("ai2")["thinking_player_id"] == "ai1"
