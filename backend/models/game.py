from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, timezone
import uuid

from utils.avatar import validate_avatar_ref


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


HUMAN_PLAYER_ID = "user"
AGENT_PLAYER_IDS = ("ai1", "ai2")
PLAYER_COUNT = 3


class Role(str, Enum):
    INNOCENT = "innocent"
    IMPOSTOR = "impostor"


class Phase(str, Enum):
    LOBBY = "lobby"
    REVEAL = "reveal"
    PLAYING = "playing"
    VOTING = "voting"
    RESULT = "result"


class Winner(str, Enum):
    INNOCENT = "innocent"
    IMPOSTOR = "impostor"
    DRAW = "draw"  # tie for most votes: nobody is ejected


# ── Player profile (cosmetic only) ────────────────────────────────────────────

class PlayerConfig(BaseModel):
    name: str
    avatar: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not 1 <= len(value) <= 12:
            raise ValueError("name must be 1-12 characters")
        return value

    @field_validator("avatar")
    @classmethod
    def _check_avatar(cls, value: str) -> str:
        return validate_avatar_ref(value)


class GameConfig(BaseModel):
    user: PlayerConfig = Field(default_factory=lambda: PlayerConfig(name="You", avatar="avatar-user"))
    ai1: PlayerConfig = Field(default_factory=lambda: PlayerConfig(name="Elmer", avatar="avatar-elmer"))
    ai2: PlayerConfig = Field(default_factory=lambda: PlayerConfig(name="Sandra", avatar="avatar-sandra"))

    def seats(self) -> List[tuple]:
        """(player_id, is_agent, PlayerConfig) in seat order."""
        return [
            (HUMAN_PLAYER_ID, False, self.user),
            (AGENT_PLAYER_IDS[0], True, self.ai1),
            (AGENT_PLAYER_IDS[1], True, self.ai2),
        ]


# ── Session records ───────────────────────────────────────────────────────────

class Player(BaseModel):
    id: str
    name: str
    is_agent: bool
    role: Role
    avatar: str
    votes_received: int = 0  # snapshot written by the tally, never incremented

    def to_public(self, reveal_role: bool = False) -> Dict[str, Any]:
        """Safe representation — role omitted unless the viewer may see it."""
        return {
            "id": self.id,
            "name": self.name,
            "is_agent": self.is_agent,
            "avatar": self.avatar,
            "votes_received": self.votes_received,
            "role": self.role.value if reveal_role else None,
        }


class ClueEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    player_id: str
    player_name: str  # snapshot at the time of the clue
    text: str
    round: int
    created_at: datetime = Field(default_factory=_utcnow)


class TallyResult(BaseModel):
    counts: Dict[str, int]
    max_count: int
    tied: List[str]
    ejected: Optional[str] = None
    winner: Winner


class GameState(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8].upper())
    # Bumped on every start/reset; late advisor replies for an older generation are dropped
    generation: int = 0
    phase: Phase = Phase.LOBBY
    secret_word: str = ""
    players: List[Player] = []  # turn order
    transcript: List[ClueEntry] = []
    current_round: int = 1
    current_turn_index: int = 0
    total_rounds: int = 2
    reveal_countdown: int = 0
    collected_votes: Dict[str, str] = {}  # voter id → target id
    # Agent whose advisor request is in flight (presentation hint only)
    thinking_player_id: Optional[str] = None
    winner: Optional[Winner] = None
    profile: GameConfig = Field(default_factory=GameConfig)
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: Optional[datetime] = None

    # ── Lookups ───────────────────────────────────────────────────────────────

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    @property
    def current_player(self) -> Optional[Player]:
        if not self.players:
            return None
        return self.players[self.current_turn_index]

    @property
    def agents(self) -> List[Player]:
        return [p for p in self.players if p.is_agent]

    @property
    def impostor(self) -> Optional[Player]:
        return next((p for p in self.players if p.role == Role.IMPOSTOR), None)

    # ── Mutations ─────────────────────────────────────────────────────────────

    def append_clue(self, player: Player, text: str) -> Optional[ClueEntry]:
        """Append a clue to the transcript. Blank text is ignored (returns None)."""
        text = text.strip()
        if not text:
            return None
        entry = ClueEntry(
            player_id=player.id,
            player_name=player.name,
            text=text,
            round=self.current_round,
        )
        self.transcript.append(entry)
        return entry

    def record_vote(self, voter_id: str, target_id: str) -> None:
        """Last write wins; each voter votes once in practice."""
        self.collected_votes[voter_id] = target_id

    # ── Read model ────────────────────────────────────────────────────────────

    def to_public(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Snapshot for the presentation layer as seen by `viewer_id`.

        Other players' roles stay hidden until the result is in, and the
        secret word is withheld from the impostor.
        """
        viewer = self.get_player(viewer_id)
        finished = self.phase == Phase.RESULT
        knows_word = finished or (viewer is not None and viewer.role == Role.INNOCENT)
        current = self.current_player if self.phase == Phase.PLAYING else None
        return {
            "session_id": self.id,
            "phase": self.phase.value,
            "round": self.current_round,
            "total_rounds": self.total_rounds,
            "current_turn_index": self.current_turn_index,
            "current_player_id": current.id if current else None,
            "thinking_player_id": self.thinking_player_id,
            "reveal_countdown": self.reveal_countdown,
            "secret_word": self.secret_word if knows_word and self.secret_word else None,
            "players": [
                p.to_public(reveal_role=finished or (viewer is not None and p.id == viewer.id))
                for p in self.players
            ],
            "transcript": [c.model_dump(mode="json") for c in self.transcript],
            "votes_cast": sorted(self.collected_votes),
            "winner": self.winner.value if self.winner else None,
            "profile": self.profile.model_dump(),
        }


class GameEvent(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    round: int
    phase: Phase
    actor: Optional[str] = None
    target: Optional[str] = None
    data: Dict[str, Any] = {}
    visible_in_game: bool = True
    timestamp: datetime = Field(default_factory=_utcnow)


# ── Result read model ─────────────────────────────────────────────────────────

class ScoreLine(BaseModel):
    id: str
    name: str
    role: Role
    is_agent: bool
    votes_received: int
    voted_for: Optional[str] = None
    is_impostor: bool


class ImpostorReveal(BaseModel):
    id: str
    name: str
    avatar: str


class ResultView(BaseModel):
    session_id: str
    winner: Winner
    headline: str
    viewer_won: bool
    secret_word: str
    impostor: ImpostorReveal
    scoreboard: List[ScoreLine]
    transcript: List[ClueEntry]


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateSessionRequest(BaseModel):
    profile: Optional[GameConfig] = None


class CreateSessionResponse(BaseModel):
    session_id: str


class ClueRequest(BaseModel):
    player_id: str = HUMAN_PLAYER_ID
    text: str = Field(max_length=50)  # presentation cap, not a game rule


class ClueResponse(BaseModel):
    accepted: bool


class VoteRequest(BaseModel):
    voter_id: str = HUMAN_PLAYER_ID
    target_id: str
