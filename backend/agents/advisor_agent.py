"""
Advisor Agent — clue and vote provider for agent-controlled players.

Two interchangeable implementations, chosen once at composition time:
  GeminiAdvisor   gemini-2.5-flash text generation (not Live API)
  OfflineAdvisor  local random picks from the fallback pools, no network

The Advisor never touches session state. It receives snapshots and returns
text; the turn coordinator decides what to do with it. Any failure is
reported as None so the caller can fall back locally.
"""
import logging
import random
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from google import genai
from google.genai import types

from config import settings
from models.game import ClueEntry, Player, Role

logger = logging.getLogger(__name__)


# ── Fallback content (used whenever the advisor cannot answer) ────────────────

IMPOSTOR_FALLBACK_CLUES: List[str] = [
    "I think it comes in several colours",
    "It is usually found indoors",
    "It does not take up much space",
    "Sometimes it is heavy",
    "I have seen it in shops",
]

INNOCENT_FALLBACK_CLUES: List[str] = [
    "It usually has a curved shape",
    "The material is quite hard",
    "You can find it in a house",
    "It has a distinctive colour",
    "You can hold it in one hand",
]

_SYSTEM_CLUE = """You are playing "Secret Impostor", a three-player word game.

IF YOU ARE INNOCENT:
- Subjective adjectives such as "nice", "fun" or "good" are forbidden.
- You MUST describe a PHYSICAL property: colour, shape, material, size or use.
- Bad example: "It's cool". Good example: "It's made of metal".

IF YOU ARE THE IMPOSTOR:
- Be vague but believable. Say things like "It comes in many sizes", "People use it daily".
"""

_SYSTEM_VOTE = """You are an AI playing a deduction game.
Your task is to identify the liar based on whether their clues fit the secret word.
Reply ONLY with the exact name of the player.
"""

_CLUE_PREFIX_RE = re.compile(r"^(my clue is|clue)\s*:\s*", re.IGNORECASE)

# Phrases that mean the model stepped out of the game
_BROKEN_CHARACTER_MARKERS = ("as an ai", "i am an ai", "i'm an ai", "language model")


def fallback_clue(role: Role, rng: Optional[random.Random] = None) -> str:
    pool = IMPOSTOR_FALLBACK_CLUES if role == Role.IMPOSTOR else INNOCENT_FALLBACK_CLUES
    return (rng or random).choice(pool)


def vote_candidates(voter: Player, players: Sequence[Player]) -> List[Player]:
    return [p for p in players if p.id != voter.id]


def fallback_vote(voter: Player, players: Sequence[Player], rng: Optional[random.Random] = None) -> str:
    """Uniformly random target id, never the voter."""
    return (rng or random).choice(vote_candidates(voter, players)).id


def clean_clue(text: Optional[str]) -> Optional[str]:
    """
    Strip quoting and 'Clue:'-style prefixes from a model reply.
    Returns None for replies too short to be a clue or that break character.
    """
    if not text:
        return None
    cleaned = text.strip().strip('"').strip()
    cleaned = _CLUE_PREFIX_RE.sub("", cleaned).strip().strip('"').strip()
    if len(cleaned) < 3:
        return None
    lowered = cleaned.lower()
    if any(marker in lowered for marker in _BROKEN_CHARACTER_MARKERS):
        return None
    return cleaned


def resolve_vote_target(response: Optional[str], voter: Player, players: Sequence[Player]) -> Optional[str]:
    """Match a free-text reply to a candidate by case-insensitive name substring."""
    if not response:
        return None
    cleaned = response.strip().rstrip(".").lower()
    for candidate in vote_candidates(voter, players):
        if candidate.name.lower() in cleaned:
            return candidate.id
    return None


def _format_transcript(transcript: Sequence[ClueEntry]) -> str:
    if not transcript:
        return "(Nobody has spoken yet)"
    return "\n".join(f'- {c.player_name} said: "{c.text}"' for c in transcript)


def build_clue_prompt(player: Player, secret_word: str, transcript: Sequence[ClueEntry]) -> str:
    history = _format_transcript(transcript)
    prompt = "Game: word guessing with an infiltrator.\n"
    prompt += f"Your name: {player.name}.\n"

    if player.role == Role.IMPOSTOR:
        # The impostor's prompt must never contain the secret word
        prompt += "Your ROLE: INFILTRATOR (you do not know the secret word).\n"
        prompt += "GOAL: Don't get caught. Say a vague sentence that fits almost any physical object.\n"
        prompt += f"STRATEGY: Read the history:\n{history}\n"
        prompt += 'If they say "it is red", say "Sometimes it has other colours". If they say "it is big", say "Depends on the model".\n'
        prompt += 'If you go first, say something safe like: "It is usually in houses", "Many people use it", "It comes in different shapes".\n'
    else:
        prompt += "Your ROLE: CITIZEN (you know the word).\n"
        prompt += f'SECRET WORD: "{secret_word}".\n'
        prompt += f'GOAL: Give a PHYSICAL, REAL clue about the word "{secret_word}".\n'
        prompt += "GOLDEN RULE: You MUST mention COLOUR, MATERIAL, SHAPE or PLACE.\n"
        prompt += 'FORBIDDEN: "It is fun", "It is pretty", "I like it", "It is important".\n'
        prompt += "GOOD EXAMPLES:\n"
        prompt += '- For Pizza: "It has cheese", "It is round", "It is eaten hot".\n'
        prompt += '- For Sun: "It is bright", "It is in the sky", "It is hot".\n'
        prompt += '- For Guitar: "It has strings", "It is made of wood", "It has a hole".\n'
        prompt += f"Previous history:\n{history}\n"

    prompt += "Answer with ONE short sentence (maximum 8 words). Be natural."
    return prompt


def build_vote_prompt(
    player: Player,
    players: Sequence[Player],
    secret_word: str,
    transcript: Sequence[ClueEntry],
) -> str:
    candidates = vote_candidates(player, players)

    # Group clues per candidate so the model judges each player's whole profile
    clues_by_player: Dict[str, List[str]] = {p.id: [] for p in candidates}
    for entry in transcript:
        if entry.player_id in clues_by_player:
            clues_by_player[entry.player_id].append(entry.text)

    summary = ""
    for p in candidates:
        clues = clues_by_player[p.id]
        clue_text = " and ".join(f'"{c}"' for c in clues) if clues else "(said nothing)"
        summary += f"Player {p.name}: {clue_text}\n"

    prompt = f'You are playing "Secret Impostor". Your name is {player.name}.\n'
    prompt += (
        f"There are {len(players)} players. One is the Impostor (does not know the secret word). "
        f'The others know the word is "{secret_word}".\n\n'
    )
    prompt += f"Clues given so far:\n{summary}\n"
    prompt += "----------------\n"

    if player.role == Role.IMPOSTOR:
        prompt += f'YOUR ROLE: IMPOSTOR. (You did not know the word, but now you know it was "{secret_word}").\n'
        prompt += "YOUR GOAL: Fool the others by voting for an Innocent so you are saved.\n"
        prompt += (
            "STRATEGY: Choose the innocent player whose clue was the vaguest, strangest or hardest to "
            "understand. If every clue was good, pick one at random but keep your cover.\n"
        )
    else:
        prompt += f'YOUR ROLE: INNOCENT. (You know the word "{secret_word}").\n'
        prompt += "YOUR GOAL: Find and vote for the Impostor.\n"
        prompt += "VOTING CRITERIA:\n"
        prompt += f'1. Did anyone say something that does NOT fit "{secret_word}"? (E.g. said "it is red" when the word is "Sky").\n'
        prompt += '2. Was anyone too generic? (E.g. "It is nice", "I like it"). That is suspicious.\n'
        prompt += "3. Vote for whoever is most likely NOT to know the word.\n"

    prompt += f'\nReply ONLY with the name of the player you vote for. Example: "{candidates[0].name}".'
    return prompt


# ── Advisor capability ────────────────────────────────────────────────────────

class Advisor(ABC):
    """Clue/vote provider for agent-controlled players. Returns None when it cannot answer."""

    name = "advisor"

    @abstractmethod
    async def request_clue(
        self, player: Player, secret_word: str, transcript: Sequence[ClueEntry]
    ) -> Optional[str]:
        ...

    @abstractmethod
    async def request_vote(
        self,
        player: Player,
        players: Sequence[Player],
        secret_word: str,
        transcript: Sequence[ClueEntry],
    ) -> Optional[str]:
        """Return the chosen target's name (free text), or None."""
        ...


class GeminiAdvisor(Advisor):
    """Network-backed advisor using the google-genai async client."""

    name = "gemini"

    def __init__(self, api_key: str, model: str, client: Optional[genai.Client] = None):
        self.model = model
        self._client = client or genai.Client(api_key=api_key)

    async def _generate(
        self, prompt: str, system: str, temperature: float, max_output_tokens: int
    ) -> Optional[str]:
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system,
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                ),
            )
            text = response.text
            return text.strip() if text else None
        except Exception as exc:
            logger.error(f"[advisor] Gemini call failed: {exc}")
            return None

    async def request_clue(self, player, secret_word, transcript):
        raw = await self._generate(
            build_clue_prompt(player, secret_word, transcript), _SYSTEM_CLUE,
            temperature=0.8, max_output_tokens=100,
        )
        clue = clean_clue(raw)
        if raw and not clue:
            logger.warning(f"[advisor] Discarding degenerate clue for {player.id}: {raw!r}")
        return clue

    async def request_vote(self, player, players, secret_word, transcript):
        raw = await self._generate(
            build_vote_prompt(player, players, secret_word, transcript), _SYSTEM_VOTE,
            temperature=0.1, max_output_tokens=20,
        )
        logger.info(f"[advisor] Vote from {player.id} ({player.role.value}) on {secret_word!r}: {raw!r}")
        return raw


class OfflineAdvisor(Advisor):
    """No network: picks from the fallback pools and votes at random."""

    name = "offline"

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    async def request_clue(self, player, secret_word, transcript):
        return fallback_clue(player.role, self._rng)

    async def request_vote(self, player, players, secret_word, transcript):
        return self._rng.choice(vote_candidates(player, players)).name


_advisor: Optional[Advisor] = None


def build_advisor() -> Advisor:
    if settings.advisor_mode == "offline":
        logger.info("Advisor: offline mode forced by ADVISOR_MODE")
        return OfflineAdvisor()
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set — agents will use offline fallback content")
        return OfflineAdvisor()
    return GeminiAdvisor(api_key=settings.gemini_api_key, model=settings.advisor_model)


def get_advisor() -> Advisor:
    """Lazy singleton — built on first use from settings."""
    global _advisor
    if _advisor is None:
        _advisor = build_advisor()
    return _advisor
