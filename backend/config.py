from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal


DEFAULT_WORDS: List[str] = [
    "Pizza", "Guitar", "Sun", "Beach", "Elephant",
    "Computer", "Airplane", "Chocolate", "Football", "Mountain",
    "Clock", "Book", "Shoes", "Cat", "Ice cream",
    "Rain", "Mirror", "Car", "Moon", "Coffee",
]


class Settings(BaseSettings):
    gemini_api_key: str = ""
    advisor_model: str = "gemini-2.5-flash"
    # "offline" forces the local advisor even when an API key is present
    advisor_mode: Literal["auto", "offline"] = "auto"

    total_rounds: int = 2
    reveal_time_seconds: int = 4
    reveal_tick_seconds: float = 1.0
    # Cosmetic pacing for agent turns; set to 0 for headless runs
    agent_clue_delay_seconds: float = 1.5
    agent_vote_delay_seconds: float = 1.0

    words: List[str] = list(DEFAULT_WORDS)

    # CORS origins — set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
