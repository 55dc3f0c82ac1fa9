from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Keeps datetimes naive so they stay compatible with SQLite (which doesn't
    store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Flashdeck"
    database_url: str = f"sqlite+aiosqlite:///{DATA_DIR / 'flashdeck.db'}"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_retries: int = 3
    anthropic_rate_limit_rpm: int = 50
    llm_input_price_per_million: float = 3.0
    llm_output_price_per_million: float = 15.0
    max_topic_length: int = 2000
    max_cards_per_deck: int = 50
    generation_requests_per_window: int = 10
    generation_window_seconds: int = 3600  # 1 hour
    default_seconds_per_question: int = 30
    min_seconds_per_question: int = 5
    max_seconds_per_question: int = 300
    study_session_ttl_seconds: int = 7200  # 2 hours
    debug: bool = False

    model_config = {"env_prefix": "FLASHDECK_", "env_file": ".env"}


settings = Settings()
