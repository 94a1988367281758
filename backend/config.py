from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Ephemeral session cache
    redis_url: str = "redis://localhost:6379/0"
    session_ttl_seconds: int = 3600 * 2
    session_key_prefix: str = "game:"

    # Durable store
    google_cloud_project: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None
    sessions_collection: str = "games"
    results_collection: str = "game_stats"

    # Secret word generation
    gemini_api_key: str = ""
    word_model: str = "gemini-2.5-flash"
    word_cache_ttl_seconds: int = 3600
    word_batch_size: int = 10
    gemini_min_interval_seconds: float = 1.0

    # Phase engine
    tick_interval_seconds: float = 1.0
    vote_resolution_delay_seconds: float = 1.0  # lets the last vote render client-side

    # New-session defaults (host-adjustable within the clamps in engine.round_engine)
    default_max_rounds: int = 5
    default_clues_time: int = 180
    default_discussion_time: int = 180
    default_voting_time: int = 60
    max_participants: int = 12
    min_participants_to_start: int = 3
    code_length: int = 6

    # CORS origins — set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    # Extra production origin; appended to allowed_origins
    extra_origin: str = ""
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
