from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    """Application settings with validation"""

    # Path Configuration
    BASE_DIR: Path = Path.home() / ".focus_signal"
    DATA_DIR: Path = BASE_DIR / "data"
    LOG_DIR: Path = BASE_DIR / "logs"
    DEFAULT_DB_PATH: Path = DATA_DIR / "focus_signal.db"

    # Web Configuration
    WEB_PORT: int = 8000
    WEB_HOST: str = "localhost"

    # Runner Configuration
    COMPACTION_INTERVAL_MINUTES: int = 60  # Batched retention pass, not per write
    EVENT_POLL_SECONDS: float = 1.0

    # Break suggestions (unset = non-deterministic)
    BREAK_SELECTION_SEED: Optional[int] = None

    # Development Configuration
    DEBUG: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FOCUS_SIGNAL_",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
