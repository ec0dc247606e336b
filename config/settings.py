"""
Friends Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths (use FRIENDS_ prefix)
    data_path: Path = Field(
        default=Path("./data"),
        alias="FRIENDS_DATA_PATH",
        description="Directory holding the SQLite database and preferences file"
    )
    db_filename: str = Field(default="friends.db", alias="FRIENDS_DB_FILENAME")
    preferences_filename: str = Field(
        default="preferences.json",
        alias="FRIENDS_PREFERENCES_FILENAME",
        description="JSON file with per-installation preferences (theme, model, auto-accept)"
    )

    # Server (keep in sync with the deployment unit)
    port: int = Field(default=8000, alias="FRIENDS_PORT")
    host: str = Field(default="0.0.0.0", alias="FRIENDS_HOST")

    # Owner used when a request carries no X-User-Id header
    default_user_id: str = Field(
        default="local-user",
        alias="FRIENDS_DEFAULT_USER_ID",
        description="User id applied to requests without an explicit owner"
    )

    # API Keys (no prefix - standard env var names)
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")

    # Extraction collaborator
    extraction_model: str = Field(default="claude-sonnet-4-5", alias="FRIENDS_EXTRACTION_MODEL")
    extraction_max_tokens: int = Field(default=4000, alias="FRIENDS_EXTRACTION_MAX_TOKENS")
    extraction_temperature: float = 0.3  # Low temperature for consistent structured output
    extraction_timeout: int = Field(default=60, alias="FRIENDS_EXTRACTION_TIMEOUT")  # seconds

    # Mentions
    mention_suggestion_limit: int = 5  # Caps identity candidates per token
    mention_context_length: int = 50  # Characters shown around a mention for disambiguation

    # Stories
    min_story_length: int = 10

    @property
    def db_path(self) -> Path:
        """Full path to the SQLite database."""
        return Path(self.data_path) / self.db_filename

    @property
    def preferences_path(self) -> Path:
        """Full path to the preferences JSON file."""
        return Path(self.data_path) / self.preferences_filename

    @property
    def extraction_enabled(self) -> bool:
        """Check if the extraction collaborator is configured."""
        return bool(self.anthropic_api_key and self.anthropic_api_key.strip())


settings = Settings()
