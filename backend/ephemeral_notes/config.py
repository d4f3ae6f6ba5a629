from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# repository_root/data (we are in backend/ephemeral_notes/)
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[2] / "data"


class Settings(BaseSettings):
    # Storage
    APP_DATA_DIR: str = str(DEFAULT_DATA_DIR)

    # Tokens
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    JWT_EXP_MINUTES: int = 60
    BCRYPT_ROUNDS: int | None = None

    # Notes
    NOTE_MAX_LENGTH: int = 10_000
    NOTE_TTL_DAYS: int = 30
    SHORT_ID_LENGTH: int = 10
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Federated sign-in
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    OAUTH_REDIRECT_URI: str = "http://localhost:8000/auth/oauth/google/callback"
    OAUTH_AUTHORIZED_DOMAINS: str = "localhost"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def data_dir(self) -> Path:
        return Path(self.APP_DATA_DIR)

    @property
    def authorized_domains(self) -> list[str]:
        return [d.strip().lower() for d in self.OAUTH_AUTHORIZED_DOMAINS.split(",") if d.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
