from dotenv import load_dotenv
from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "SpinMate"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"

    # Supabase Local
    LOCAL_SUPABASE_URL: str | None = None
    LOCAL_SUPABASE_KEY: str | None = None

    # Supabase Remote
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None
    SUPABASE_ANON_KEY: str | None = None

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://localhost:8080",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"

    # Event rules
    POINTS_TO_WIN: int = 11
    DEFAULT_TOTAL_ROUNDS: int = 1
    MIN_WAITING_PLAYERS: int = 3

    # Ratings
    RATING_BASE: float = 1000.0
    RATING_DIVISION_STEP: float = 100.0

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return str(v).upper()

    @field_validator("DEFAULT_TOTAL_ROUNDS", "POINTS_TO_WIN")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def supabase_url(self) -> str | None:
        return self.LOCAL_SUPABASE_URL or self.SUPABASE_URL

    @property
    def supabase_key(self) -> str | None:
        return self.LOCAL_SUPABASE_KEY or self.SUPABASE_ANON_KEY or self.SUPABASE_KEY

    model_config = ConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
    )

settings = Settings()
