from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Literal, Optional
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database (optional - orders and messages fall back to in-memory stores)
    DATABASE_URL: Optional[str] = None

    # Redis (optional - only used when MESSAGE_LOG_BACKEND=redis)
    REDIS_URL: Optional[str] = None

    # Where chat messages are persisted. When unset it is derived from the
    # configured URLs: sql if DATABASE_URL is set, otherwise memory.
    MESSAGE_LOG_BACKEND: Optional[Literal["memory", "sql", "redis"]] = None

    # CORS - Stored as string, parsed via get_cors_origins() method
    CORS_ORIGINS: Optional[str] = None

    def get_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string or JSON array"""
        if not self.CORS_ORIGINS:
            return []
        v = self.CORS_ORIGINS.strip()
        if not v:
            return []
        # Try JSON array first
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    def get_message_log_backend(self) -> str:
        """Resolve the message log backend, honouring an explicit setting"""
        if self.MESSAGE_LOG_BACKEND:
            return self.MESSAGE_LOG_BACKEND
        if self.DATABASE_URL:
            return "sql"
        return "memory"

    # JWT secret shared with the user service that issues tokens
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    # Chat settings
    CHAT_HISTORY_LIMIT: int = 50  # Messages replayed to a session on join
    CHAT_SUPPLIER_JOIN_GATE: bool = False  # Legacy "supplier must join first" behaviour
    CHAT_MAX_IDLE_CLOSED_ROOMS: int = 10_000  # Empty closed rooms remembered for reconnects

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("CHAT_HISTORY_LIMIT", "CHAT_MAX_IDLE_CLOSED_ROOMS")
    @classmethod
    def validate_positive(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Singleton instance for direct imports
settings = get_settings()
