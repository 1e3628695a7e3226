from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Managed backend (Supabase REST + RPC)
    SUPABASE_URL: str = ""  # e.g., "https://xxxx.supabase.co"
    SUPABASE_ANON_KEY: str = ""  # Public anon key, sent as apikey header
    SUPABASE_SERVICE_KEY: str = ""  # Service role key (server-side only)
    BACKEND_TIMEOUT_SECONDS: float = 30.0

    # Auth provider JWT settings
    SUPABASE_JWT_SECRET: str = ""
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    ALGORITHM: str = "HS256"

    # App Settings
    APP_NAME: str = "GST Invoicing Backend"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
