from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "ValorWell Portal API"
    API_V1_STR: str = "/api/v1"

    # Hosted backend (REST tables + edge functions)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""  # Server-side scripts only, never forwarded to portals
    SUPABASE_JWT_SECRET: str = ""  # Must be set via environment variable
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    JWT_ALGORITHM: str = "HS256"
    BACKEND_TIMEOUT_SECONDS: float = 15.0

    # Circuit breaker guarding backend calls
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS: float = 30.0
    CIRCUIT_BREAKER_MONITORING_PERIOD_SECONDS: float = 60.0
    CIRCUIT_BREAKER_COUNT_NON_RETRYABLE: bool = True

    # Role detection cache (one hour, matches portal session refresh)
    ROLE_CACHE_TTL_SECONDS: int = 3600
    ROLE_CACHE_MAX_USERS: int = 5000

    # Frontend URL for CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = "production"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
