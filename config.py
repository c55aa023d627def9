import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Circulation Service")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Store settings
    seed_sample_data: bool = _env_flag("SEED_SAMPLE_DATA", "True")

    # Circulation settings
    default_loan_days: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))
    recent_activity_limit: int = int(os.getenv("RECENT_ACTIVITY_LIMIT", "5"))
    max_recent_activity_limit: int = int(os.getenv("MAX_RECENT_ACTIVITY_LIMIT", "100"))

    # Session settings
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "library_session")
    require_auth: bool = _env_flag("REQUIRE_AUTH", "False")

    @property
    def base_url(self) -> str:
        return f"http://{self.api_host}:{self.api_port}"


settings = Settings()
