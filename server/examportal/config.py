from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application
    app_name: str = "Exam Portal"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Exam platform backend
    backend_url: str = "http://localhost:5000"
    backend_timeout_seconds: float | None = None

    # Client-side storage (session token, role, profile keys)
    database_url: str = "sqlite:///./portal_storage.db"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Timing
    poll_interval_seconds: float = 5.0
    notice_seconds: float = 3.0
    login_redirect_seconds: float = 1.5
    signup_redirect_seconds: float = 2.0
    sse_ping_seconds: float = 30.0

    # CSV exports land here
    download_dir: str = "./downloads"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
