from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Jeffreys Bay Services API"
    debug: bool = False
    log_level: str = "INFO"
    # CORS: "*" for dev; in production set to comma-separated origins, e.g. "https://jbay.example.com"
    cors_origins: str = "*"
    services_json_path: str = "data/services.json"  # Path relative to backend root, or absolute. Read-only.
    views_db_path: str = "data/views.db"  # SQLite view counter, created on first use

    # Approximate location lookup for clients that send no lat/lng. Empty disables it.
    # ip-api compatible endpoint, e.g. GEOLOCATION_URL=http://ip-api.com/json
    geolocation_url: str = ""
    geolocation_timeout_seconds: float = 8.0
    location_cache_ttl_seconds: int = 3600


def get_settings() -> Settings:
    return Settings()
