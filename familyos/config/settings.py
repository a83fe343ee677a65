from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Realtime role feed; falls back to supabase_key

    # App
    app_name: str = "family-os-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    site_url: str = "http://localhost:3000"  # Used for invite links and auth redirects

    # Auth
    auth_cache_ttl_seconds: int = 60
    auth_cache_max_size: int = 500

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def build_site_url(self, path: str = "") -> str:
        base = self.site_url.rstrip("/")
        if not path:
            return base
        return f"{base}/{path.lstrip('/')}"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
