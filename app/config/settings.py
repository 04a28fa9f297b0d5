from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""  # anon key; requests run under the caller's Clerk JWT
    supabase_service_role_key: Optional[str] = None  # Required for webhook handlers (bypasses RLS)

    # Clerk
    clerk_secret_key: Optional[str] = None
    clerk_publishable_key: Optional[str] = None
    clerk_jwks_url: Optional[str] = None  # e.g. https://<instance>.clerk.accounts.dev/.well-known/jwks.json
    clerk_jwt_key: Optional[str] = None  # PEM public key; skips the JWKS fetch when set
    clerk_authorized_parties: str = ""  # comma separated azp allow-list, empty disables the check
    clerk_webhook_signing_secret: Optional[str] = None  # whsec_...
    webhook_tolerance_seconds: int = 300

    # GitHub OAuth
    github_client_id: Optional[str] = None
    github_client_secret: Optional[str] = None
    github_redirect_uri: str = "http://localhost:4000/api/auth/github/callback"
    github_api_base_url: str = "https://api.github.com"
    github_oauth_authorize_url: str = "https://github.com/login/oauth/authorize"
    github_oauth_token_url: str = "https://github.com/login/oauth/access_token"
    oauth_state_ttl_seconds: int = 300

    # AI generation (key read from the environment only, never stored)
    groq_api_key: Optional[str] = None

    # External API retries (GitHub)
    external_api_retry_attempts: int = 3
    external_api_retry_min_wait: float = 0.5
    external_api_retry_max_wait: float = 2.0
    external_api_retry_multiplier: float = 1.0

    # App
    app_name: str = "cursorrulescraft-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:5173"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_authorized_parties_list(self) -> List[str]:
        return [p.strip() for p in self.clerk_authorized_parties.split(",") if p.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
