from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini provider
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_api_version: str = "v1beta"

    # Chat defaults
    chat_default_model: str = "gemini-2.5-flash"

    # Logging
    chat_log_level: str = "info"

    # CORS
    chat_cors_origins: str = "http://localhost:3000"

    # Access gate (shared secret route issues the cookie)
    chat_access_path: str = "/access"
    chat_auth_cookie_name: str = "auth-token"
    chat_auth_cookie_value: str = "authenticated"
    chat_environment: str = "development"  # "development" or "production"

    # HTTP client timeouts (seconds)
    chat_http_connect_timeout: float = 5.0
    chat_http_read_timeout: float = 120.0

    # CLI client
    chat_relay_url: str = "http://localhost:8000"

    model_config = {"env_prefix": "", "case_sensitive": False, "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
