from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """Runtime configuration loaded from env vars and local env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = Field(default="local", alias="APP_ENV")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT", ge=1, le=65535)

    providers_config_path: str = Field(default="config/providers.yaml", alias="CHAT_PROXY_PROVIDERS_CONFIG_PATH")
    enabled_providers: str = Field(default="openai", alias="CHAT_PROXY_ENABLED_PROVIDERS")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")

    provider_timeout_seconds: float = Field(default=60.0, alias="CHAT_PROXY_PROVIDER_TIMEOUT_SECONDS", gt=0)
    stream_idle_timeout_seconds: float = Field(default=30.0, alias="CHAT_PROXY_STREAM_IDLE_TIMEOUT_SECONDS", gt=0)
    max_concurrent_streams: int = Field(default=32, alias="CHAT_PROXY_MAX_CONCURRENT_STREAMS", ge=1)
    stream_slot_wait_seconds: float = Field(default=5.0, alias="CHAT_PROXY_STREAM_SLOT_WAIT_SECONDS", ge=0)

    cors_allow_origins: str = Field(default="*", alias="CHAT_PROXY_CORS_ALLOW_ORIGINS")
    static_dir: str | None = Field(default=None, alias="CHAT_PROXY_STATIC_DIR")

    @property
    def enable_swagger(self) -> bool:
        return self.app_env.lower() == "local"

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.app_env.lower() == "local" else "INFO"

    @property
    def enabled_provider_names(self) -> list[str]:
        return _split_csv(self.enabled_providers)

    @property
    def cors_origins(self) -> list[str]:
        return _split_csv(self.cors_allow_origins)

    def credential(self, name: str) -> str | None:
        """Return the API key registered under a catalogue ``credential`` name."""

        credentials = {
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
            "anthropic": self.anthropic_api_key,
        }
        if name not in credentials:
            raise ValueError(f"unknown credential '{name}'")
        return credentials[name]


@lru_cache
def get_settings() -> Settings:
    return Settings()
