"""Application configuration.

Settings are resolved in three layers, later layers winning:

1. Built-in defaults (the models below)
2. A JSON config file (``config.json`` by default)
3. Environment variables (``LLM_API_KEY``, ``SERVER_PORT``, ``SYSTEM_PROMPT``, ...)

The API key and the auth secret are required; ``load_settings`` raises
``ConfigError`` when either is empty.
"""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from llm_sessions.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. Your name is Xiaozhi."


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    read_timeout: int = 30  # seconds
    write_timeout: int = 30
    idle_timeout: int = 60


class LLMConfig(BaseModel):
    """Provider configuration."""

    provider: str = "zhipu"
    api_key: str = ""
    base_url: str = "https://open.bigmodel.cn/api/paas/v4"
    model: str = "glm-4.5"
    temperature: float = 0.7
    max_tokens: int = 8192
    timeout: float = 60.0  # seconds


class AuthConfig(BaseModel):
    """Auth secrets required by the surrounding deployment."""

    jwt_secret: str = "your-secret-key"
    token_expiry: int = 24  # hours
    refresh_expiry: int = 168  # 7 days
    api_key_header: str = "X-API-Key"


class PromptConfig(BaseModel):
    """Initial system prompt seeded into every session."""

    prompt: str = DEFAULT_SYSTEM_PROMPT


class SessionConfig(BaseModel):
    """Session registry policy."""

    idle_timeout_minutes: int = Field(default=30, ge=0)  # 0 disables expiry
    cleanup_interval_seconds: int = Field(default=60, gt=0)
    max_sessions: int | None = Field(default=None, gt=0)
    strict_decode: bool = False


class Settings(BaseSettings):
    """Top-level settings object consumed read-only by the service.

    Environment variables map onto sections by their first ``_``:
    ``LLM_MAX_TOKENS`` sets ``llm.max_tokens``. ``SYSTEM_PROMPT`` and
    ``JWT_SECRET`` keep their historical names and are folded into
    ``prompt.prompt`` and ``auth.jwt_secret``.
    """

    model_config = SettingsConfigDict(
        env_nested_delimiter="_",
        env_nested_max_split=1,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    log_level: str = "INFO"

    system_prompt: str | None = Field(default=None, exclude=True)
    jwt_secret: str | None = Field(default=None, exclude=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the config file, so the environment goes first
        return env_settings, init_settings

    @model_validator(mode="after")
    def _fold_flat_overrides(self) -> "Settings":
        if self.system_prompt:
            self.prompt.prompt = self.system_prompt
        if self.jwt_secret:
            self.auth.jwt_secret = self.jwt_secret
        return self


def validate_settings(settings: Settings) -> None:
    """Check the settings required for startup.

    Raises:
        ConfigError: If the API key or auth secret is missing.
    """
    if not settings.llm.api_key:
        raise ConfigError("LLM_API_KEY is required")
    if not settings.auth.jwt_secret:
        raise ConfigError("JWT_SECRET is required")


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from defaults, a JSON file and environment variables.

    Args:
        path: Config file path. Defaults to ``CONFIG_PATH`` or ``config.json``.

    Returns:
        Validated settings.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    config_path = Path(path or os.getenv("CONFIG_PATH") or DEFAULT_CONFIG_PATH)

    file_values = {}
    if not config_path.is_file():
        logger.warning(f"Config file {config_path} not found, using environment variables")
    else:
        try:
            file_values = JsonConfigSettingsSource(Settings, json_file=config_path)()
            logger.info(f"Loaded config file {config_path}")
        except (OSError, ValueError) as e:
            logger.warning(
                f"Config file {config_path} is invalid, "
                f"using environment variables: {e}"
            )

    try:
        settings = Settings(**file_values)
    except (ValidationError, SettingsError) as e:
        raise ConfigError(f"config validation failed: {e}") from e

    validate_settings(settings)
    return settings
