"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from switchboard.errors import ConfigIncompleteError
from switchboard.utils.platform import get_config_dir, get_data_dir


class LLMConfig(BaseModel):
    provider: Literal["anthropic", "openai"] = "anthropic"
    model: str = ""  # empty: the backend's default model
    max_tokens: int = 4096
    temperature: float | None = None
    # Overrides the backend's default direct-secret variable name
    direct_secret_env: str = ""
    keychain_services: list[str] = Field(
        default_factory=lambda: ["Anthropic", "Agency", "Claude Code"]
    )
    keychain_account: str = ""
    verbose_auth: bool = False


class OAuthProviderConfig(BaseModel):
    token_url: str
    client_id: str
    scope: str = ""


class OAuthConfig(BaseModel):
    openai: OAuthProviderConfig = Field(
        default_factory=lambda: OAuthProviderConfig(
            token_url="https://auth.openai.com/oauth/token",
            client_id="app_EMoamEEZ73f0CkXaXp7hrann",
            scope="openid profile email",
        )
    )
    anthropic: OAuthProviderConfig = Field(
        default_factory=lambda: OAuthProviderConfig(
            token_url="https://claude.ai/api/oauth/token",
            client_id="9d1c250a-e61b-44d9-88ed-5944d1962f5e",
        )
    )
    timeout: float = 30.0


_AZURE_REQUIRED = ("endpoint", "deployment", "api_version", "scope")


class AzureOpenAISettings(BaseSettings):
    """Azure OpenAI bundle, read from ``AZURE_OPENAI_*`` variables.

    ``endpoint``, ``deployment``, ``api_version`` and ``scope`` are
    all-or-nothing: setting any of them switches the ``openai`` provider to
    the Azure chat-completions backend, which then needs all four.
    """

    model_config = SettingsConfigDict(
        env_prefix="AZURE_OPENAI_",
        case_sensitive=False,
        extra="ignore",
    )

    endpoint: str = ""
    deployment: str = ""
    api_version: str = ""
    scope: str = ""
    managed_identity_client_id: str = ""
    verbose: bool = False
    # Some deployed models only accept the default temperature
    supports_temperature: bool = False

    @property
    def is_configured(self) -> bool:
        return any(getattr(self, name) for name in _AZURE_REQUIRED)

    def missing_fields(self) -> list[str]:
        return [
            f"AZURE_OPENAI_{name.upper()}"
            for name in _AZURE_REQUIRED
            if not getattr(self, name)
        ]

    def require_complete(self) -> bool:
        """Return True when the bundle is fully set, False when absent.

        Raises ConfigIncompleteError naming every missing variable when the
        bundle is only partially set.
        """
        if not self.is_configured:
            return False
        missing = self.missing_fields()
        if missing:
            raise ConfigIncompleteError(missing, provider="azure")
        return True


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SWITCHBOARD_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    data_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir)
        return get_data_dir()

    def credentials_path(self) -> Path:
        return self.get_data_dir() / "credentials.db"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    # Determine config file path
    if config_path is None:
        config_path = os.environ.get("SWITCHBOARD_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    # Load YAML if found
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    # Init values (YAML, overrides) take precedence over env vars
    return Settings(**yaml_data)
