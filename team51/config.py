"""
Configuration Management

This module loads the CLI configuration from ``config.json`` (and, in
contractor mode, ``contractors-config.json``) plus environment variables,
and provides a centralized Settings object for the entire application.

Usage:
    from team51.config import get_settings

    settings = get_settings()
    print(settings.github_api_owner)
"""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Optional, Tuple, Type

from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
CONTRACTOR_CONFIG_FILE_NAME = "contractors-config.json"
DEV_MARKER_FILE_NAME = ".dev"

OPTIONAL_KEYS = (
    "slack_webhook_url",
    "github_team_to_add_to_new_repository",
    "ascii_welcome_art",
    "github_default_issues_repository",
    "pressable_bot_collaborator_email",
    "github_devqueue_project_id",
    "github_devqueue_triage_column",
)


class JsonConfigFileSource(PydanticBaseSettingsSource):
    """
    Reads a flat JSON object whose keys are the UPPER_CASE config names
    (``GITHUB_API_TOKEN``) and maps them onto the snake_case fields.
    """

    def __init__(self, settings_cls: Type[BaseSettings], path: Path):
        super().__init__(settings_cls)
        self.path = path

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        # Unused; __call__ loads the whole file at once.
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {self.path} couldn't be read: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.path} must contain a JSON object")

        fields = self.settings_cls.model_fields
        return {
            key.lower(): value
            for key, value in data.items()
            if key.lower() in fields and value not in (None, "")
        }


class Settings(BaseSettings):
    """
    Application settings loaded from config.json and environment variables.

    Every credential is optional at load time. Each API client checks the
    keys it actually needs when it is constructed (see validate_settings).
    """

    config_dir: ClassVar[Path] = Path(".")
    contractor: ClassVar[bool] = False

    # DeployHQ
    deployhq_account: Optional[str] = None
    deployhq_username: Optional[str] = None
    deployhq_api_key: Optional[str] = None
    deployhq_private_key: Optional[str] = None
    deployhq_public_key: Optional[str] = None
    deployhq_default_project_template: Optional[str] = None

    # GitHub
    github_api_owner: str = "a8cteam51"
    github_api_token: Optional[str] = None
    github_team_to_add_to_new_repository: Optional[str] = None
    github_default_issues_repository: Optional[str] = None
    github_devqueue_project_id: Optional[str] = None
    github_devqueue_triage_column: Optional[str] = None

    # Pressable
    pressable_api_app_client_id: Optional[str] = None
    pressable_api_app_client_secret: Optional[str] = None
    pressable_account_email: Optional[str] = None
    pressable_account_password: Optional[str] = None
    pressable_api_refresh_token: Optional[str] = None
    pressable_bot_collaborator_email: Optional[str] = None

    # WordPress.com / Jetpack
    wpcom_api_account_token: Optional[str] = None

    # Front
    front_api_endpoint: str = "https://api2.frontapp.com/"
    front_api_token: Optional[str] = None

    # Flickr
    flickr_api_key: Optional[str] = None

    # Slack
    slack_webhook_url: Optional[str] = None

    # Misc
    ascii_welcome_art: Optional[str] = None
    http_timeout: float = 60.0
    secrets_dir: Path = Path("secrets")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        sources = [init_settings, env_settings, dotenv_settings]
        if cls.contractor:
            sources.append(JsonConfigFileSource(settings_cls, cls.config_dir / CONTRACTOR_CONFIG_FILE_NAME))
        sources.append(JsonConfigFileSource(settings_cls, cls.config_dir / CONFIG_FILE_NAME))
        return tuple(sources)

    @property
    def is_dev_mode(self) -> bool:
        """True when a .dev marker sits next to config.json."""
        return (self.config_dir / DEV_MARKER_FILE_NAME).exists()

    @property
    def pressable_token_cache_path(self) -> Path:
        path = self.secrets_dir
        if not path.is_absolute():
            path = self.config_dir / path
        return path / "pressable_cached_tokens.json"


def load_settings(config_dir: Optional[Path] = None, contractor: bool = False) -> Settings:
    """Build a fresh Settings object and make it the cached one."""
    Settings.config_dir = Path(config_dir or os.environ.get("TEAM51_CONFIG_DIR", "."))
    Settings.contractor = contractor
    get_settings.cache_clear()
    settings = get_settings()

    for key in OPTIONAL_KEYS:
        if not getattr(settings, key):
            logger.debug(f"⚠️  {key.upper()} is not set")

    return settings


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide Settings instance."""
    return Settings()


def validate_settings(settings: Settings, required: Iterable[str]):
    """Validate that the given settings are configured properly."""
    errors = []

    for key in required:
        value = getattr(settings, key, None)
        if not value:
            errors.append(f"{key.upper()} is not configured")

    if errors:
        error_msg = "\n".join(errors)
        config_name = CONTRACTOR_CONFIG_FILE_NAME if settings.contractor else CONFIG_FILE_NAME
        raise ValueError(
            f"Configuration errors:\n{error_msg}\n\n"
            f"Please update {settings.config_dir / config_name} with valid credentials."
        )
