"""
Configuration Module - Settings for the scraper, pipeline, API and store.
========================================================================

Sources, highest priority first:
1. Constructor keyword arguments (tests, explicit overrides)
2. The process environment, then .env: GEMINI_API_KEY, DATABASE_URL,
   LOG_LEVEL, GEMINI_MODEL, and SECTION__FIELD for single nested values
   such as PIPELINE__ITEM_DELAY
3. config/settings.yaml, or the file named by ZIYUANBAO_CONFIG
4. Field defaults below

Sources are deep-merged, so PIPELINE__ITEM_DELAY replaces one YAML value
and leaves the rest of the pipeline section in place.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

load_dotenv()

CONFIG_ENV_VAR = "ZIYUANBAO_CONFIG"
SQLITE_PREFIX = "sqlite:///"


def _locate_project_root() -> Path:
    here = Path(__file__).resolve()
    return next(
        (parent for parent in here.parents if (parent / "pyproject.toml").is_file()),
        Path.cwd(),
    )


PROJECT_ROOT = _locate_project_root()
DEFAULT_CONFIG_FILE = PROJECT_ROOT / "config" / "settings.yaml"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


# ─────────────────────────────────────────────────────────────────────────────
# Sections
# ─────────────────────────────────────────────────────────────────────────────


class ScrapingConfig(BaseModel):
    """Fetching and listing-crawl settings."""

    base_url: str = "https://www.feifeiziyuan.com"
    rate_limit: float = 1.0
    timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT
    max_pages: int = 50
    listing_selector: str = "section.container a"


class PipelineConfig(BaseModel):
    """Batch politeness delays, in seconds."""

    item_delay: float = 1.0
    category_delay: float = 3.0


class GenerationConfig(BaseModel):
    """Gemini outline extraction."""

    model_name: str = "gemini-2.5-flash"
    temperature: float = 0.2
    max_output_tokens: int = 8192
    max_retries: int = 3
    # Course HTML beyond this is cut before prompting
    max_input_chars: int = 120_000


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///data/ziyuanbao.db"
    echo: bool = False


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    default_page_size: int = 10
    max_page_size: int = 1000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Complete pipeline configuration.

    A bare Settings() reads no YAML; load_settings() binds a file.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        yaml_file=None,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML sits below the environment so deployments can override it
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: Optional[str] = Field(default=None, validation_alias="GEMINI_MODEL")
    database_url: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    scraping: ScrapingConfig = Field(default_factory=ScrapingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> str:
        # Missing key is legal until an AI outline is requested
        return "" if v is None else str(v)

    @property
    def project_root(self) -> Path:
        return self._project_root

    def get_effective_model(self) -> str:
        return self.gemini_model or self.generation.model_name

    def get_effective_database_url(self) -> str:
        """
        Database URL with relative SQLite paths anchored at the project root.

        The CLI and the API server may start from different working
        directories but must open the same file. The parent directory is
        created on demand.
        """
        url = self.database_url or self.database.url
        if not url.startswith(SQLITE_PREFIX) or url == "sqlite:///:memory:":
            return url

        path = Path(url[len(SQLITE_PREFIX):])
        if path.is_absolute():
            return url
        path = self._project_root / path
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"{SQLITE_PREFIX}{path}"

    def get_effective_log_level(self) -> str:
        return (self.log_level or self.logging.level).upper()


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


def _config_file() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else DEFAULT_CONFIG_FILE


def load_settings(config_path: Path) -> Settings:
    """Build an uncached Settings with an explicit YAML file as its base layer."""

    class FileSettings(Settings):
        model_config = SettingsConfigDict(yaml_file=config_path, yaml_file_encoding="utf-8")

    return FileSettings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Process-wide settings, read once.

    Example:
        >>> get_settings().pipeline.item_delay
        1.0
    """
    return load_settings(_config_file())


def reload_settings() -> Settings:
    """Drop the cached settings and read the files again."""
    get_settings.cache_clear()
    return get_settings()
