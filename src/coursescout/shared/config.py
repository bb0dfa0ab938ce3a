"""
Configuration Module - Load and validate application settings.
==============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults. API keys are read from the
environment only and never from the YAML file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early
load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"

SUPPORTED_PROVIDERS = ("ollama", "openai", "gemini", "custom")


# ─────────────────────────────────────────────────────────────────────────────
# Oracle Configuration
# ─────────────────────────────────────────────────────────────────────────────


class OllamaConfig(BaseModel):
    """Self-hosted Ollama endpoint."""

    url: str = "http://localhost:11434"
    model: str = "llama3.1"


class OpenAIConfig(BaseModel):
    """OpenAI chat-completions endpoint."""

    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"


class GeminiConfig(BaseModel):
    """Google Gemini generateContent endpoint."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.5-flash"


class CustomEndpointConfig(BaseModel):
    """User-declared endpoint speaking the generic role/content chat shape."""

    url: str = ""
    model: str = ""


class OracleConfig(BaseModel):
    """Reasoning-oracle backend settings."""

    provider: str = "gemini"
    timeout_seconds: float = 20.0
    max_retries: int = 3
    backoff_base_seconds: float = 1.0
    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    custom: CustomEndpointConfig = Field(default_factory=CustomEndpointConfig)


class StageSampling(BaseModel):
    """Sampling parameters for one oracle-using stage."""

    temperature: float
    reasoning_budget: int = 0


class SamplingConfig(BaseModel):
    """Per-stage sampling. A reasoning budget of -1 lets the backend decide."""

    decompose: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.7, reasoning_budget=0)
    )
    clean: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.3, reasoning_budget=0)
    )
    coarse: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.3, reasoning_budget=0)
    )
    precise: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.1, reasoning_budget=-1)
    )
    scoring: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.1, reasoning_budget=0)
    )
    enrichment: StageSampling = Field(
        default_factory=lambda: StageSampling(temperature=0.2, reasoning_budget=0)
    )


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline Configuration
# ─────────────────────────────────────────────────────────────────────────────


class PipelineConfig(BaseModel):
    """Search pipeline settings."""

    default_mode: str = "loose"
    coarse_target_shards: int = 30
    coarse_min_shard_size: int = 20
    precise_chunk_size: int = 200
    score_chunk_size: int = 200
    batch_size: Optional[int] = None
    batch_delay_seconds: float = 1.0
    overall_timeout_seconds: float = 300.0
    legacy_on_empty: bool = True

    @field_validator("default_mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Only the two search modes are accepted."""
        v = v.lower().strip()
        if v not in ("loose", "precise"):
            raise ValueError(f"Unknown search mode: {v}. Valid options: loose, precise")
        return v


class VocabularyConfig(BaseModel):
    """Catalog vocabulary used by deterministic filters and fallbacks."""

    required_labels: list[str] = Field(default_factory=lambda: ["必修", "required"])
    elective_labels: list[str] = Field(default_factory=lambda: ["選修", "elective"])
    general_education_markers: list[str] = Field(
        default_factory=lambda: [
            "通識",
            "核心課程",
            "學士班共同課程",
            "general education",
        ]
    )
    department_aliases: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "資工": ["資訊學院", "資工", "資訊工程", "資訊工程學系", "DCP", "CS", "CSIE"],
            "cs": ["資訊學院", "資工", "資訊工程學系", "DCP", "CS", "CSIE", "Computer Science"],
            "電機": ["電機學院", "電機", "電機工程學系", "UEE", "EE", "EECS"],
            "ee": ["電機學院", "電機", "電機工程學系", "UEE", "EE", "Electrical Engineering"],
        }
    )


class EnrichmentConfig(BaseModel):
    """Background keyword-annotation settings."""

    batch_size: int = 20
    batch_delay_seconds: float = 0.5
    max_keywords: int = 30


class PathsConfig(BaseModel):
    """Data paths configuration."""

    data_dir: str = "data"
    catalog_file: str = "data/courses.json"
    timetable_file: str = "data/timetable.json"
    annotations_file: str = "data/annotations.json"

    def resolve(self, base_path: Path) -> "ResolvedPaths":
        """Resolve paths relative to a base path."""
        return ResolvedPaths(
            data_dir=base_path / self.data_dir,
            catalog_file=base_path / self.catalog_file,
            timetable_file=base_path / self.timetable_file,
            annotations_file=base_path / self.annotations_file,
        )


class ResolvedPaths(BaseModel):
    """Resolved absolute paths."""

    data_dir: Path
    catalog_file: Path
    timetable_file: Path
    annotations_file: Path

    model_config = {"arbitrary_types_allowed": True}


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys (from environment only)
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    custom_api_key: str = Field(default="", validation_alias="CUSTOM_API_KEY")

    # Top-level environment overrides
    oracle_provider: Optional[str] = Field(default=None, validation_alias="ORACLE_PROVIDER")
    search_mode: Optional[str] = Field(default=None, validation_alias="SEARCH_MODE")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    vocabulary: VocabularyConfig = Field(default_factory=VocabularyConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _project_root: Path = PROJECT_ROOT
    _resolved_paths: Optional[ResolvedPaths] = None

    @field_validator("gemini_api_key", "openai_api_key", "custom_api_key", mode="before")
    @classmethod
    def validate_api_key(cls, v: Any) -> str:
        """Allow empty API keys; backends that need one complain when built."""
        if v is None:
            return ""
        return str(v)

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return self._project_root

    @property
    def resolved_paths(self) -> ResolvedPaths:
        """Get resolved absolute paths."""
        if self._resolved_paths is None:
            self._resolved_paths = self.paths.resolve(self._project_root)
        return self._resolved_paths

    def get_effective_provider(self) -> str:
        """Get the effective oracle provider (env override or config)."""
        if self.oracle_provider:
            return self.oracle_provider.lower().strip()
        return self.oracle.provider.lower().strip()

    def get_effective_mode(self) -> str:
        """Get the effective search mode (env override or config)."""
        if self.search_mode:
            return self.search_mode.lower().strip()
        return self.pipeline.default_mode

    def get_api_key(self, provider: str) -> str:
        """Get the API key for a hosted provider."""
        return {
            "gemini": self.gemini_api_key,
            "openai": self.openai_api_key,
            "custom": self.custom_api_key,
        }.get(provider, "")

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    yaml_config = _load_yaml_config(config_path)
    return Settings(**yaml_config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Returns:
        Settings instance with merged configuration

    Example:
        >>> settings = get_settings()
        >>> print(settings.pipeline.precise_chunk_size)
        200
    """
    return _create_settings()


def reload_settings() -> Settings:
    """
    Force reload of settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
