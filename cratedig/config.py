"""
config.py - Configuration model for Cratedig
"""

from pathlib import Path
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

from cratedig.exceptions import ConfigError

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

FormatPreference = Literal["both", "lossless", "lossy"]

MUSICBRAINZ_BASE_URL = "https://musicbrainz.org/ws/2"


class CatalogConfig(BaseModel):
    """MusicBrainz access and pacing."""

    base_url: str = MUSICBRAINZ_BASE_URL
    user_agent: str = ""
    min_interval_seconds: float = Field(
        default=1.0,
        description="Minimum spacing between two MusicBrainz calls (MusicBrainz asks for 1 req/s)"
    )
    timeout_seconds: int = 30
    max_retries: int = Field(
        default=3,
        description="Additional attempts after the first one for transport errors and 5xx"
    )
    initial_backoff_seconds: float = 2.0
    max_backoff_seconds: float = 30.0
    search_limit: int = 25
    browse_limit: int = 100

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SourceConfig(BaseModel):
    """slskd daemon access and search polling."""

    url: str = ""
    api_key: str = ""
    timeout_seconds: int = 30
    poll_interval_seconds: float = 0.5
    max_polls: int = Field(
        default=120,
        description="Hard ceiling on poll ticks before results are force-fetched"
    )
    stable_polls: int = Field(
        default=6,
        description="Consecutive ticks with a steady response count before fetching"
    )
    max_fetch_retries: int = Field(
        default=20,
        description="Fetch retries when slskd reports responses but returns none"
    )
    delete_searches: bool = False

    @field_validator("url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")


class FilterDefaults(BaseModel):
    """Initial filter settings; each can be toggled during a session."""

    format: FormatPreference = "lossless"
    no_slot: bool = True
    track_count: bool = True
    albums_only: bool = True
    deduplicate_releases: bool = True


class OutputConfig(BaseModel):
    records_dir: Path = Path("output")
    log_dir: Optional[Path] = None


class CratedigConfig(BaseModel):
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    filters: FilterDefaults = Field(default_factory=FilterDefaults)
    output: OutputConfig = Field(default_factory=OutputConfig)
    config_path: Optional[Path] = None

    def has_source_config(self) -> bool:
        return bool(self.source.url and self.source.api_key)


def load_config(config_path: Path) -> CratedigConfig:
    """Load configuration from TOML file"""

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)

        output_data = dict(config_data.get("output", {}))
        for key in ("records_dir", "log_dir"):
            if output_data.get(key):
                output_data[key] = Path(output_data[key]).expanduser()

        return CratedigConfig(
            catalog=CatalogConfig(**config_data.get("catalog", {})),
            source=SourceConfig(**config_data.get("source", {})),
            filters=FilterDefaults(**config_data.get("filters", {})),
            output=OutputConfig(**output_data),
            config_path=config_path,
        )
    except (OSError, ValueError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Error loading configuration: {e}") from e


def resolve_config_path(args_config: Optional[str]) -> Path:
    """Pick the config file: explicit path, then ./config.toml, then ~/.config/cratedig."""
    if args_config:
        p = Path(args_config).expanduser()
        if p.is_dir():
            p = p / "config.toml"
        return p

    cwd_candidate = Path.cwd() / "config.toml"
    if cwd_candidate.exists():
        return cwd_candidate

    home_candidate = Path.home() / ".config" / "cratedig" / "config.toml"
    if home_candidate.exists():
        return home_candidate
    return cwd_candidate
