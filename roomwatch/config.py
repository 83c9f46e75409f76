"""Runtime settings from the environment and the YAML site registry."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Process-wide settings, read from environment variables."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    time_start: int = Field(8, alias="TIME_START", ge=0, le=23)
    time_end: int = Field(1, alias="TIME_END", ge=0, le=23)
    timezone: Optional[str] = Field(None, alias="TIMEZONE")
    cycle_delay_min: float = Field(240.0, alias="CYCLE_DELAY_MIN", ge=0)
    cycle_delay_max: float = Field(720.0, alias="CYCLE_DELAY_MAX", ge=0)

    data_dir: Path = Field(Path("data"), alias="DATA_DIR")
    auth_dir: Path = Field(Path("auth"), alias="AUTH_DIR")
    prompt_path: Path = Field(Path("classification-prompt.txt"), alias="PROMPT_PATH")
    sites_config: Path = Field(Path("config/sites.yml"), alias="SITES_CONFIG")

    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_model: str = Field("gpt-4o", alias="OPENAI_MODEL")
    openai_base_url: str = Field("https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_timeout: float = Field(60.0, alias="OPENAI_TIMEOUT", gt=0)

    email_host: Optional[str] = Field(None, alias="EMAIL_HOST")
    email_port: int = Field(587, alias="EMAIL_PORT")
    email_user: Optional[str] = Field(None, alias="EMAIL_USER")
    email_pass: Optional[str] = Field(None, alias="EMAIL_PASS")
    email_from: Optional[str] = Field(None, alias="EMAIL_FROM")
    subscriber_email: Optional[str] = Field(None, alias="SUBSCRIBER_EMAIL")
    error_digest_enabled: bool = Field(False, alias="ERROR_DIGEST_ENABLED")

    @model_validator(mode="after")
    def check_delay_band(self) -> "Settings":
        if self.cycle_delay_max < self.cycle_delay_min:
            raise ValueError("CYCLE_DELAY_MAX must be >= CYCLE_DELAY_MIN")
        return self

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from *env* (defaults to ``os.environ``).

        Blank values count as unset so their defaults apply.
        """

        source = os.environ if env is None else env
        values = {key: value for key, value in source.items() if value is not None and value.strip()}
        return cls.model_validate(values)

    @property
    def digest_path(self) -> Path:
        return self.data_dir / "notification-queue.html"

    def queue_path(self, slug: str) -> Path:
        return self.data_dir / slug / f"{slug}-new-listings.ndjson"

    def viewed_path(self, slug: str) -> Path:
        return self.data_dir / slug / f"{slug}-viewed.ndjson"

    def auth_state_path(self, slug: str) -> Path:
        return self.auth_dir / f"{slug}-auth.json"


class SiteConfig(BaseModel):
    """One entry of the site registry file."""

    model_config = ConfigDict(extra="forbid")

    slug: str = Field(min_length=1)
    enabled: bool = True
    base_url: Optional[str] = None
    search_url: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    page_delay: Tuple[float, float] = (2.0, 5.0)
    detail_delay: Optional[Tuple[float, float]] = None

    @field_validator("slug")
    @classmethod
    def normalise_slug(cls, value: str) -> str:
        return _normalise_slug(value)

    @field_validator("page_delay", "detail_delay")
    @classmethod
    def check_band(cls, value):
        if value is not None and (value[0] < 0 or value[1] < value[0]):
            raise ValueError("delay bands must be [min, max] with 0 <= min <= max")
        return value


def load_sites_yaml(path: str | os.PathLike[str]) -> List[SiteConfig]:
    """Load site definitions from a YAML file located at *path*."""

    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    return parse_sites_yaml(text)


def parse_sites_yaml(text: str) -> List[SiteConfig]:
    """Parse *text* containing a ``sites`` YAML list into :class:`SiteConfig` objects."""

    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Site registry must be a mapping with a 'sites' list.")
    entries = data.get("sites") or []
    if not isinstance(entries, list):
        raise ValueError("'sites' must be a list.")

    sites: List[SiteConfig] = []
    seen_slugs: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("slug"):
            raise ValueError("Each site entry must include a 'slug' value.")
        site = SiteConfig.model_validate(entry)
        if site.slug in seen_slugs:
            raise ValueError(f"Duplicate site slug detected: {site.slug}")
        seen_slugs.add(site.slug)
        sites.append(site)
    return sites


def load_site_configs(settings: Settings, known_slugs: List[str]) -> List[SiteConfig]:
    """Return enabled site entries; every known site when no registry file exists."""

    if settings.sites_config.exists():
        configs = load_sites_yaml(settings.sites_config)
    else:
        logger.info("Site registry %s not found; enabling all known sites", settings.sites_config)
        configs = [SiteConfig(slug=slug) for slug in known_slugs]

    unknown = [config.slug for config in configs if config.slug not in known_slugs]
    if unknown:
        raise ValueError(f"Unknown site slug(s) in registry: {', '.join(unknown)}")
    return [config for config in configs if config.enabled]


def overlay_env(config: SiteConfig, prefix: str, env: Optional[Mapping[str, str]] = None) -> SiteConfig:
    """Fill URL and credential fields from ``<PREFIX>_*`` environment variables."""

    source = os.environ if env is None else env
    names: Dict[str, str] = {
        "base_url": f"{prefix}_BASE_URL",
        "search_url": f"{prefix}_SEARCH_BASE_URL",
        "email": f"{prefix}_EMAIL",
        "password": f"{prefix}_PASSWORD",
    }
    updates: Dict[str, Any] = {}
    for field_name, env_name in names.items():
        value = (source.get(env_name) or "").strip()
        if value:
            updates[field_name] = value
    return config.model_copy(update=updates)


def _normalise_slug(slug: str) -> str:
    return slug.strip().lower().replace(" ", "-")


__all__ = [
    "Settings",
    "SiteConfig",
    "load_sites_yaml",
    "parse_sites_yaml",
    "load_site_configs",
    "overlay_env",
]
