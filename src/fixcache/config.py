from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, FrozenSet, Literal, Optional

from pydantic import Field, SecretStr, ValidationError, conint, confloat, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .constants import DEFAULT_LABEL_COLOR, DEFAULT_LABEL_NAME
from .errors import ConfigurationError

StoreBackend = Literal["memory", "redis"]


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return value.split(",")
    return value


class FixCacheConfig(BaseSettings):
    """Service configuration loaded from FIXCACHE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FIXCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
        extra="ignore",
    )

    # Cache behaviour
    cache_size: conint(ge=1) = Field(default=50, description="Entries retained per repository")
    history_size: conint(ge=0) = Field(
        default=90, description="Days of history scanned when a repository is installed"
    )
    tracked_branch: str = Field(default="main", description="Branch whose pushes and PRs are observed")
    fix_keywords: Annotated[FrozenSet[str], NoDecode] = Field(
        default=frozenset({"fix", "bug"}),
        description="Lowercase substrings that mark a commit message as a fix",
    )
    skip_paths: Annotated[FrozenSet[str], NoDecode] = Field(
        default=frozenset(),
        description="Path substrings excluded from the cache",
    )

    # Webhook ingress
    webhook_secret: SecretStr = Field(default="", description="Shared secret for webhook signatures")
    host: str = Field(default="0.0.0.0")
    port: conint(ge=1, le=65535) = Field(default=9000)

    # GitHub
    github_api_url: str = Field(default="https://api.github.com")
    github_app_id: str = Field(default="", description="GitHub App id")
    github_private_key: SecretStr = Field(default="", description="GitHub App private key (PEM)")
    github_private_key_path: Optional[Path] = Field(default=None)
    github_token: SecretStr = Field(
        default="", description="Static token used instead of App auth (development)"
    )
    github_timeout_seconds: confloat(gt=0) = Field(default=15.0)
    github_max_retries: conint(ge=1) = Field(default=3)

    # Persistence
    store_backend: StoreBackend = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Annotation
    label_name: str = Field(default=DEFAULT_LABEL_NAME)
    label_color: str = Field(default=DEFAULT_LABEL_COLOR)

    @field_validator("fix_keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, value: Any) -> Any:
        value = _split_csv(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(v).strip().lower() for v in value if str(v).strip())
        return value

    @field_validator("skip_paths", mode="before")
    @classmethod
    def _normalize_skip_paths(cls, value: Any) -> Any:
        value = _split_csv(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(v).strip() for v in value if str(v).strip())
        return value

    @field_validator("tracked_branch", mode="before")
    @classmethod
    def _strip_ref_prefix(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("refs/heads/"):
                value = value[len("refs/heads/"):]
            if not value:
                raise ValueError("tracked_branch must not be empty")
        return value

    @field_validator("store_backend", mode="before")
    @classmethod
    def _normalize_lowercase(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def tracked_ref(self) -> str:
        return f"refs/heads/{self.tracked_branch}"

    def app_private_key(self) -> str:
        """Inline key wins; otherwise read the configured PEM file."""
        inline = self.github_private_key.get_secret_value()
        if inline:
            return inline
        if self.github_private_key_path is not None:
            return self.github_private_key_path.read_text(encoding="utf-8")
        return ""


def load_config(**overrides: Any) -> FixCacheConfig:
    """Build the config, turning validation failures into ConfigurationError."""
    try:
        return FixCacheConfig(**overrides)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise ConfigurationError(f"Invalid configuration: {', '.join(fields)}") from exc
