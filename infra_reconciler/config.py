"""Infra Reconciler — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with RECONCILER_ (``__`` nests,
       e.g. ``RECONCILER_DEPLOYMENT__PROJECT_ID``)
    3. System config: /etc/infra-reconciler/config.yaml
    4. User config:   ~/.infra-reconciler/config.yaml
    5. Explicit file passed with ``--config``

Values from YAML files take precedence over environment values for the same
key; keys set only in the environment are kept.

Call ``Settings.load()`` once at CLI startup and pass the relevant blocks to
the components that need them.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from infra_reconciler.exceptions import ValidationError

_PROJECT_ID_RE = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")
_REGION_RE = re.compile(r"^[a-z]+-[a-z]+[0-9]$")


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class DeploymentConfig(BaseModel):
    """The recognised deployment options.  Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    project_id: str = ""
    region: str = ""
    use_custom_image: bool = Field(
        default=False,
        description="Build from the project's Artifact Registry image instead of the prebuilt one.",
    )
    db_tier: str = "db-f1-micro"
    custom_domain: str = ""
    min_instances: Annotated[int, Field(ge=0, le=100)] = 0
    max_instances: Annotated[int, Field(ge=1, le=100)] = Field(
        default=1,
        description="Kept at 1 by default so a single writer talks to the database.",
    )

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        if v and not _PROJECT_ID_RE.match(v):
            raise ValueError(
                f"project_id '{v}' must be 6-30 chars of [a-z0-9-], start with a letter."
            )
        return v

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        if v and not _REGION_RE.match(v):
            raise ValueError(f"region '{v}' is not a valid region name (e.g. 'us-central1').")
        return v

    @model_validator(mode="after")
    def validate_instance_bounds(self) -> "DeploymentConfig":
        if self.min_instances > self.max_instances:
            raise ValueError(
                f"min_instances ({self.min_instances}) exceeds "
                f"max_instances ({self.max_instances})"
            )
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DeploymentConfig":
        """Validate a raw option mapping, raising :class:`ValidationError`."""
        try:
            return cls.model_validate(dict(data))
        except pydantic.ValidationError as exc:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise ValidationError("Invalid deployment configuration", errors=errors) from exc

    def require_complete(self) -> None:
        """Raise :class:`ValidationError` unless every required option is set."""
        missing = [name for name in ("project_id", "region") if not getattr(self, name)]
        if missing:
            raise ValidationError(
                f"Missing required deployment option(s): {', '.join(missing)}",
                errors=[{"field": name, "message": "required"} for name in missing],
            )


class ExecutorConfig(BaseModel):
    max_retries: Annotated[int, Field(ge=0, le=10)] = Field(
        default=3,
        description="Retries for transient provider errors (attempts = retries + 1).",
    )
    backoff_base_seconds: Annotated[float, Field(ge=0.0, le=60.0)] = 1.0
    backoff_factor: Annotated[float, Field(ge=1.0, le=10.0)] = 2.0
    backoff_jitter: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.2,
        description="Relative jitter applied to every backoff delay (0.2 = ±20%).",
    )
    run_timeout_seconds: Annotated[float, Field(gt=0, le=86_400)] = 1800.0


class StateConfig(BaseModel):
    db_path: Path = Path("~/.infra-reconciler/state.db")


class ProviderConfig(BaseModel):
    class_path: str = Field(
        default="infra_reconciler.providers.memory.InMemoryProvider",
        description="Fully-qualified class path of the ProviderClient implementation.",
    )
    options: dict[str, Any] = Field(
        default_factory=lambda: {"path": "~/.infra-reconciler/provider.json"},
        description="Keyword arguments passed to the provider constructor.",
    )


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "warning"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RECONCILER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("state", mode="before")
    @classmethod
    def expand_state_paths(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("db_path"), str):
            v["db_path"] = Path(v["db_path"]).expanduser()
        return v

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables.

        Raises:
            ValidationError: A config file is missing, is not a YAML mapping, or
                holds unknown or malformed options.
        """
        import yaml

        data: dict[str, Any] = {}

        candidates = [
            Path("/etc/infra-reconciler/config.yaml"),
            Path.home() / ".infra-reconciler" / "config.yaml",
        ]
        if config_file:
            if not config_file.exists():
                raise ValidationError(f"Config file not found: {config_file}")
            candidates.append(config_file)

        for path in candidates:
            if not path.exists():
                continue
            try:
                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ValidationError(
                    f"Config file {path} is not valid YAML",
                    errors=[{"field": str(path), "message": str(exc)}],
                ) from exc
            if not isinstance(loaded, dict):
                raise ValidationError(
                    f"Config file {path} must contain a mapping at the top level",
                    errors=[{"field": str(path), "message": type(loaded).__name__}],
                )
            for key, value in loaded.items():
                if isinstance(value, dict) and isinstance(data.get(key), dict):
                    data[key] = {**data[key], **value}
                else:
                    data[key] = value

        try:
            return cls(**data)
        except pydantic.ValidationError as exc:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise ValidationError("Invalid configuration", errors=errors) from exc


# Module-level singleton, replaced by ``Settings.load()`` at CLI startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings | None) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
