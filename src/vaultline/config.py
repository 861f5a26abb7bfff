"""Configuration for vaultline."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vaultline.exceptions import ConfigError


class VaultlineConfig(BaseSettings):
    """Runtime configuration.

    Every field can be set from the environment with the ``VAULTLINE_``
    prefix (e.g. ``VAULTLINE_ARTIFACT_ROOT``) or from a YAML file.

    Attributes:
        artifact_root: Local directory where step outputs are allocated.
        tmp_root: Scratch directory for adapters.
        storage_root: Root of the filesystem-backed object storage.
        state_dir: Directory for execution records and metadata tables.
        pipelines_dir: Directory holding ``<pipeline_id>.yaml`` definitions.
        log_level: Minimum log level for the CLI.
        step_delay_seconds: Artificial pause before each step.
        keep_intermediate_outputs: Keep non-terminal output directories.
    """

    model_config = SettingsConfigDict(env_prefix="VAULTLINE_", extra="forbid")

    artifact_root: Path = Field(default_factory=lambda: Path.cwd() / ".vaultline" / "artifacts")
    tmp_root: Path = Field(default_factory=lambda: Path.cwd() / ".vaultline" / "tmp")
    storage_root: Path = Field(default_factory=lambda: Path.cwd() / ".vaultline" / "storage")
    state_dir: Path = Field(default_factory=lambda: Path.cwd() / ".vaultline" / "state")
    pipelines_dir: Path = Field(default_factory=lambda: Path.cwd() / "pipelines")
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    step_delay_seconds: float = Field(default=0.0, ge=0.0)
    keep_intermediate_outputs: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Accept log levels in any case."""
        return v.lower() if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """Create the configured local directories."""
        for path in (self.artifact_root, self.tmp_root, self.storage_root, self.state_dir):
            path.mkdir(parents=True, exist_ok=True)

    def to_yaml(self) -> str:
        """Serialize the config to YAML."""
        data = self.model_dump(mode="json")
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    def save(self, path: Path) -> None:
        """Save the config to a YAML file."""
        path.write_text(self.to_yaml())

    @classmethod
    def from_yaml(cls, yaml_content: str, *, config_path: Path | None = None) -> VaultlineConfig:
        """Parse config from YAML content.

        Values from YAML take precedence over the environment.

        Raises:
            ConfigError: If the YAML is not a mapping or fails validation.
        """
        try:
            data = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            msg = f"Invalid YAML: {e}"
            raise ConfigError(msg, config_path=config_path) from e

        if not isinstance(data, dict):
            msg = "Config YAML must be a mapping"
            raise ConfigError(msg, config_path=config_path)

        try:
            return cls(**data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first["loc"])
            msg = f"Invalid config: {field}: {first['msg']}"
            raise ConfigError(msg, config_path=config_path, field=field) from e

    @classmethod
    def load(cls, path: Path | None = None) -> VaultlineConfig:
        """Load config from a YAML file, or from the environment alone.

        Raises:
            ConfigError: If the file does not exist or is invalid.
        """
        if path is None:
            return cls()
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg, config_path=path)
        return cls.from_yaml(path.read_text(), config_path=path)
