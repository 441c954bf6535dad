"""Console configuration stored as YAML.

This module reads and writes the configuration file with ruamel.yaml so
comments and formatting in a hand-edited file survive a save.
"""

from pathlib import Path

from pydantic import BaseModel, field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cluster_lifecycle.exceptions import ConfigurationError
from cluster_lifecycle.logging_config import get_logger
from cluster_lifecycle.metadata import LABEL_PRECEDENCES

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/cluster-lifecycle/config.yml")


def _yaml() -> YAML:
    yaml = YAML()
    yaml.preserve_quotes = True
    yaml.default_flow_style = False
    yaml.indent(mapping=2, sequence=2, offset=0)
    return yaml


class ConsoleConfig(BaseModel):
    """Connection and behaviour settings for the lifecycle controller."""

    api_url: str = "http://localhost:8080"
    metadata_url: str | None = None
    project_name: str = "default"
    timeout: float = 30.0
    verify_tls: bool = True
    label_precedence: str = "reject"

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate api_url is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_url '{v}' must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        """Validate project_name is not empty."""
        if not v:
            raise ValueError("project_name cannot be empty")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("label_precedence")
    @classmethod
    def validate_label_precedence(cls, v: str) -> str:
        if v not in LABEL_PRECEDENCES:
            raise ValueError(f"label_precedence must be one of {LABEL_PRECEDENCES}, got '{v}'")
        return v

    def save(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            _yaml().dump(self.model_dump(exclude_none=True), f)
        logger.info(f"Saved configuration to {path}")

    @classmethod
    def load(cls, path: str | Path | None = None, **overrides) -> "ConsoleConfig":
        """Load configuration from a YAML file.

        A missing file at the default location yields the defaults. Keyword
        overrides that are not None replace file values.

        Raises:
            ConfigurationError: If the file cannot be parsed or is invalid
        """
        explicit = path is not None
        path = Path(path or DEFAULT_CONFIG_PATH).expanduser()

        data = {}
        if path.exists():
            logger.debug(f"Reading configuration from {path}")
            try:
                with open(path) as f:
                    data = _yaml().load(f) or {}
            except YAMLError as e:
                raise ConfigurationError(
                    f"Failed to parse configuration file: {path}",
                    f"The file has invalid YAML syntax: {e}",
                )
        elif explicit:
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                "Create the file or omit --config to use the defaults",
            )

        data = {**dict(data), **{k: v for k, v in overrides.items() if v is not None}}
        try:
            return cls(**data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration in {path}", str(e))
