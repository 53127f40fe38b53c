"""Configuration models for dynamic header rules.

Rules are read from YAML or TOML files. Process settings can be configured
via environment variables with the DYNHEADERS_ prefix.

Example YAML configuration:
    dynamic_headers:
      name: api-headers
      rules:
        - headerName: X-Request-Id
          regex: "id=(?P<id>[a-f0-9-]+)"
          format: "req-${id}"
          target: query
          default: unknown-request

        - header_name: X-API-Version
          pattern: '^/api/v(?P<version>\\d+)/.*'
          template: "v${version}"
          target: path
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dynheaders.engine import DiagnosticSink, HeaderRuleEngine
from dynheaders.rules import HeaderRule

CONFIG_SECTION = "dynamic_headers"


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Parse a rules file, picking the parser from the file suffix.

    ``.yaml`` and ``.yml`` files go through PyYAML's safe loader, ``.toml``
    files through tomllib. A YAML file with no document yields ``{}``.

    Raises:
        FileNotFoundError: If there is no file at ``path``.
        ValueError: If the suffix is unknown, the file is not UTF-8, or the
            contents do not parse.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"No rules file at {path}")

    suffix = path.suffix.lower()
    if suffix not in (".yaml", ".yml", ".toml"):
        raise ValueError(f"Unsupported rules file type: {path.suffix or '(none)'}")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"{path} is not valid UTF-8: {e}") from e

    if suffix == ".toml":
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    try:
        return yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e


class HeaderRuleConfig(BaseModel):
    """User-facing rule configuration.

    Missing fields default to empty strings so that rule validation reports
    which field is required.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    header_name: str = Field(
        default="",
        validation_alias=AliasChoices("header_name", "headerName"),
        description="Request header to set.",
    )
    pattern: str = Field(
        default="",
        validation_alias=AliasChoices("pattern", "regex"),
        description="Regular expression with named capture groups.",
    )
    template: str = Field(
        default="",
        validation_alias=AliasChoices("template", "format"),
        description="Output format with ${name} placeholders.",
    )
    target: str = Field(
        default="",
        description="Request facet to match: host, path, url, method, scheme, "
        "query, userAgent, referer or header:<name>.",
    )
    fallback: str = Field(
        default="",
        validation_alias=AliasChoices("fallback", "default"),
        description="Value written when the pattern does not match.",
    )

    def to_rule(self) -> HeaderRule:
        """Convert configuration to a HeaderRule."""
        return HeaderRule(
            header_name=self.header_name,
            pattern=self.pattern,
            template=self.template,
            target=self.target,
            fallback=self.fallback,
        )


class DynamicHeadersConfig(BaseModel):
    """Top-level dynamic headers configuration."""

    name: str = Field(
        default="dynamic-headers",
        description="Instance name used in log events.",
    )
    enabled: bool = Field(
        default=True,
        description="Whether the rules are applied to requests.",
    )
    rules: list[HeaderRuleConfig] = Field(
        default_factory=list,
        description="Rules in evaluation order.",
    )

    @field_validator("rules", mode="before")
    @classmethod
    def _empty_rules(cls, value: Any) -> Any:
        # A "rules:" key with every entry commented out parses as None.
        return [] if value is None else value

    def to_engine(self, sink: DiagnosticSink | None = None) -> HeaderRuleEngine:
        """Validate the rules and create a HeaderRuleEngine.

        Raises:
            RuleValidationError: If any rule is invalid.
        """
        return HeaderRuleEngine(
            [r.to_rule() for r in self.rules],
            sink=sink,
            name=self.name,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DynamicHeadersConfig:
        """Create configuration from dictionary.

        The rules may sit at the top level or under a ``dynamic_headers`` key.
        """
        if CONFIG_SECTION in data:
            data = data[CONFIG_SECTION] or {}
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: str | Path) -> DynamicHeadersConfig:
        """Load configuration from a YAML or TOML file."""
        return cls.from_dict(load_config_from_file(path))

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "rules": [r.to_rule().to_dict() for r in self.rules],
        }


class DynamicHeadersSettings(BaseSettings):
    """Process settings.

    All settings can be overridden via environment variables:
    - DYNHEADERS_RULES_FILE: Path to the rules file
    - DYNHEADERS_LOG_LEVEL: Log level (debug, info, warning, error)
    - DYNHEADERS_LOG_JSON: Emit JSON log lines
    """

    model_config = SettingsConfigDict(
        env_prefix="DYNHEADERS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rules_file: str | None = Field(
        default=None,
        description="Path to the YAML or TOML rules file.",
    )
    log_level: str = Field(
        default="info",
        description="Minimum log level.",
    )
    log_json: bool = Field(
        default=False,
        description="Render log events as JSON.",
    )


_settings: DynamicHeadersSettings | None = None


def get_settings() -> DynamicHeadersSettings:
    """Get the global settings instance.

    Environment variables are read once and cached for the lifetime of the
    process. Call clear_settings() to reload them.
    """
    global _settings
    if _settings is None:
        _settings = DynamicHeadersSettings()
    return _settings


def clear_settings() -> None:
    """Clear the cached settings.

    Useful for testing.
    """
    global _settings
    _settings = None
