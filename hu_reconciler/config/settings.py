"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the Azure DevOps connection,
ticket matching, analysis limits, branch preferences and HTTP behavior.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hu_reconciler.exceptions import ConfigurationError

DEFAULT_TICKET_PATTERN = r"JURP01-[A-Z0-9]+"


class AzureDevOpsConfig(BaseModel):
    """Azure DevOps organization/project and credentials.

    The personal access token supports ``${ENV}`` interpolation when loaded
    from YAML, e.g. ``personal_access_token: "${AZURE_DEVOPS_PAT}"``.
    """

    organization: str = Field(..., min_length=1, description="Azure DevOps organization name")
    project: str = Field(..., min_length=1, description="Azure DevOps project name")
    api_version: str = Field(default="7.1", description="REST API version sent as api-version")
    base_url: str = Field(default="https://dev.azure.com", description="Host base URL")
    personal_access_token: SecretStr = Field(
        default=SecretStr(""), description="Personal access token used for Basic authentication"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        if not (value.startswith("http://") or value.startswith("https://")):
            raise ValueError(f"base_url must start with http:// or https://, got: {value}")
        return value.rstrip("/")


class TicketConfig(BaseModel):
    """Ticket-key matching configuration."""

    pattern: str = Field(default=DEFAULT_TICKET_PATTERN, description="Regular expression for ticket ids")
    word_boundaries: bool = Field(default=False, description="Anchor the pattern to word boundaries")
    ignore_case: bool = Field(default=True, description="Match the pattern case-insensitively")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, value: str) -> str:
        if not value:
            raise ValueError("ticket pattern must not be empty")
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"ticket pattern does not compile: {e}") from e
        return value


class AnalysisConfig(BaseModel):
    """Reconciliation behavior and host query limits."""

    strict_mode: bool = Field(default=False, description="Re-verify pending tickets with a text search")
    commit_id_chunk_size: int = Field(default=25, ge=1, le=500, description="Commit ids per PR query")
    diff_top: int = Field(default=200, ge=1, description="Maximum commits from the dedicated diff endpoint")
    fallback_commit_limit: int = Field(
        default=1000, ge=1, description="Commits fetched per branch when the diff endpoint fails"
    )
    source_commit_limit: int = Field(default=50, ge=1, description="Recent source commits kept for diagnostics")
    source_pr_limit: int = Field(default=200, ge=1, description="PRs merged into or opened from the source branch")
    deep_exclusion_limit: int = Field(default=1000, ge=1, description="Target PRs/commits in deep exclusion")
    repository_pr_limit: int = Field(default=1000, ge=1, description="Repository-wide PR listing size")
    search_pr_limit: int = Field(default=1000, ge=1, description="PRs scanned per strict-mode search")


class SelectionConfig(BaseModel):
    """Repository and branch auto-selection preferences."""

    default_repository: str | None = Field(default=None, description="Repository picked when none is given")
    source_preferences: list[str] = Field(default_factory=lambda: ["develop", "main"])
    target_preferences: list[str] = Field(default_factory=lambda: ["QA", "master"])


class HttpConfig(BaseModel):
    """Outbound HTTP behavior."""

    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    max_connections: int = Field(default=20, ge=1, description="Pooled connection limit")
    max_concurrent_requests: int = Field(default=16, ge=1, description="Requests in flight at once")

    @model_validator(mode="after")
    def validate_concurrency(self) -> HttpConfig:
        if self.max_concurrent_requests > self.max_connections * 10:
            raise ValueError("max_concurrent_requests is unreasonably high for max_connections")
        return self


class ReconcilerSettings(BaseSettings):
    """Main hu-reconciler settings.

    Combines all configuration sections and provides loading from YAML files
    with environment variable interpolation. Every field can also be set from
    the environment, e.g. ``HU_RECONCILER_AZURE__ORGANIZATION``.
    """

    model_config = SettingsConfigDict(
        env_prefix="HU_RECONCILER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    azure: AzureDevOpsConfig
    tickets: TicketConfig = Field(default_factory=TicketConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> ReconcilerSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            ReconcilerSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
            if not isinstance(config_dict, dict):
                raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        try:
            return cls(**config_dict)
        except TypeError as e:
            raise ConfigurationError(f"Missing or invalid configuration fields: {e}") from e
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            stripped = line.lstrip()
            if stripped.startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        lines = content.split("\n")
        return "\n".join(process_line(line) for line in lines)
