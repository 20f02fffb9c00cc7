"""Process-level settings read from the environment.

Secrets live here rather than in the test YAML so a configuration file can
be committed alongside the workload it drives.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging overrides; unset fields defer to the test configuration."""
    level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")
    format: Optional[str] = Field(default=None, validation_alias="LOG_FORMAT")
    file_path: Optional[str] = Field(default=None, validation_alias="LOG_FILE")


class CredentialSettings(BaseSettings):
    """SSH secrets that override whatever the test configuration holds."""
    ssh_password: str = Field(default="", validation_alias="HARNESS_SSH_PASSWORD")
    sudo_password: str = Field(default="", validation_alias="HARNESS_SUDO_PASSWORD")

    def ssh_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        if self.ssh_password:
            overrides["password"] = self.ssh_password
        if self.sudo_password:
            overrides["sudo_password"] = self.sudo_password
        return overrides


class Settings(BaseSettings):
    """Application settings."""
    results_dir: str = Field(default="", validation_alias="HARNESS_RESULTS_DIR")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )
