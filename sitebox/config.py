"""Settings for sandbox backends, hosting deployments and logging."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from sitebox.errors import ConfigError

DEFAULT_CONFIG_PATH = "config/sitebox.yaml"

# Variable names the E2B and Vercel tooling already uses, mapped to (section, field).
PROVIDER_ENV: dict[str, tuple[str, str]] = {
    "E2B_API_KEY": ("sandbox", "api_key"),
    "E2B_TEMPLATE": ("sandbox", "template"),
    "VERCEL_TOKEN": ("hosting", "token"),
    "VERCEL_TEAM_ID": ("hosting", "team_id"),
    "VERCEL_API_URL": ("hosting", "api_url"),
}


class SandboxSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    api_key: str | None = None
    template: str | None = None
    timeout_s: int = 1800
    project_root: str = "/home/user/app"
    dev_port: int = 5173
    dev_command: str = "npm run dev"
    dev_process_pattern: str = "vite"
    install_command: str = "npm install"
    legacy_peer_deps: bool = True
    auto_restart_dev_server: bool = True
    command_timeout_s: int = 600
    startup_timeout_s: float = 60.0
    startup_poll_interval_s: float = 0.5
    local_base_dir: str | None = None


class HostingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    token: str | None = None
    team_id: str | None = None
    api_url: str = "https://api.vercel.com"
    platform_domain: str = "vercel.app"
    project_prefix: str = "sitebox-project"
    framework: str = "vite"
    build_command: str = "npm run build"
    output_directory: str = "dist"
    status_attempts: int = 30
    status_interval_s: float = 2.0
    propagation_attempts: int = 20
    propagation_interval_s: float = 0.5
    request_timeout_s: float = 30.0

    def project_settings(self) -> dict[str, str]:
        return {
            "framework": self.framework,
            "buildCommand": self.build_command,
            "outputDirectory": self.output_directory,
        }


class ProviderEnvSource(PydanticBaseSettingsSource):
    """Reads ``E2B_*`` and ``VERCEL_*`` variables into the nested sections."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        values: dict[str, dict[str, str]] = {}
        for variable, (section, name) in PROVIDER_ENV.items():
            value = os.getenv(variable)
            if value:
                values.setdefault(section, {})[name] = value
        return values


class Settings(BaseSettings):
    """
    Application settings.

    Sources, highest precedence first: constructor arguments, ``SITEBOX_*``
    variables (``SITEBOX_SANDBOX__DEV_PORT`` for nested fields), the provider
    variables in :data:`PROVIDER_ENV`, the YAML settings file, defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="SITEBOX_",
        env_nested_delimiter="__",
        extra="forbid",
        frozen=True,
    )

    backend: str = "e2b"
    log_level: str = "INFO"
    log_json: bool = False
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)
    hosting: HostingSettings = Field(default_factory=HostingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        yaml_file = (
            settings_cls.model_config.get("yaml_file")
            or os.getenv("SITEBOX_CONFIG")
            or DEFAULT_CONFIG_PATH
        )
        return (
            init_settings,
            env_settings,
            ProviderEnvSource(settings_cls),
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )


def load_settings(config_path: str | None = None) -> Settings:
    """Build settings, reading ``config_path`` instead of ``SITEBOX_CONFIG`` when given.

    A missing settings file is not an error; an invalid one raises ConfigError.
    """
    settings_cls = Settings
    if config_path is not None:

        class FileSettings(Settings):
            model_config = SettingsConfigDict(yaml_file=config_path)

        settings_cls = FileSettings
    try:
        return settings_cls()
    except ValidationError as exc:
        raise ConfigError(f"Invalid sitebox settings: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Settings file must contain a mapping: {exc}") from exc
