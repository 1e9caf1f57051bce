from __future__ import annotations

import os

from pydantic import ValidationError
import pytest

from sitebox.config import HostingSettings, SandboxSettings, Settings, load_settings
from sitebox.errors import ConfigError
from sitebox.providers.sandbox.local import LocalProvider
from sitebox.services.factory import provider_factory


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(("SITEBOX_", "E2B_", "VERCEL_")):
            monkeypatch.delenv(name)


def write_yaml(tmp_path, text: str) -> str:
    path = tmp_path / "sitebox.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_file_or_environment(tmp_path):
    settings = load_settings(str(tmp_path / "absent.yaml"))

    assert settings.backend == "e2b"
    assert settings.sandbox == SandboxSettings()
    assert settings.hosting == HostingSettings()
    assert settings.hosting.status_attempts == 30
    assert settings.hosting.propagation_interval_s == 0.5


def test_yaml_file_is_loaded(tmp_path):
    path = write_yaml(
        tmp_path,
        "backend: local\n"
        "log_level: DEBUG\n"
        "sandbox:\n"
        "  dev_port: 3000\n"
        "  legacy_peer_deps: false\n"
        "hosting:\n"
        "  project_prefix: demo\n"
        "  status_attempts: 5\n",
    )

    settings = load_settings(path)

    assert settings.backend == "local"
    assert settings.log_level == "DEBUG"
    assert settings.sandbox.dev_port == 3000
    assert settings.sandbox.legacy_peer_deps is False
    assert settings.sandbox.install_command == "npm install"
    assert settings.hosting.project_prefix == "demo"
    assert settings.hosting.status_attempts == 5


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = write_yaml(tmp_path, "sandbox:\n  dev_port: 3000\n  template: from-file\nhosting:\n  token: from-file\n")
    monkeypatch.setenv("SITEBOX_SANDBOX__DEV_PORT", "4000")
    monkeypatch.setenv("SITEBOX_SANDBOX__AUTO_RESTART_DEV_SERVER", "off")
    monkeypatch.setenv("SITEBOX_LOG_JSON", "true")
    monkeypatch.setenv("VERCEL_TOKEN", "from-env")
    monkeypatch.setenv("E2B_API_KEY", "e2b_key")

    settings = load_settings(path)

    assert settings.sandbox.dev_port == 4000
    assert settings.sandbox.template == "from-file"
    assert settings.sandbox.api_key == "e2b_key"
    assert settings.sandbox.auto_restart_dev_server is False
    assert settings.hosting.token == "from-env"
    assert settings.log_json is True


def test_prefixed_variables_win_over_provider_variables(tmp_path, monkeypatch):
    monkeypatch.setenv("VERCEL_TEAM_ID", "team_plain")
    monkeypatch.setenv("SITEBOX_HOSTING__TEAM_ID", "team_prefixed")

    settings = load_settings(str(tmp_path / "absent.yaml"))

    assert settings.hosting.team_id == "team_prefixed"


def test_config_path_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("SITEBOX_CONFIG", write_yaml(tmp_path, "backend: local\n"))

    assert load_settings().backend == "local"


def test_settings_are_frozen(tmp_path):
    settings = load_settings(str(tmp_path / "absent.yaml"))

    with pytest.raises(ValidationError):
        settings.sandbox.dev_port = 1


def test_unknown_keys_are_rejected(tmp_path):
    path = write_yaml(tmp_path, "sandbox:\n  dev_prot: 3000\n")

    with pytest.raises(ConfigError, match="dev_prot"):
        load_settings(path)


@pytest.mark.parametrize(
    "variable, value",
    [("SITEBOX_SANDBOX__DEV_PORT", "abc"), ("SITEBOX_SANDBOX__LEGACY_PEER_DEPS", "maybe")],
)
def test_invalid_values_are_rejected(tmp_path, monkeypatch, variable, value):
    monkeypatch.setenv(variable, value)

    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "absent.yaml"))


def test_non_mapping_file_is_rejected(tmp_path):
    path = write_yaml(tmp_path, "- just\n- a list\n")

    with pytest.raises(ConfigError):
        load_settings(path)


def test_factory_builds_configured_backend(tmp_path, monkeypatch, pipeline):
    monkeypatch.setenv("SITEBOX_BACKEND", "local")
    monkeypatch.setenv("SITEBOX_SANDBOX__LOCAL_BASE_DIR", str(tmp_path))
    settings = load_settings(str(tmp_path / "absent.yaml"))

    create = provider_factory(settings, pipeline)
    first, second = create(), create()

    assert isinstance(first, LocalProvider)
    assert first is not second
    assert first.base_dir == tmp_path


def test_factory_rejects_unknown_backend(pipeline):
    with pytest.raises(ConfigError, match="docker"):
        provider_factory(Settings(backend="docker"), pipeline)
