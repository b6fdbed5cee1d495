"""Tests for layered configuration loading."""

import yaml

from vendorgrid.config import ConfigLoader, PortalConfig, load_config
from vendorgrid.config.loader import BASE_URL_ENV_VAR, TOKEN_ENV_VAR


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _loader(tmp_path, monkeypatch, environ=None):
    monkeypatch.setattr(ConfigLoader, "USER_CONFIG_DIR", tmp_path / "user")
    return ConfigLoader(tmp_path / "project", environ=environ or {})


class TestLoad:
    def test_defaults_without_files(self, tmp_path, monkeypatch):
        config = _loader(tmp_path, monkeypatch).load()

        assert config.autosave.debounce_ms == 3000
        assert config.autosave.enable_offline_backup is True
        assert config.store.access_token is None

    def test_project_overrides_user_per_key(self, tmp_path, monkeypatch):
        loader = _loader(tmp_path, monkeypatch)
        _write(loader.user_file, "store:\n  base_url: https://user.test\n  timeout: 5\n")
        _write(loader.project_file, "store:\n  base_url: https://project.test\nautosave:\n  debounce_ms: 1500\n")

        config = loader.load()

        assert loader.sources() == [loader.user_file, loader.project_file]
        assert config.store.base_url == "https://project.test"
        assert config.store.timeout == 5
        assert config.autosave.debounce_ms == 1500

    def test_invalid_values_fall_back_to_defaults(self, tmp_path, monkeypatch):
        loader = _loader(tmp_path, monkeypatch)
        _write(loader.project_file, "autosave:\n  debounce_ms: -5\n")

        assert loader.load().autosave.debounce_ms == 3000

    def test_non_mapping_file_is_ignored(self, tmp_path, monkeypatch):
        loader = _loader(tmp_path, monkeypatch)
        _write(loader.user_file, "settings:\n  log_level: DEBUG\n")
        _write(loader.project_file, "- just\n- a list\n")

        assert loader.load().settings.log_level == "DEBUG"

    def test_environment_wins(self, tmp_path, monkeypatch):
        loader = _loader(
            tmp_path,
            monkeypatch,
            environ={TOKEN_ENV_VAR: "secret", BASE_URL_ENV_VAR: "https://env.test"},
        )
        _write(loader.project_file, "store:\n  base_url: https://project.test\n")

        config = loader.load()

        assert config.store.access_token == "secret"
        assert config.store.base_url == "https://env.test"

    def test_load_config_helper(self, tmp_path, monkeypatch):
        monkeypatch.setattr(ConfigLoader, "USER_CONFIG_DIR", tmp_path / "user")
        monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
        monkeypatch.delenv(BASE_URL_ENV_VAR, raising=False)
        _write(tmp_path / "vendorgrid.yaml", "cache:\n  path: /tmp/x.duckdb\n")

        assert load_config(tmp_path).cache.path == "/tmp/x.duckdb"


def test_save_never_writes_token(tmp_path, monkeypatch):
    loader = _loader(tmp_path, monkeypatch)
    config = PortalConfig()
    config.store.access_token = "secret"

    path = loader.save(config)

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert path == loader.project_file
    assert "access_token" not in data["store"]
    assert data["autosave"]["debounce_ms"] == 3000
