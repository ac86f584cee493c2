"""
Tests for settings loading and application paths.
"""

from pathlib import Path

import pytest

from notedb import paths
from notedb.config import Settings, load_settings
from notedb.errors import ConfigError
from notedb.periods import Period


class TestPaths:
    def test_home_override(self, isolated_home):
        assert paths.app_home() == Path(isolated_home).resolve()
        assert paths.settings_file() == Path(isolated_home).resolve() / "config" / "settings.yaml"

    def test_db_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTEDB_DB_FILE", str(tmp_path / "x.sqlite"))
        assert paths.db_path() == (tmp_path / "x.sqlite").resolve()


class TestLoadSettings:
    def test_defaults(self, isolated_home):
        settings = load_settings(environ={})
        assert settings.mode == "local"
        assert settings.db_file_path == str(paths.db_path())
        assert settings.request_timeout is None
        assert settings.default_period is Period.DAY

    def test_yaml_with_plugin_spellings(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "mode: remote\napiBaseUrl: https://db.example.com\ncfAccessClientId: abc\nrequestTimeout: 2.5\ndefaultPeriod: Month\n"
        )
        settings = load_settings(path, environ={})
        assert settings.mode == "remote"
        assert settings.api_base_url == "https://db.example.com"
        assert settings.cf_access_client_id == "abc"
        assert settings.request_timeout == 2.5
        assert settings.default_period is Period.MONTH

    def test_env_overrides_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("db_file_path: /tmp/a.sqlite\nstrict_dates: false\n")
        settings = load_settings(path, environ={"NOTEDB_DB_FILE": "/tmp/b.sqlite", "NOTEDB_STRICT_DATES": "yes"})
        assert settings.db_file_path == "/tmp/b.sqlite"
        assert settings.strict_dates is True

    def test_settings_file_in_config_dir(self, isolated_home):
        config_dir = paths.config_dir()
        config_dir.mkdir(parents=True)
        (config_dir / "settings.yaml").write_text("log_level: debug\n")
        assert load_settings(environ={}).log_level == "debug"

    @pytest.mark.parametrize(
        "content",
        [
            "mode: cloud\n",
            "mode: remote\n",
            "request_timeout: soon\n",
            "request_timeout: -1\n",
            "strict_dates: maybe\n",
            "default_period: fortnight\n",
            "log_level: LOUD\n",
            "- a list\n",
            "mode: [unclosed\n",
        ],
    )
    def test_invalid(self, tmp_path, content):
        path = tmp_path / "settings.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_settings(path, environ={})

    def test_unknown_keys_warn(self, tmp_path, caplog):
        path = tmp_path / "settings.yaml"
        path.write_text("colour: blue\n")
        load_settings(path, environ={})
        assert "Ignoring unknown setting 'colour'" in caplog.text

    def test_validate(self):
        assert Settings(mode="local", db_file_path="x").validate().mode == "local"
