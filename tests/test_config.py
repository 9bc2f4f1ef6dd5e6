"""
Unit Tests - Builder Configuration
==================================
"""
from pathlib import Path

import pytest

from pipebuild.core import config as config_module
from pipebuild.core.config import BuilderConfig
from pipebuild.core.exceptions import BuildError, ConfigurationError


class TestBuilderConfig:

    def test_layout_properties(self, tmp_path):
        cfg = BuilderConfig(home_path=tmp_path)
        assert cfg.tmp_dir == tmp_path / "tmp"
        assert cfg.artifact_dir == tmp_path / "pipelines"
        assert cfg.toolchain_root("golang") == tmp_path / "tmp" / "golang"

    def test_string_home_becomes_path(self, tmp_path):
        cfg = BuilderConfig(home_path=str(tmp_path))
        assert isinstance(cfg.home_path, Path)

    def test_missing_home_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="home path"):
            BuilderConfig(home_path="")

    def test_configuration_error_is_build_error(self):
        assert issubclass(ConfigurationError, BuildError)

    def test_negative_timeout_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError):
            BuilderConfig(home_path=tmp_path, build_timeout_seconds=-1)

    def test_unknown_runner_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="runner"):
            BuilderConfig(home_path=tmp_path, runner="kubernetes")

    def test_is_frozen(self, tmp_path):
        cfg = BuilderConfig(home_path=tmp_path)
        with pytest.raises(AttributeError):
            cfg.runner = "docker"

    def test_default_timeout_is_one_hour(self, tmp_path):
        assert BuilderConfig(home_path=tmp_path).build_timeout_seconds == 3600


class TestFromEnv:

    def test_reads_module_settings(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "PIPEBUILD_HOME", str(tmp_path))
        monkeypatch.setattr(config_module, "GO_BINARY", "/opt/go/bin/go")
        monkeypatch.setattr(config_module, "TOOLCHAINS_FILE", "")
        cfg = BuilderConfig.from_env()
        assert cfg.home_path == tmp_path
        assert cfg.go_binary == "/opt/go/bin/go"
        assert cfg.toolchains_file is None

    def test_overrides_take_precedence(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "PIPEBUILD_HOME", "/somewhere/else")
        cfg = BuilderConfig.from_env(home_path=tmp_path, build_timeout_seconds=5)
        assert cfg.home_path == tmp_path
        assert cfg.build_timeout_seconds == 5

    def test_none_overrides_are_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "PIPEBUILD_HOME", str(tmp_path))
        cfg = BuilderConfig.from_env(home_path=None, runner=None)
        assert cfg.home_path == tmp_path
        assert cfg.runner == "subprocess"

    def test_unset_home_fails(self, monkeypatch):
        monkeypatch.setattr(config_module, "PIPEBUILD_HOME", "")
        with pytest.raises(ConfigurationError):
            BuilderConfig.from_env()
