"""Unit tests — config.py (Settings, sub-configs, singleton helpers)."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from conditioner import config as config_module
from conditioner.config import ProbeConfig, Settings, get_settings, override_settings


@pytest.fixture(autouse=True)
def _reset_singleton():
    saved = config_module._settings
    yield
    config_module._settings = saved


@pytest.mark.unit
class TestDefaults:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.implementations == {}
        assert settings.probes.builtin is True
        assert settings.probes.poll_interval_seconds == 5.0
        assert settings.engine.max_propagation_depth == 16
        assert settings.logging.level == "info"
        assert settings.logging.format == "console"

    def test_poll_interval_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ProbeConfig(poll_interval_seconds=0)

    def test_depth_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(engine={"max_propagation_depth": 0})


@pytest.mark.unit
class TestImplementations:
    def test_alias_shorthand(self) -> None:
        settings = Settings(
            implementations={
                "app.ui.Map": "map",
                "app.ui.Static": {"alias": "static", "options": {"zoom": 4}},
            }
        )
        assert settings.implementations["app.ui.Map"].alias == "map"
        assert settings.implementations["app.ui.Map"].options == {}
        assert settings.implementations["app.ui.Static"].options == {"zoom": 4}


@pytest.mark.unit
class TestSources:
    def test_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONDITIONER_PROBES__POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("CONDITIONER_LOGGING__LEVEL", "debug")
        settings = Settings()
        assert settings.probes.poll_interval_seconds == 0.5
        assert settings.logging.level == "debug"

    def test_yaml_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "implementations:\n"
            "  app.ui.Map: map\n"
            "probes:\n"
            "  builtin: false\n"
            "  aliases:\n"
            "    battery: myapp.probes.BatteryProbe\n"
            "engine:\n"
            "  max_propagation_depth: 4\n"
        )
        settings = Settings.load(config_file)
        assert settings.implementations["app.ui.Map"].alias == "map"
        assert settings.probes.builtin is False
        assert settings.probes.aliases == {"battery": "myapp.probes.BatteryProbe"}
        assert settings.engine.max_propagation_depth == 4

    def test_yaml_beats_env_per_key(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONDITIONER_PROBES__POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("CONDITIONER_LOGGING__LEVEL", "debug")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("probes:\n  poll_interval_seconds: 2.0\n")
        settings = Settings.load(config_file)
        assert settings.probes.poll_interval_seconds == 2.0
        assert settings.logging.level == "debug"

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        assert Settings.load(config_file).probes.builtin is True

    def test_missing_file_ignored(self, tmp_path: Path) -> None:
        assert Settings.load(tmp_path / "absent.yaml").engine.max_propagation_depth == 16


@pytest.mark.unit
class TestSingleton:
    def test_override(self) -> None:
        settings = Settings(probes={"builtin": False})
        override_settings(settings)
        assert get_settings() is settings
