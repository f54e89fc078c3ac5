"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from lessonroster.config import AppConfig


class TestAppConfig:
    """Tests for AppConfig."""

    def test_defaults(self):
        config = AppConfig()

        assert config.timezone == "America/Sao_Paulo"
        assert config.default_lesson_minutes == 60
        assert config.open_time_step_minutes == 30
        assert config.week_last_day == 6
        assert config.data_file is None
        assert config.make_clock().timezone_name == "America/Sao_Paulo"

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "lessonroster.yaml"
        path.write_text(
            "timezone: Europe/Lisbon\n"
            "default_lesson_minutes: 45\n"
            "data_file: data/roster.yaml\n"
            "log_level: debug\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(path)

        assert config.timezone == "Europe/Lisbon"
        assert config.default_lesson_minutes == 45
        assert config.log_level == "DEBUG"
        assert config.resolve_data_file(path) == tmp_path / "data" / "roster.yaml"

    def test_absolute_data_file_kept(self, tmp_path):
        config = AppConfig(data_file=tmp_path / "roster.yaml")

        assert config.resolve_data_file(Path("elsewhere/lessonroster.yaml")) == tmp_path / "roster.yaml"

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "lessonroster.yaml"
        path.write_text("", encoding="utf-8")

        assert AppConfig.load_from_yaml(path) == AppConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "lessonroster.yaml"
        path.write_text("timezone: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "lessonroster.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ValueError, match="mapping"):
            AppConfig.load_from_yaml(path)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("timezone", "Nowhere/City"),
            ("default_lesson_minutes", 0),
            ("open_time_step_minutes", -15),
            ("booking_horizon_days", 0),
            ("week_last_day", 7),
            ("log_level", "LOUD"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            AppConfig(**{field: value})
