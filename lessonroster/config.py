"""
Configuration management using Pydantic.
"""

import logging
from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, field_validator

from .domain.schedule_time import DEFAULT_TIMEZONE, ScheduleClock

DEFAULT_CONFIG_NAME = "lessonroster.yaml"


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = DEFAULT_TIMEZONE
    default_lesson_minutes: int = 60
    open_time_step_minutes: int = 30
    booking_horizon_days: int = 90
    week_last_day: int = 6  # Saturday
    data_file: Optional[Path] = None
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        if value not in pendulum.timezones():
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("default_lesson_minutes", "open_time_step_minutes", "booking_horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("week_last_day")
    @classmethod
    def validate_week_last_day(cls, value: int) -> int:
        """Validate day index is between 0 (Sunday) and 6 (Saturday)."""
        if not 0 <= value <= 6:
            raise ValueError(f"week_last_day must be between 0 and 6, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def make_clock(self) -> ScheduleClock:
        return ScheduleClock(self.timezone)

    def resolve_data_file(self, config_path: Optional[Path] = None) -> Optional[Path]:
        """Relative data files are resolved against the config file's directory."""
        if self.data_file is None or self.data_file.is_absolute() or config_path is None:
            return self.data_file
        return config_path.parent / self.data_file

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a {DEFAULT_CONFIG_NAME} file. "
                f"See lessonroster.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for lessonroster.yaml in current directory
    config_path = Path.cwd() / DEFAULT_CONFIG_NAME

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / DEFAULT_CONFIG_NAME

    return config_path
