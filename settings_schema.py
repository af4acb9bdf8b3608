from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

from config import YamlConfig


class SettingsSchema(BaseModel):
    timezone: str = "UTC"
    language: str = "en"
    # moderate-intensity resistance training estimate
    calories_per_minute: float = Field(6.0, gt=0)
    history_limit: int = Field(20, ge=2)
    default_display_name: str = "Atleta PulseFit"
    leaderboard_days: int = Field(7, ge=1)
    leaderboard_size: int = Field(5, ge=1)
    log_level: str = "INFO"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def load_settings(path: str | None = None) -> SettingsSchema:
    """Read the YAML settings file and return validated settings."""
    data = YamlConfig(path).load()
    validate_settings(data)
    return SettingsSchema(**data)
