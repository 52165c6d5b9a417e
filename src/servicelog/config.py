"""Configuration for a logging pipeline.

Options are supplied once, at assembly time, and are immutable afterwards.
Any field may also come from the environment:

    SERVICELOG_SERVICE_NAME=billing
    SERVICELOG_MIN_LEVEL=info
    SERVICELOG_ENV=prod
    SERVICELOG_ELASTICSEARCH__URL=http://elasticsearch:9200
    SERVICELOG_SANITIZE__SENSITIVE_FIELDS='["ssn"]'
"""

from typing import Any, Literal

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from servicelog.levels import LogLevel

Environment = Literal["dev", "prod", "test", "stage"]


def _parse_level(value: Any) -> Any:
    if value is None or isinstance(value, LogLevel):
        return value
    return LogLevel.coerce(value)


class ElasticsearchOptions(BaseModel):
    """Remote search index sink settings."""

    model_config = ConfigDict(frozen=True)

    url: AnyHttpUrl
    min_level: LogLevel | None = None
    timeout: float = Field(default=5.0, gt=0)  # seconds

    @field_validator("min_level", mode="before")
    @classmethod
    def coerce_level(cls, value: Any) -> Any:
        return _parse_level(value)


class SanitizeOptions(BaseModel):
    """Redaction settings. Presence of this block enables redaction."""

    model_config = ConfigDict(frozen=True)

    sensitive_fields: tuple[str, ...] = ()


class LoggerOptions(BaseSettings):
    """Pipeline settings loaded from arguments or environment variables."""

    service_name: str = Field(min_length=1)
    min_level: LogLevel = LogLevel.SILLY
    enable_console: bool = True
    console_level: LogLevel | None = None
    elasticsearch: ElasticsearchOptions | None = None
    sanitize: SanitizeOptions | None = None
    env: Environment = "dev"

    model_config = SettingsConfigDict(
        env_prefix="SERVICELOG_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    @field_validator("min_level", "console_level", mode="before")
    @classmethod
    def coerce_levels(cls, value: Any) -> Any:
        return _parse_level(value)

    @property
    def console_min_level(self) -> LogLevel:
        return self.console_level or self.min_level

    @property
    def elasticsearch_min_level(self) -> LogLevel:
        if self.elasticsearch is None or self.elasticsearch.min_level is None:
            return self.min_level
        return self.elasticsearch.min_level
