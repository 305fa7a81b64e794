"""Configuration schema using Pydantic."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from registry_operator.config.defaults import (
    DEFAULT_BIND_ADDRESS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_WATCH_INTERVAL_SECONDS,
)


class ServingInfo(BaseModel):
    """HTTPS serving parameters for the metrics listener."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    bind_address: str = Field(default="", alias="bindAddress")
    min_tls_version: str = Field(default="", alias="minTLSVersion")
    cipher_suites: tuple[str, ...] = Field(default=(), alias="cipherSuites")

    @field_validator("bind_address", "min_tls_version", mode="before")
    @classmethod
    def _null_string(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("cipher_suites", mode="before")
    @classmethod
    def _null_list(cls, value: object) -> object:
        return () if value is None else value


class GenericOperatorConfig(BaseModel):
    """Controller config file contents (operator.openshift.io/v1alpha1)."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    serving_info: ServingInfo = Field(default_factory=ServingInfo, alias="servingInfo")

    @field_validator("serving_info", mode="before")
    @classmethod
    def _null_serving_info(cls, value: object) -> object:
        return {} if value is None else value

    @classmethod
    def default(cls) -> "GenericOperatorConfig":
        return cls(serving_info=ServingInfo(bind_address=DEFAULT_BIND_ADDRESS))


class OperatorSettings(BaseSettings):
    """Process settings read from the environment."""

    model_config = SettingsConfigDict(env_prefix="REGISTRY_OPERATOR_", extra="ignore")

    log_level: str = DEFAULT_LOG_LEVEL
    watch_interval_seconds: float = Field(default=DEFAULT_WATCH_INTERVAL_SECONDS, gt=0)
