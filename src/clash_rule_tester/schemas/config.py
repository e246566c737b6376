"""Clash configuration schemas and the YAML config supplier.

Only the parts of a Clash config that affect rule matching are modelled:
``rules`` and ``rule-providers``. Everything else in the document (proxies,
proxy groups, DNS settings, ...) is ignored.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

ProviderBehavior = Literal["domain", "ipcidr", "classical"]
ProviderFormat = Literal["yaml", "text"]


class ConfigShapeError(ValueError):
    """Raised when a supplied configuration is structurally invalid."""

    pass


class RuleProviderBase(BaseModel):
    """Fields shared by every rule provider."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    behavior: ProviderBehavior = Field(
        default="classical",
        description="How payload lines are interpreted: domain, ipcidr or classical",
    )


class HttpRuleProvider(RuleProviderBase):
    """Rule provider downloaded from a URL."""

    type: Literal["http"]
    url: str = Field(..., min_length=1, description="Provider download URL")
    format: ProviderFormat = "yaml"
    path: str | None = None
    interval: int | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject blank URLs."""
        if not v.strip():
            raise ValueError("http providers require a non-empty url")
        return v.strip()


class InlineRuleProvider(RuleProviderBase):
    """Rule provider whose payload is embedded in the config."""

    type: Literal["inline"]
    payload: list[str] = Field(..., min_length=1, description="Provider rule lines")


RuleProvider = Annotated[
    HttpRuleProvider | InlineRuleProvider,
    Field(discriminator="type"),
]


class ClashConfig(BaseModel):
    """The subset of a Clash config used for rule matching."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    rules: list[str] = Field(default_factory=list)
    rule_providers: dict[str, RuleProvider] = Field(
        default_factory=dict,
        alias="rule-providers",
    )

    @field_validator("rules", mode="before")
    @classmethod
    def rules_empty_when_null(cls, v: Any) -> Any:
        """Treat an empty ``rules:`` key as an empty list."""
        return [] if v is None else v

    @field_validator("rule_providers", mode="before")
    @classmethod
    def providers_empty_when_null(cls, v: Any) -> Any:
        """Treat an empty ``rule-providers:`` key as an empty mapping."""
        return {} if v is None else v

    @classmethod
    def from_mapping(cls, data: Any) -> "ClashConfig":
        """Validate an already-parsed config object.

        Raises:
            ConfigShapeError: If the object does not have the expected shape
        """
        if isinstance(data, ClashConfig):
            return data
        if not isinstance(data, Mapping):
            raise ConfigShapeError(
                f"Invalid configuration format: expected a mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigShapeError(format_validation_error(e)) from e


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic validation error as a single readable line."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "Invalid configuration: " + "; ".join(problems)


def parse_config(config_yaml: str) -> ClashConfig:
    """Parse a YAML string representing a Clash configuration file.

    Args:
        config_yaml: The YAML configuration text

    Returns:
        Validated ClashConfig

    Raises:
        ConfigShapeError: If the YAML is invalid or has the wrong shape
    """
    try:
        data = yaml.safe_load(config_yaml)
    except yaml.YAMLError as e:
        raise ConfigShapeError(f"Invalid YAML format: {e}") from e

    if data is None:
        raise ConfigShapeError("Invalid configuration format: document is empty")
    return ClashConfig.from_mapping(data)


def load_config(path: Path) -> ClashConfig:
    """Read and parse a Clash configuration file."""
    return parse_config(path.read_text(encoding="utf-8"))
