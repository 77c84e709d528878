"""Pydantic models for wotcalc configuration validation."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wotcalc.core.representations import (
    Representation,
    RepresentationRegistry,
    has_codec,
    normalize_token,
)


class ServerConfig(BaseModel):
    """Configuration for the HTTP server.

    Example in config.json:
        "server": {
            "host": "0.0.0.0",
            "port": 3000,
            "log_level": "INFO"
        }
    """

    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    """Host address to bind to (use 0.0.0.0 for all interfaces)."""

    port: int = Field(default=3000, ge=0, le=65535)
    """Port number for the HTTP server (0 picks a free port)."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    """Logging level for server operations."""

    max_concurrent: int = Field(default=32, ge=1)
    """Maximum concurrently handled one-shot requests (observations excluded)."""


class ThingConfig(BaseModel):
    """Identity of the served Thing and where its description comes from.

    Example in config.json:
        "thing": {
            "name": "my-calculator",
            "description_path": null
        }
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="http-calculator-content-negotiation", pattern=r"^[A-Za-z0-9._-]+$")
    """Root path segment of every endpoint."""

    model_path: str | None = None
    """Thing Model to render instead of the shipped one."""

    description_path: str | None = "calculator-content-negotiation-thing.td.jsonld"
    """Where to write the generated Thing Description at startup (null disables)."""

    result_observable: bool = True
    last_change_observable: bool = True


class ObservationConfig(BaseModel):
    """Timing of property/event observation streams."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=1.0, gt=0)
    """Seconds between state checks."""

    heartbeat: float = Field(default=15.0, gt=0)
    """Seconds of silence before a keep-alive comment is sent."""


class RepresentationConfig(BaseModel):
    """One entry of the representation table."""

    model_config = ConfigDict(extra="forbid")

    content_type: str
    format_code: int = Field(ge=0)
    default: bool = False

    @field_validator("content_type")
    @classmethod
    def validate_codec(cls, v: str) -> str:
        """Normalize the media type and require a codec for it."""
        if not has_codec(v):
            raise ValueError(f"No codec available for content type: {v}")
        return normalize_token(v)


def _default_representations() -> list[RepresentationConfig]:
    return [
        RepresentationConfig(content_type="application/json", format_code=50, default=True),
        RepresentationConfig(content_type="application/cbor", format_code=60),
    ]


class Config(BaseModel):
    """Root configuration model.

    Example config.json:
        {
            "server": {"port": 3000},
            "thing": {"name": "http-calculator-content-negotiation"},
            "observation": {"interval": 1.0},
            "representations": [
                {"content_type": "application/json", "format_code": 50, "default": true},
                {"content_type": "application/cbor", "format_code": 60}
            ]
        }
    """

    model_config = ConfigDict(extra="forbid")

    server: ServerConfig = ServerConfig()
    thing: ThingConfig = ThingConfig()
    observation: ObservationConfig = ObservationConfig()
    representations: list[RepresentationConfig] = Field(
        default_factory=_default_representations
    )

    @field_validator("representations")
    @classmethod
    def validate_representations(
        cls, v: list[RepresentationConfig]
    ) -> list[RepresentationConfig]:
        """Require a non-empty table with unique tokens/codes and one default."""
        if not v:
            raise ValueError("At least one representation is required")
        content_types = [r.content_type for r in v]
        if len(set(content_types)) != len(content_types):
            raise ValueError(f"Duplicate content types: {content_types}")
        codes = [r.format_code for r in v]
        if len(set(codes)) != len(codes):
            raise ValueError(f"Duplicate format codes: {codes}")
        defaults = [r.content_type for r in v if r.default]
        if len(defaults) != 1:
            raise ValueError(f"Exactly one default representation required, got {defaults}")
        return v

    def build_registry(self) -> RepresentationRegistry:
        """Create the representation registry described by this config."""
        return RepresentationRegistry(
            Representation(r.content_type, r.format_code, default=r.default)
            for r in self.representations
        )
