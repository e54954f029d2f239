"""Configuration for the journey interpreter."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MAX_EVENT_LOG = 500


class InterpreterSettings(BaseSettings):
    """Event dispatcher configuration."""

    model_config = SettingsConfigDict(env_prefix="JOURNEY_INTERPRETER_")

    # Screen entry
    entry_event_types: List[str] = Field(
        default_factory=lambda: ["onAppear", "onLoad", "onStart"],
        description="Screen event types fired automatically after entering a screen",
    )
    max_chained_entries: int = Field(
        default=5, ge=0, description="Max screen entries processed for a single inbound event",
    )

    # Run bookkeeping
    max_event_log: int = Field(default=DEFAULT_MAX_EVENT_LOG, ge=1, description="Applied events kept per run")
    interpolate_templates: bool = Field(
        default=True, description="Interpolate {$moduleData.x} templates when resolving screens",
    )


class BridgeSettings(BaseSettings):
    """Agent-screen bridge configuration."""

    model_config = SettingsConfigDict(env_prefix="JOURNEY_BRIDGE_")

    trigger_event_tool: str = Field(default="trigger_event", description="Generic event tool name")
    record_input_tool: str = Field(default="record_input", description="Input recording tool name")
    end_call_tool: str = Field(default="end_call", description="Conversation end tool name")

    navigation_event_prefix: str = Field(default="navigate_to_", description="Navigation event id prefix")
    navigation_delay_seconds: float = Field(
        default=2.0, ge=0, description="Default delay for navigation events without an explicit delay",
    )
    next_event_delay_seconds: float = Field(
        default=2.0, ge=0, description="Default delay before record_input triggers its next event",
    )
    feedback_event_id: str = Field(default="show_feedback_screen", description="Fallback end-of-call event")

    answer_key_prefixes: List[str] = Field(
        default_factory=lambda: ["answer_"],
        description="State keys with these prefixes are recorded as answers",
    )
    track_tool_calls: bool = Field(default=True, description="Count tool calls in module state")


class ServiceSettings(BaseSettings):
    """External service-call configuration."""

    model_config = SettingsConfigDict(env_prefix="JOURNEY_SERVICES_")

    base_url: Optional[str] = Field(default=None, description="Base URL for remote service calls")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Service call timeout")
    api_key: Optional[str] = Field(default=None, description="Bearer token for remote services")


class Settings(BaseSettings):
    """Main settings."""

    model_config = SettingsConfigDict(
        env_prefix="JOURNEY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="journey-interpreter", description="Service name")
    environment: Literal["development", "production", "test"] = "development"
    log_level: str = Field(default="info", description="Log level")
    log_format: Literal["json", "console"] = Field(default="console", description="Log renderer")

    interpreter: InterpreterSettings = Field(default_factory=InterpreterSettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
