"""Models exchanged with the voice agent runtime."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SignalKind(str, Enum):
    """What changed for the agent after a dispatch."""

    UNCHANGED = "unchanged"
    SCREEN_CHANGED = "screen_changed"
    HANDOFF = "handoff"
    COMPLETED = "completed"


class AgentSignal(BaseModel):
    """Signal sent to the agent runtime after each dispatch."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    screen_id: Optional[str] = None
    agent_id: Optional[str] = None
    completed: bool = False
    completion_reason: Optional[str] = None
    kind: SignalKind = SignalKind.UNCHANGED
    screen_prompt: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    delayed: bool = False

    @property
    def should_stop(self) -> bool:
        """The agent should stop producing turns."""
        return self.completed

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ToolDefinition(BaseModel):
    """A tool as presented to the agent runtime."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    builtin: bool = False


class AgentProfile(BaseModel):
    """The agent runtime's view of a journey agent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    agent_id: str
    name: str
    voice: Optional[str] = None
    instructions: str = ""
    tools: List[ToolDefinition] = Field(default_factory=list)
    handoffs: List[str] = Field(default_factory=list)
    handoff_description: str = ""

    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools]
