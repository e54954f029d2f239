"""
Journey Definitions

Journey, Agent and Tool, plus structural validation of a journey
before a run is started against it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from journey_core.definitions.screens import Screen


@dataclass
class Tool:
    """
    A named tool exposed to the voice agent runtime.

    ``parameters`` is an opaque JSON-schema-like description consumed only
    by the agent runtime. ``event_id`` links the tool to a screen event when
    the tool name and event id differ.
    """

    name: str
    id: Optional[str] = None
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    event_id: Optional[str] = None

    @property
    def target_event_id(self) -> str:
        return self.event_id or self.name

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameters),
        }
        if self.event_id:
            data["eventId"] = self.event_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tool":
        return cls(
            id=data.get("id"),
            name=str(data.get("name") or ""),
            description=data.get("description") or "",
            parameters=dict(data.get("parameters") or {}),
            event_id=data.get("eventId"),
        )


@dataclass
class Agent:
    """One conversational participant/phase within a journey."""

    id: str
    name: str
    voice: Optional[str] = None
    prompt: str = ""
    tools: List[Tool] = field(default_factory=list)
    handoffs: List[str] = field(default_factory=list)
    handoff_description: Optional[str] = None
    screens: List[Screen] = field(default_factory=list)
    screen_prompts: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        """Terminal agents (no handoffs) mark conversation end."""
        return not self.handoffs

    @property
    def first_screen(self) -> Optional[Screen]:
        return self.screens[0] if self.screens else None

    def find_screen(self, screen_id: str) -> Optional[Screen]:
        for screen in self.screens:
            if screen.id == screen_id:
                return screen
        return None

    def screen_index(self, screen_id: str) -> int:
        for index, screen in enumerate(self.screens):
            if screen.id == screen_id:
                return index
        return -1

    def find_tool(self, name: str) -> Optional[Tool]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "voice": self.voice,
            "prompt": self.prompt,
            "tools": [t.to_dict() for t in self.tools],
            "handoffs": list(self.handoffs),
            "handoffDescription": self.handoff_description,
            "screens": [s.to_dict() for s in self.screens],
            "screenPrompts": dict(self.screen_prompts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Agent":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            voice=data.get("voice"),
            prompt=data.get("prompt") or "",
            tools=[
                Tool.from_dict(item)
                for item in data.get("tools") or []
                if isinstance(item, dict)
            ],
            handoffs=[str(h) for h in data.get("handoffs") or []],
            handoff_description=data.get("handoffDescription"),
            screens=[
                Screen.from_dict(item)
                for item in data.get("screens") or []
                if isinstance(item, dict)
            ],
            screen_prompts=dict(data.get("screenPrompts") or {}),
        )


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class Journey:
    """A complete configured conversational and visual flow."""

    id: str
    name: str
    description: str = ""
    system_prompt: str = ""
    voice: Optional[str] = None
    voice_enabled: bool = True
    agents: List[Agent] = field(default_factory=list)
    starting_agent_id: Optional[str] = None
    version: str = "1.0.0"
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_agent(self, agent_id: Optional[str]) -> Optional[Agent]:
        if not agent_id:
            return None
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    @property
    def starting_agent(self) -> Optional[Agent]:
        if self.starting_agent_id:
            return self.get_agent(self.starting_agent_id)
        return self.agents[0] if self.agents else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "systemPrompt": self.system_prompt,
            "voice": self.voice,
            "voiceEnabled": self.voice_enabled,
            "agents": [a.to_dict() for a in self.agents],
            "startingAgentId": self.starting_agent_id,
            "version": self.version,
            "ownerId": self.owner_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Journey":
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            name=str(data.get("name") or ""),
            description=data.get("description") or "",
            system_prompt=data.get("systemPrompt") or "",
            voice=data.get("voice"),
            voice_enabled=bool(data.get("voiceEnabled", True)),
            agents=[
                Agent.from_dict(item)
                for item in data.get("agents") or []
                if isinstance(item, dict)
            ],
            starting_agent_id=data.get("startingAgentId"),
            version=str(data.get("version") or "1.0.0"),
            owner_id=data.get("ownerId"),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )


# =============================================================================
# Validation
# =============================================================================


@dataclass
class JourneyValidationIssue:
    """A single structural problem found in a journey."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class JourneyValidationError(Exception):
    """Raised when a run is started against a structurally invalid journey."""

    def __init__(self, journey_id: str, issues: List[JourneyValidationIssue]):
        self.journey_id = journey_id
        self.issues = issues
        summary = "; ".join(str(issue) for issue in issues)
        super().__init__(f"Journey {journey_id!r} is invalid: {summary}")


def validate_journey(journey: Journey) -> List[JourneyValidationIssue]:
    """
    Check the structural invariants of a journey.

    Handoff cycles are allowed; the handoff graph only has to stay within
    the journey.

    Returns:
        A list of issues. An empty list means the journey is valid.
    """
    issues: List[JourneyValidationIssue] = []

    if not journey.name.strip():
        issues.append(JourneyValidationIssue("name", "journey name is required"))

    if not journey.agents:
        issues.append(JourneyValidationIssue("agents", "at least one agent is required"))
        return issues

    agent_ids = [agent.id for agent in journey.agents]
    known = set(agent_ids)

    if journey.starting_agent_id and journey.starting_agent_id not in known:
        issues.append(JourneyValidationIssue(
            "startingAgentId",
            f"starting agent {journey.starting_agent_id!r} does not exist",
        ))

    seen_agents = set()
    for index, agent in enumerate(journey.agents):
        path = f"agents[{index}]"

        if not agent.id:
            issues.append(JourneyValidationIssue(f"{path}.id", "agent id is required"))
        elif agent.id in seen_agents:
            issues.append(JourneyValidationIssue(f"{path}.id", f"duplicate agent id {agent.id!r}"))
        seen_agents.add(agent.id)

        for target in agent.handoffs:
            if target not in known:
                issues.append(JourneyValidationIssue(
                    f"{path}.handoffs",
                    f"handoff target {target!r} does not exist",
                ))

        seen_screens = set()
        for screen_index, screen in enumerate(agent.screens):
            screen_path = f"{path}.screens[{screen_index}]"
            if not screen.id:
                issues.append(JourneyValidationIssue(f"{screen_path}.id", "screen id is required"))
            elif screen.id in seen_screens:
                issues.append(JourneyValidationIssue(
                    f"{screen_path}.id", f"duplicate screen id {screen.id!r}"
                ))
            seen_screens.add(screen.id)

        for tool_index, tool in enumerate(agent.tools):
            if not tool.name.strip():
                issues.append(JourneyValidationIssue(
                    f"{path}.tools[{tool_index}].name", "tool name is required"
                ))

    return issues
