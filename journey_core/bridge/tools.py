"""Built-in agent tools and agent profile construction."""

import re
from typing import List, Optional

from journey_core.bridge.base import AgentProfile, ToolDefinition
from journey_core.config import BridgeSettings
from journey_core.definitions.journey import Agent, Journey


def to_camel_case(value: str) -> str:
    """``"Baseline Calculation"`` -> ``"baselineCalculation"``."""
    result = re.sub(r"[^a-zA-Z0-9]+(.)", lambda m: m.group(1).upper(), value)
    result = re.sub(r"[^a-zA-Z0-9]+$", "", result)
    return result[:1].lower() + result[1:]


def trigger_event_tool(settings: BridgeSettings) -> ToolDefinition:
    return ToolDefinition(
        name=settings.trigger_event_tool,
        description=(
            "Trigger a screen event. Events named "
            f"'{settings.navigation_event_prefix}*' are delayed by default so the "
            "user can read the current screen."
        ),
        parameters={
            "type": "object",
            "properties": {
                "eventId": {
                    "type": "string",
                    "description": "The ID of the event to trigger",
                },
                "delay": {
                    "type": "number",
                    "description": "Optional delay in seconds before triggering the event",
                },
            },
            "required": ["eventId"],
            "additionalProperties": False,
        },
        builtin=True,
    )


def record_input_tool(settings: BridgeSettings, description: str = "") -> ToolDefinition:
    return ToolDefinition(
        name=settings.record_input_tool,
        description=description or "Record what the user said on the current screen",
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "A short title for the recorded input"},
                "summary": {"type": "string", "description": "A one-line summary of what the user said"},
                "description": {"type": "string", "description": "A short description providing more context"},
                "nextEventId": {"type": "string", "description": "Optional event to trigger afterwards"},
                "delay": {"type": "number", "description": "Optional delay in seconds before the next event"},
                "storeKey": {"type": "string", "description": "Optional module state key for the summary"},
            },
            "required": ["title", "summary"],
            "additionalProperties": False,
        },
        builtin=True,
    )


def end_call_tool(settings: BridgeSettings) -> ToolDefinition:
    return ToolDefinition(
        name=settings.end_call_tool,
        description=(
            "End the conversation when it is complete or the user wants to stop. "
            "Shows the feedback screen first."
        ),
        parameters={
            "type": "object",
            "properties": {
                "reason": {"type": "string", "description": "Why the conversation is ending"},
                "feedbackScreenId": {"type": "string", "description": "Screen to show before ending"},
            },
            "required": [],
            "additionalProperties": False,
        },
        builtin=True,
    )


def combined_instructions(journey: Journey, agent: Agent) -> str:
    """System prompt, agent prompt and per-screen prompt fragments."""
    parts: List[str] = [journey.system_prompt, agent.prompt]

    if agent.screens and agent.screen_prompts:
        fragments = [
            f"## SCREEN: {screen_id}\n{prompt}"
            for screen_id, prompt in agent.screen_prompts.items()
            if prompt
        ]
        if fragments:
            parts.append("\n\n".join(fragments))

    return "\n\n".join(part for part in parts if part)


def build_agent_profile(
    journey: Journey,
    agent: Agent,
    settings: Optional[BridgeSettings] = None,
) -> AgentProfile:
    """Build the agent runtime's view of an agent."""
    settings = settings or BridgeSettings()

    tools: List[ToolDefinition] = []
    for tool in agent.tools:
        if tool.name == settings.record_input_tool:
            tools.append(record_input_tool(settings, tool.description))
            continue
        tools.append(ToolDefinition(
            name=tool.name,
            description=tool.description,
            parameters=dict(tool.parameters),
        ))

    if agent.screens:
        tools.append(trigger_event_tool(settings))
    tools.append(end_call_tool(settings))

    handoffs = []
    for target_id in agent.handoffs:
        target = journey.get_agent(target_id)
        if target is not None:
            handoffs.append(to_camel_case(target.name))

    return AgentProfile(
        agent_id=agent.id,
        name=to_camel_case(agent.name),
        voice=agent.voice or journey.voice,
        instructions=combined_instructions(journey, agent),
        tools=tools,
        handoffs=handoffs,
        handoff_description=agent.handoff_description or agent.name,
    )
