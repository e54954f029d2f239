"""Agent-Screen Bridge: the seam to the voice agent runtime."""

from journey_core.bridge.agent_bridge import TOOL_CALL_COUNTS_KEY, AgentScreenBridge, parse_delay
from journey_core.bridge.base import AgentProfile, AgentSignal, SignalKind, ToolDefinition
from journey_core.bridge.tools import build_agent_profile, combined_instructions, to_camel_case

__all__ = [
    "TOOL_CALL_COUNTS_KEY",
    "AgentProfile",
    "AgentScreenBridge",
    "AgentSignal",
    "SignalKind",
    "ToolDefinition",
    "build_agent_profile",
    "combined_instructions",
    "parse_delay",
    "to_camel_case",
]
