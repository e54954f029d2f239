"""
Journey Interpreter
===================

Screen/event/state interpreter for voice-driven onboarding journeys.

This package provides:
- Declarative journey, agent and screen definitions
- Condition evaluation and scoped run state
- Effective screen resolution
- Event dispatch with navigation, state updates, service calls and completion
- The bridge between the voice agent runtime and the screen layer
"""

__version__ = "1.0.0"
