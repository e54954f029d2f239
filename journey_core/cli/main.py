"""Journey CLI - validate and simulate journey definitions."""

import asyncio
import json
import sys
from typing import Any, Dict, List, Optional, Tuple

import click

from journey_core import __version__
from journey_core.bridge.tools import build_agent_profile
from journey_core.config import get_settings
from journey_core.core.logging import configure_logging
from journey_core.definitions.journey import Journey, JourneyValidationError, validate_journey
from journey_core.definitions.loader import DefinitionFormatError, load_journey_file, read_document
from journey_core.interpreter.dispatcher import DispatchResult
from journey_core.runtime.manager import JourneyRun, RunManager
from journey_core.services.base import ServiceCaller
from journey_core.services.http import HttpServiceCaller

from journey_core.cli.output import (
    console,
    print_data,
    print_error,
    print_success,
    print_table,
    print_warning,
)


RESULT_COLUMNS = ["step", "outcome", "screen", "agent", "completed", "warnings"]


def _load(path: str) -> Journey:
    try:
        return load_journey_file(path)
    except (OSError, DefinitionFormatError) as e:
        print_error(f"Could not load {path}: {e}")
        sys.exit(1)


def _parse_step(kind: str, raw: str) -> Dict[str, Any]:
    """``name`` or ``name:{json args}``; events accept ``name@element``."""
    name, _, payload = raw.partition(":")
    args: Dict[str, Any] = {}
    if payload:
        try:
            args = json.loads(payload)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON in {raw!r}: {e}")

    if kind == "event":
        event_id, _, element_id = name.partition("@")
        return {"event": event_id, "element": element_id or None, "values": args}
    return {"tool": name, "args": args}


async def _run_step(run: JourneyRun, step: Dict[str, Any]) -> Tuple[str, DispatchResult]:
    if "tool" in step:
        label = f"tool {step['tool']}"
        result = await run.bridge.on_agent_tool_call(step["tool"], step.get("args") or {})
    elif "back" in step:
        label = "back"
        result = await run.go_back()
    elif "handoff" in step:
        label = f"handoff {step['handoff']}"
        result = await run.bridge.on_agent_handoff(step["handoff"])
    else:
        label = f"event {step.get('event')}"
        if step.get("element"):
            label += f"@{step['element']}"
        result = await run.dispatch(
            step.get("event") or "",
            element_id=step.get("element"),
            values=step.get("values") or None,
        )
    return label, result


def _result_row(label: str, result: DispatchResult) -> Dict[str, Any]:
    return {
        "step": label,
        "outcome": result.outcome.value,
        "screen": result.screen_id,
        "agent": result.agent_id,
        "completed": result.completed,
        "warnings": "; ".join(result.warnings) or None,
    }


async def _simulate(
    journey: Journey,
    steps: List[Dict[str, Any]],
    initial_state: Optional[Dict[str, Any]],
    service_caller: Optional[ServiceCaller],
) -> Tuple[JourneyRun, List[Dict[str, Any]]]:
    manager = RunManager(service_caller=service_caller, settings=get_settings())
    run = await manager.start_journey(journey, initial_state=initial_state)
    rows = [_result_row("start", run.start_result)]

    for step in steps:
        label, result = await _run_step(run, step)
        rows.append(_result_row(label, result))
        if run.completed:
            break

    run.dispatcher.close()
    if service_caller is not None:
        await service_caller.close()
    return run, rows


@click.group()
@click.version_option(version=__version__, prog_name="journey")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """Journey CLI - work with declarative voice journeys.

    \b
    Examples:
      journey validate onboarding.yaml
      journey simulate onboarding.yaml -e go_b -t trigger_event:'{"eventId": "next"}'
    """
    ctx.ensure_object(dict)
    settings = get_settings()
    if debug:
        settings = settings.model_copy(update={"log_level": "debug"})
    else:
        settings = settings.model_copy(update={"log_level": "warning"})
    configure_logging(settings, force=True)
    ctx.obj["debug"] = debug


@cli.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def validate(path: str):
    """Check a journey file for structural problems."""
    journey = _load(path)
    issues = validate_journey(journey)

    if not issues:
        print_success(f"Journey [bold]{journey.name or journey.id}[/bold] is valid")
        return

    print_table(
        [{"path": issue.path, "problem": issue.message} for issue in issues],
        ["path", "problem"],
        title="Validation issues",
    )
    print_error(f"{len(issues)} issue(s) found")
    sys.exit(1)


@cli.command("profile")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Choice(["yaml", "json"]), default="yaml")
def profile(path: str, output: str):
    """Show the agent runtime view of every agent."""
    journey = _load(path)
    settings = get_settings()
    profiles = [
        build_agent_profile(journey, agent, settings.bridge).model_dump(by_alias=True, mode="json")
        for agent in journey.agents
    ]
    print_data(profiles, output)


@cli.command("simulate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--event", "-e", "events", multiple=True,
              help="Dispatch an event: id, id@element or id@element:{values}")
@click.option("--tool", "-t", "tools", multiple=True,
              help="Agent tool call: name or name:{json args}")
@click.option("--script", "-s", type=click.Path(exists=True, dir_okay=False),
              help="JSON/YAML list of steps, run after --event/--tool")
@click.option("--state", "state_json", default=None, help="Initial module state as JSON")
@click.option("--services-url", envvar="JOURNEY_SERVICES_BASE_URL", default=None,
              help="Base URL for remote service calls")
@click.option("--output", "-o", type=click.Choice(["table", "json", "yaml"]), default="table")
def simulate(
    path: str,
    events: Tuple[str, ...],
    tools: Tuple[str, ...],
    script: Optional[str],
    state_json: Optional[str],
    services_url: Optional[str],
    output: str,
):
    """Run a journey against a sequence of events and tool calls.

    \b
    Script steps look like:
      - {event: go_b}
      - {event: select, element: q1, values: {selectedOptionId: a}}
      - {tool: record_input, args: {title: Mood, summary: Good}}
      - {back: true}
      - {handoff: agent-2}
    """
    journey = _load(path)

    steps = [_parse_step("event", raw) for raw in events]
    steps.extend(_parse_step("tool", raw) for raw in tools)
    if script:
        data = read_document(script)
        if not isinstance(data, list):
            print_error("Script must be a list of steps")
            sys.exit(1)
        steps.extend(step for step in data if isinstance(step, dict))

    initial_state = None
    if state_json:
        try:
            initial_state = json.loads(state_json)
        except json.JSONDecodeError as e:
            print_error(f"Invalid --state JSON: {e}")
            sys.exit(1)

    service_caller = None
    if services_url:
        settings = get_settings()
        service_caller = HttpServiceCaller(
            settings.services.model_copy(update={"base_url": services_url})
        )

    try:
        run, rows = asyncio.run(_simulate(journey, steps, initial_state, service_caller))
    except JourneyValidationError as e:
        for issue in e.issues:
            print_warning(str(issue))
        print_error("Journey is invalid; fix it before simulating")
        sys.exit(1)

    if output != "table":
        print_data({"steps": rows, "run": run.state.to_dict()}, output)
        return

    print_table(rows, RESULT_COLUMNS, title=f"Simulation: {journey.name or journey.id}")
    state = run.state.store.snapshot()
    console.print(f"\nModule state: {json.dumps(state['module'], default=str)}")
    console.print(f"Screen state: {json.dumps(state['screen'], default=str)}")
    if run.completed:
        print_success(f"Run completed ({run.state.completion_reason or 'no reason'})")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
