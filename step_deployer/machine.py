"""Structural validation of Amazon States Language definitions."""

import json
from typing import Any, Dict, Optional


STATE_TYPES = {"Task", "Pass", "Choice", "Wait", "Succeed", "Fail", "Parallel", "Map"}
TERMINAL_TYPES = {"Succeed", "Fail"}


class DefinitionSyntaxError(ValueError):
    pass


def parse(text: Optional[str]) -> Dict[str, Any]:
    if not text:
        raise DefinitionSyntaxError("definition is empty")
    try:
        definition = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DefinitionSyntaxError(f"definition is not valid JSON: {exc.msg}") from exc
    if not isinstance(definition, dict):
        raise DefinitionSyntaxError("definition must be a JSON object")
    return definition


def validate(text: Optional[str]) -> None:
    _validate_machine(parse(text), "")


def pretty_json(text: str) -> str:
    return json.dumps(json.loads(text), indent=2)


def _validate_machine(definition: Dict[str, Any], scope: str) -> None:
    start_at = definition.get("StartAt")
    states = definition.get("States")
    if not isinstance(start_at, str) or not start_at:
        raise DefinitionSyntaxError(f"{scope}StartAt must be a non-empty string")
    if not isinstance(states, dict) or not states:
        raise DefinitionSyntaxError(f"{scope}States must be a non-empty object")
    if start_at not in states:
        raise DefinitionSyntaxError(f"{scope}StartAt '{start_at}' is not a state")
    for name, state in states.items():
        _validate_state(name, state, states, scope)


def _validate_state(name: str, state: Any, states: Dict[str, Any], scope: str) -> None:
    label = f"{scope}State '{name}'"
    if len(name) > 80:
        raise DefinitionSyntaxError(f"{label} name longer than 80 characters")
    if not isinstance(state, dict):
        raise DefinitionSyntaxError(f"{label} must be an object")
    state_type = state.get("Type")
    if not isinstance(state_type, str) or state_type not in STATE_TYPES:
        raise DefinitionSyntaxError(f"{label} has unknown Type '{state_type}'")

    if state_type == "Choice":
        _validate_choice(label, state, states)
    elif state_type not in TERMINAL_TYPES:
        _validate_transition(label, state, states)

    if state_type == "Task" and not state.get("Resource"):
        raise DefinitionSyntaxError(f"{label} Task requires Resource")
    if state_type == "Wait":
        keys = {"Seconds", "Timestamp", "SecondsPath", "TimestampPath"} & set(state)
        if len(keys) != 1:
            raise DefinitionSyntaxError(f"{label} Wait requires exactly one of Seconds, Timestamp, SecondsPath, TimestampPath")
    if state_type == "Parallel":
        branches = state.get("Branches")
        if not isinstance(branches, list) or not branches:
            raise DefinitionSyntaxError(f"{label} Parallel requires Branches")
        for index, branch in enumerate(branches):
            if not isinstance(branch, dict):
                raise DefinitionSyntaxError(f"{label} branch {index} must be an object")
            _validate_machine(branch, f"{label} branch {index}: ")
    if state_type == "Map":
        iterator = state.get("ItemProcessor") or state.get("Iterator")
        if not isinstance(iterator, dict):
            raise DefinitionSyntaxError(f"{label} Map requires ItemProcessor")
        _validate_machine(iterator, f"{label} iterator: ")

    catchers = state.get("Catch") or []
    if not isinstance(catchers, list):
        raise DefinitionSyntaxError(f"{label} Catch must be a list")
    for catcher in catchers:
        if not isinstance(catcher, dict):
            raise DefinitionSyntaxError(f"{label} Catch entries must be objects")
        _require_target(label, "Catch Next", catcher.get("Next"), states)


def _validate_transition(label: str, state: Dict[str, Any], states: Dict[str, Any]) -> None:
    next_state = state.get("Next")
    is_end = state.get("End") is True
    if next_state and is_end:
        raise DefinitionSyntaxError(f"{label} cannot have both Next and End")
    if not next_state and not is_end:
        raise DefinitionSyntaxError(f"{label} must have Next or End")
    if next_state:
        _require_target(label, "Next", next_state, states)


def _validate_choice(label: str, state: Dict[str, Any], states: Dict[str, Any]) -> None:
    choices = state.get("Choices")
    if not isinstance(choices, list) or not choices:
        raise DefinitionSyntaxError(f"{label} Choice requires Choices")
    for choice in choices:
        if not isinstance(choice, dict):
            raise DefinitionSyntaxError(f"{label} Choices entries must be objects")
        _require_target(label, "choice Next", choice.get("Next"), states)
    default = state.get("Default")
    if default is not None:
        _require_target(label, "Default", default, states)


def _require_target(label: str, field: str, target: Any, states: Dict[str, Any]) -> None:
    if not isinstance(target, str):
        raise DefinitionSyntaxError(f"{label} {field} must be a state name")
    if target not in states:
        raise DefinitionSyntaxError(f"{label} {field} '{target}' is not a state")
