# trigger.py
from __future__ import annotations

from fnmatch import fnmatch
from typing import Any, Iterable, List, Optional, Tuple

from .errors import WorkflowLoadError
from .model import TriggerContext, TriggerRule

PUSH = "push"
PULL_REQUEST = "pull_request"
WORKFLOW_DISPATCH = "workflow_dispatch"

KNOWN_EVENTS = (PUSH, PULL_REQUEST, WORKFLOW_DISPATCH)


def _matches_any(branch: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(branch, p) for p in patterns)


def should_run(rules: Iterable[TriggerRule], context: TriggerContext) -> bool:
    """
    Decide once, before any graph is built, whether this event starts a run.

    - no rules at all: every event runs
    - an event with no matching rule never runs
    - a rule without `branches` accepts any branch
    - a rule with `branches` needs a known branch matching one pattern
    """
    rules = list(rules)
    if not rules:
        return True

    for rule in rules:
        if rule.event != context.event:
            continue
        if rule.branches is None:
            return True
        if context.branch is not None and _matches_any(context.branch, rule.branches):
            return True
    return False


def parse_triggers(raw: Any) -> Tuple[TriggerRule, ...]:
    """
    Parse a workflow `on:` value.

    Accepts the three shapes workflow files use:
        on: push
        on: [push, pull_request]
        on: {push: {branches: [main]}, pull_request: null, workflow_dispatch: null}
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        return (TriggerRule(event=raw),)
    if isinstance(raw, list):
        if not all(isinstance(e, str) for e in raw):
            raise WorkflowLoadError(f"'on' list must contain event names, got {raw!r}")
        return tuple(TriggerRule(event=e) for e in raw)
    if not isinstance(raw, dict):
        raise WorkflowLoadError(f"'on' must be a string, list or mapping, got {type(raw).__name__}")

    rules: List[TriggerRule] = []
    for event, options in raw.items():
        branches: Optional[Tuple[str, ...]] = None
        if options is not None:
            if not isinstance(options, dict):
                raise WorkflowLoadError(f"Options for event '{event}' must be a mapping")
            if "branches" in options:
                value = options["branches"]
                if isinstance(value, str):
                    value = [value]
                branches = tuple(str(b) for b in value or [])
        rules.append(TriggerRule(event=str(event), branches=branches))
    return tuple(rules)
