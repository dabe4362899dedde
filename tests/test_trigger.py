"""Tests for trigger.py module."""

import pytest

from matrixci.errors import WorkflowLoadError
from matrixci.model import TriggerContext, TriggerRule
from matrixci.trigger import parse_triggers, should_run

CI_TRIGGERS = parse_triggers(
    {"push": {"branches": ["main"]}, "pull_request": None, "workflow_dispatch": None}
)


class TestShouldRun:
    """Event/branch filtering evaluated before any graph is built."""

    def test_push_to_main_runs(self):
        assert should_run(CI_TRIGGERS, TriggerContext("push", "main"))

    def test_push_to_other_branch_does_not_run(self):
        assert not should_run(CI_TRIGGERS, TriggerContext("push", "dev"))

    def test_push_without_branch_does_not_run(self):
        assert not should_run(CI_TRIGGERS, TriggerContext("push", None))

    @pytest.mark.parametrize("branch", ["main", "feature/x", None])
    def test_pull_request_and_dispatch_unfiltered(self, branch):
        assert should_run(CI_TRIGGERS, TriggerContext("pull_request", branch))
        assert should_run(CI_TRIGGERS, TriggerContext("workflow_dispatch", branch))

    def test_unlisted_event_does_not_run(self):
        assert not should_run(CI_TRIGGERS, TriggerContext("schedule", "main"))

    def test_no_rules_accepts_everything(self):
        assert should_run((), TriggerContext("push", "anything"))

    def test_branch_globs(self):
        rules = (TriggerRule("push", ("release/*",)),)
        assert should_run(rules, TriggerContext("push", "release/1.2"))
        assert not should_run(rules, TriggerContext("push", "main"))


class TestParseTriggers:
    def test_string(self):
        assert parse_triggers("push") == (TriggerRule("push"),)

    def test_list(self):
        assert parse_triggers(["push", "pull_request"]) == (
            TriggerRule("push"),
            TriggerRule("pull_request"),
        )

    def test_mapping_with_branches(self):
        assert CI_TRIGGERS == (
            TriggerRule("push", ("main",)),
            TriggerRule("pull_request"),
            TriggerRule("workflow_dispatch"),
        )

    def test_single_branch_string(self):
        assert parse_triggers({"push": {"branches": "main"}}) == (TriggerRule("push", ("main",)),)

    def test_none(self):
        assert parse_triggers(None) == ()

    def test_invalid_shape(self):
        with pytest.raises(WorkflowLoadError):
            parse_triggers(42)
        with pytest.raises(WorkflowLoadError):
            parse_triggers({"push": ["main"]})
