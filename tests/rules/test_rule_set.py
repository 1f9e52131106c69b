"""
Tests for RuleSet ordering and the BaseWorkflowRule error channel.
"""

import threading
from datetime import datetime, timezone

import pytest

from taskflow_kernel.domain.status import TaskStatus
from taskflow_kernel.domain.task import Task
from taskflow_kernel.domain.transition import TransitionContext
from taskflow_kernel.exceptions import DuplicateRuleError, RuleExecutionError
from taskflow_kernel.rules import (
    BaseWorkflowRule,
    RuleSet,
    WorkflowRule,
    default_rule_set,
    describe_rule,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class _Rule(BaseWorkflowRule):
    def __init__(self, name, priority, applies=True):
        self.rule_name = name
        self.rule_priority = priority
        self._applies = applies

    def can_apply(self, task, from_status, to_status, context):
        return self._applies

    def validate(self, task, from_status, to_status, context):
        return True


def _ctx(task):
    return TransitionContext(task, now=NOW)


class TestRuleSet:
    def test_default_rule_set_order(self):
        rules = default_rule_set()
        assert rules.names == ("basic_transition", "sub_task_completion", "parent_task_status")
        assert [r.priority for r in rules] == [1, 10, 20]

    def test_equal_priority_keeps_registration_order(self):
        rules = RuleSet([_Rule("b", 5), _Rule("a", 5), _Rule("first", 1)])
        assert rules.names == ("first", "b", "a")

    def test_duplicate_name_rejected(self):
        rules = RuleSet([_Rule("x", 1)])
        with pytest.raises(DuplicateRuleError) as exc_info:
            rules.register(_Rule("x", 2))
        assert exc_info.value.rule_name == "x"

    def test_applicable_filters_by_can_apply(self):
        rules = RuleSet([_Rule("on", 2), _Rule("off", 1, applies=False)])
        task = Task(title="t")
        applicable = rules.applicable(
            task, TaskStatus.PENDING, TaskStatus.IN_PROGRESS, _ctx(task)
        )
        assert [r.name for r in applicable] == ["on"]

    def test_applicable_wraps_can_apply_errors(self):
        class _Broken(_Rule):
            def can_apply(self, task, from_status, to_status, context):
                raise AttributeError("no such field")

        rules = RuleSet([_Rule("fine", 1), _Broken("broken", 2)])
        task = Task(title="t")
        with pytest.raises(RuleExecutionError) as exc_info:
            rules.applicable(task, TaskStatus.PENDING, TaskStatus.IN_PROGRESS, _ctx(task))
        assert exc_info.value.rule_name == "broken"
        assert exc_info.value.phase == "can_apply"
        assert exc_info.value.task_id == str(task.task_id)

    def test_remove_get_contains(self):
        rule = _Rule("x", 1)
        rules = RuleSet([rule])
        assert "x" in rules and rules.get("x") is rule
        assert rules.remove("x") is rule
        assert rules.remove("x") is None
        assert len(rules) == 0

    def test_rules_satisfy_protocol(self):
        for rule in default_rule_set():
            assert isinstance(rule, WorkflowRule)

    def test_describe_rule(self):
        descriptor = describe_rule(_Rule("x", 7))
        assert descriptor.to_dict() == {"name": "x", "description": "", "priority": 7}


class TestErrorMessages:
    def test_set_and_clear(self):
        rule = _Rule("x", 1)
        assert rule.set_error("nope") is False
        assert rule.error_message == "nope"
        rule.clear_error()
        assert rule.error_message == ""

    def test_error_message_is_per_thread(self):
        rule = _Rule("x", 1)
        rule.set_error("main thread")
        seen = []

        def worker():
            seen.append(rule.error_message)
            rule.set_error("worker thread")

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        assert seen == [""]
        assert rule.error_message == "main thread"
