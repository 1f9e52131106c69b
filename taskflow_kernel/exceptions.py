"""
Typed Exception Hierarchy for the Taskflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (controllers, CLI commands, automation sweeps) have to tell apart
three very different failure classes:

  1. An ordinary "no" from the workflow (target status unreachable, a rule
     rejected the move).  This is NOT an exception -- it is reported as a
     list of human-readable reasons by ``WorkflowEngine.validate_transition``.
  2. A missing record (task or relation not found).  Expected; the caller
     maps it to e.g. HTTP 404.
  3. A programming / contract violation (unknown status value, a rule that
     raised instead of returning False).  Fatal for the single attempt and
     logged as an internal error.

Every exception has a ``code`` class attribute (machine-readable, API-safe)
and carries its context as attributes rather than only in the message.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TaskflowError (base)
    |
    +-- TaskError
    |   +-- TaskNotFoundError
    |   +-- UnknownStatusError
    |   +-- InvalidProgressError
    |
    +-- WorkflowError
    |   +-- RuleExecutionError
    |   +-- DuplicateRuleError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- TaskLockTimeoutError
    |
    +-- AutomationError
    |   +-- SweepNotRegisteredError
    |   +-- AutomationAlreadyRunningError
    |   +-- UnknownScheduleTypeError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                         | When Raised
-------------|------------------------------|-----------------------------------
Task         | TASK_NOT_FOUND               | Task ID doesn't exist in the store
             | UNKNOWN_STATUS               | Value is not a TaskStatus member
             | INVALID_PROGRESS             | Progress not an integer
-------------|------------------------------|-----------------------------------
Workflow     | RULE_EXECUTION_FAILED        | A rule raised during a transition
             | DUPLICATE_RULE               | Rule name already registered
-------------|------------------------------|-----------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT     | Task saved from a stale version
             | TASK_LOCK_TIMEOUT            | Per-task lock not acquired in time
-------------|------------------------------|-----------------------------------
Automation   | SWEEP_NOT_REGISTERED         | Unknown sweep type requested
             | AUTOMATION_ALREADY_RUNNING   | Overlapping command run
             | UNKNOWN_SCHEDULE_TYPE        | workflow-schedule --type invalid
-------------|------------------------------|-----------------------------------
Config       | INVALID_CONFIGURATION        | Config file fails strict parsing
"""


class TaskflowError(Exception):
    """
    Base exception for all taskflow errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TASKFLOW_ERROR"


# Task-related exceptions


class TaskError(TaskflowError):
    """Base exception for task record errors."""

    code: str = "TASK_ERROR"


class TaskNotFoundError(TaskError):
    """Task with given ID was not found in the store."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class UnknownStatusError(TaskError):
    """
    A status value outside the six enumerated TaskStatus members.

    Raised at every boundary where a raw value becomes a TaskStatus
    (parsing, ORM load, engine entry).
    """

    code: str = "UNKNOWN_STATUS"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Unknown task status: {value!r}")


class InvalidProgressError(TaskError):
    """Progress value could not be interpreted as an integer percentage."""

    code: str = "INVALID_PROGRESS"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid progress value: {value!r}")


# Workflow-related exceptions


class WorkflowError(TaskflowError):
    """Base exception for workflow engine and rule errors."""

    code: str = "WORKFLOW_ERROR"


class RuleExecutionError(WorkflowError):
    """
    A workflow rule raised instead of returning a validation result.

    This is a contract violation: the single transition attempt is aborted
    and rolled back.  Batch callers record it against the one task only.
    """

    code: str = "RULE_EXECUTION_FAILED"

    def __init__(
        self,
        rule_name: str,
        phase: str,
        task_id: str,
        cause: BaseException,
    ):
        self.rule_name = rule_name
        self.phase = phase
        self.task_id = task_id
        self.cause = repr(cause)
        super().__init__(
            f"Rule {rule_name} failed during {phase} for task {task_id}: {cause}"
        )


class DuplicateRuleError(WorkflowError):
    """A rule with the same name is already registered in the rule set."""

    code: str = "DUPLICATE_RULE"

    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(f"Workflow rule already registered: {rule_name}")


# Concurrency-related exceptions


class ConcurrencyError(TaskflowError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )


class TaskLockTimeoutError(ConcurrencyError):
    """Could not acquire the per-task transition lock in time."""

    code: str = "TASK_LOCK_TIMEOUT"

    def __init__(self, task_id: str, timeout_seconds: float):
        self.task_id = task_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for transition "
            f"lock on task {task_id}"
        )


# Automation-related exceptions


class AutomationError(TaskflowError):
    """Base exception for automation sweep errors."""

    code: str = "AUTOMATION_ERROR"


class SweepNotRegisteredError(AutomationError):
    """Requested sweep type is not registered."""

    code: str = "SWEEP_NOT_REGISTERED"

    def __init__(self, sweep_type: str, available: tuple[str, ...]):
        self.sweep_type = sweep_type
        self.available = available
        super().__init__(
            f"No sweep registered for type '{sweep_type}'. "
            f"Available: {list(available)}"
        )


class AutomationAlreadyRunningError(AutomationError):
    """An automation command is already running in this process."""

    code: str = "AUTOMATION_ALREADY_RUNNING"

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Automation command '{command}' is already running")


class UnknownScheduleTypeError(AutomationError):
    """workflow-schedule was asked for an unsupported type."""

    code: str = "UNKNOWN_SCHEDULE_TYPE"

    def __init__(self, schedule_type: str, allowed: tuple[str, ...]):
        self.schedule_type = schedule_type
        self.allowed = allowed
        super().__init__(
            f"Unknown schedule type '{schedule_type}'. "
            f"Expected one of: {', '.join(allowed)}"
        )


# Configuration exceptions


class ConfigurationError(TaskflowError):
    """Workflow configuration failed strict parsing."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        location = f" ({source})" if source else ""
        super().__init__(f"Invalid workflow configuration{location}: {message}")
