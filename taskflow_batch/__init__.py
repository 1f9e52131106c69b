"""
taskflow_batch -- Unattended workflow automation.

Runs the periodic sweeps (timeout blocking, parent auto-completion, child
auto-start, health audit, stale and due-soon reminders) over every
eligible task, driving the same WorkflowEngine entry points an
interactive caller would use.  Two commands group the sweeps:
``auto-flow`` and ``workflow-schedule``.

Architecture:
    taskflow_batch/ is a top-level package.  Nothing in taskflow_kernel/
    imports from taskflow_batch.

Invariants:
    - Per-item isolation: one task failing never aborts a sweep.
    - Dry-run never transitions a task and never publishes an event.
    - Every timestamp comes from the engine's injected Clock.
    - Re-running a sweep with no intervening updates is a no-op.
    - At most one run of a given command at a time per process.
"""
