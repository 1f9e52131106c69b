"""
Taskflow Kernel - Task Workflow Engine

A rule-gated state machine for hierarchical tasks with:
- Static status adjacency matrix
- Ordered chain of pluggable workflow rules
- Single mutation point per transition
- Structured workflow events for audit and notification
"""

__version__ = "0.1.0"
