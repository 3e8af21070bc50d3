"""stageflow.

A stage-based workflow engine:
- session state with change tracking, history and rollback
- pluggable agents resolved from an explicit registry
- per-stage preconditions, timeouts, retry with backoff and routing
- user-input waits and lifecycle events
"""

__version__ = "0.1.0"

from stageflow.config import StageflowSettings
from stageflow.workflow.engine import WorkflowEngine

__all__ = ["__version__", "StageflowSettings", "WorkflowEngine"]
