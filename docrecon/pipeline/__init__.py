# docrecon/pipeline/__init__.py
# ============================================================
# Pipeline Package
# ============================================================
# Per-file orchestration on top of the inference client.
#
# Key classes:
#   - DocumentOrchestrator: per-file state machine (start/retry)
#   - ProcessingMode: pipeline | single, resolved by modes.py
#   - FileProcessingState / Stage: what a front end displays
#   - ResultStore: completed results, JSON export
# ============================================================

from docrecon.pipeline.modes import (
    PIPELINE_TASKS,
    ProcessingMode,
    TaskRequest,
    build_request,
    resolve_tasks,
)
from docrecon.pipeline.state import FileProcessingState, Stage
from docrecon.pipeline.store import ResultStore, full_text
from docrecon.pipeline.orchestrator import DocumentOrchestrator

__all__ = [
    "PIPELINE_TASKS",
    "ProcessingMode",
    "TaskRequest",
    "build_request",
    "resolve_tasks",
    "FileProcessingState",
    "Stage",
    "ResultStore",
    "full_text",
    "DocumentOrchestrator",
]
