# docrecon/pipeline/modes.py
# ============================================================
# Processing Mode Policy
# ============================================================
# Decides which tasks a run requests and which model identifiers
# go on the wire. The orchestrator resolves the task list once per
# run; everything downstream works on that list and never looks at
# the mode again.
#
#   pipeline → [layout, ocr, visualization], selection ignored
#   single   → exactly the caller's selection (may be empty)
# ============================================================

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from docrecon.tasks import Task, get_task_info, parse_tasks


class ProcessingMode(str, Enum):
    PIPELINE = "pipeline"
    SINGLE = "single"


PIPELINE_TASKS: tuple[Task, ...] = (Task.LAYOUT, Task.OCR, Task.VISUALIZATION)


@dataclass(frozen=True)
class TaskRequest:
    """
    Call parameters for one /infer-file round trip.

    An empty model identifier means the stage is not requested.
    """
    layout_model: str
    ocr_model: str
    return_visualization: bool


def resolve_tasks(
    mode: Union[ProcessingMode, str],
    selected_tasks: Iterable[Union[Task, str]] = (),
) -> list[Task]:
    """
    Resolve the ordered task list for a run.

    Args:
        mode: "pipeline" or "single".
        selected_tasks: Caller selection; only used in single mode.

    Returns:
        The fixed pipeline order, or the selection in caller order with
        duplicates removed. An empty list is possible in single mode.

    Raises:
        ValueError: Unknown mode or task name.
    """
    mode = ProcessingMode(mode)
    if mode is ProcessingMode.PIPELINE:
        return list(PIPELINE_TASKS)
    return parse_tasks(selected_tasks)


def build_request(
    tasks: Iterable[Task],
    layout_model: Optional[str] = None,
    ocr_model: Optional[str] = None,
) -> TaskRequest:
    """
    Map a resolved task list onto /infer-file parameters.

    Tasks absent from the list get an empty model identifier (or
    `return_visualization=False`), so the service never runs them.
    Model overrides fall back to the catalog defaults.
    """
    tasks = set(tasks)
    return TaskRequest(
        layout_model=(layout_model or get_task_info(Task.LAYOUT).model)
        if Task.LAYOUT in tasks else "",
        ocr_model=(ocr_model or get_task_info(Task.OCR).model)
        if Task.OCR in tasks else "",
        return_visualization=Task.VISUALIZATION in tasks,
    )
