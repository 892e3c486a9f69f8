# docrecon/tasks.py
# ============================================================
# Task Catalog
# ============================================================
# The Reconstruction Backend can run three tasks on a page. This
# module is the single source for their labels and the model each
# one requests by default.
#
# Usage:
#   from docrecon.tasks import Task, get_task_info
#   get_task_info(Task.OCR).model   # "tesseract_default"
# ============================================================

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union


class Task(str, Enum):
    """
    Processing tasks offered by the service.

    - LAYOUT: detect document regions (title, text block, table, ...)
    - OCR: extract text tokens and their positions
    - VISUALIZATION: server-rendered overlay of the detected regions
    """
    LAYOUT = "layout"
    OCR = "ocr"
    VISUALIZATION = "visualization"


@dataclass(frozen=True)
class TaskInfo:
    task: Task
    name: str
    description: str
    model: str


TASK_CATALOG: dict[Task, TaskInfo] = {
    Task.LAYOUT: TaskInfo(
        task=Task.LAYOUT,
        name="Layout Detection",
        description="Detect document structure and regions",
        model="docling_layout_v1",
    ),
    Task.OCR: TaskInfo(
        task=Task.OCR,
        name="OCR Processing",
        description="Extract text from document regions",
        model="tesseract_default",
    ),
    # Rendered by the service itself, no model to pick
    Task.VISUALIZATION: TaskInfo(
        task=Task.VISUALIZATION,
        name="Visualization",
        description="Generate overlay images with detected regions",
        model="built-in",
    ),
}


def get_task_info(task: Union[Task, str]) -> TaskInfo:
    """
    Look up the catalog entry for a task.

    Raises:
        ValueError: If the task is not recognized.
    """
    try:
        return TASK_CATALOG[Task(task)]
    except ValueError:
        raise ValueError(
            f"Unknown task: {task}. Available tasks: {list_tasks()}"
        ) from None


def list_tasks() -> list[str]:
    """All task names, in catalog order."""
    return [task.value for task in Task]


def parse_tasks(values: Iterable[Union[Task, str]]) -> list[Task]:
    """
    Convert user-supplied task names into Task values.

    Order is preserved and duplicates are dropped (first occurrence wins).

    Raises:
        ValueError: If any value is not a known task.
    """
    tasks: list[Task] = []
    for value in values:
        task = get_task_info(value).task
        if task not in tasks:
            tasks.append(task)
    return tasks
