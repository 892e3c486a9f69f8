# docrecon/pipeline/state.py
# ============================================================
# Per-File Processing State
# ============================================================
# One FileProcessingState per accepted file. Only the orchestrator
# run that owns the file mutates it; the CLI (or any other front
# end) reads `stage`, `progress` and `last_error`.
#
#   upload → {layout | ocr | visualization} → complete
#      ↑                    ↓
#      └──── retry ──── error
# ============================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from docrecon.pipeline.modes import ProcessingMode
from docrecon.tasks import Task


class Stage(str, Enum):
    UPLOAD = "upload"
    LAYOUT = "layout"
    OCR = "ocr"
    VISUALIZATION = "visualization"
    COMPLETE = "complete"
    ERROR = "error"

    @classmethod
    def for_task(cls, task: Task) -> "Stage":
        return cls(task.value)


@dataclass
class FileProcessingState:
    """
    Mutable progress record for one file.

    Attributes:
        file_id: Stable identity assigned when the file was accepted.
        filename: Display name of the file.
        stage: Current stage of the state machine.
        progress: 0–100; exactly 100 when the stage is COMPLETE.
        last_error: Human-readable message of the last failure, if any.
        error_code: Machine-readable kind of the last failure, if any.
        mode: Mode supplied to the last start(), reused by retry().
        tasks: Selection of the last single-mode start(), reused by retry().
               Empty in pipeline mode, where the selection is ignored.
        is_processing: True while a request for this file is in flight.
    """
    file_id: str
    filename: str
    stage: Stage = Stage.UPLOAD
    progress: int = 0
    last_error: Optional[str] = None
    error_code: Optional[str] = None
    mode: Optional[ProcessingMode] = None
    tasks: list[Task] = field(default_factory=list)
    is_processing: bool = False

    @property
    def status_text(self) -> str:
        """Short status label for display ("Ready", "Processing (ocr)", ...)."""
        if self.stage is Stage.ERROR:
            return "Failed"
        if self.stage is Stage.COMPLETE:
            return "Complete"
        if self.is_processing:
            return f"Processing ({self.stage.value})"
        return "Ready"
