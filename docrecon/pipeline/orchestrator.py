# docrecon/pipeline/orchestrator.py
# ============================================================
# Document Orchestrator — Per-File Processing State Machine
# ============================================================
# Accepts submitted files, drives the inference client for each
# one, tracks stage/progress/error per file and hands completed
# results to the ResultStore.
#
# Design Decisions:
#   1. Files are keyed by a stable id (uuid4 hex), never by their
#      position in a list, so clearing one file does not shift the
#      others.
#   2. One active run per file. start() refuses a file that is in
#      flight; there is no cancellation, so clearing a file while
#      its request is in flight only discards the late result.
#   3. Retries are manual. A failed file stays in `error` until the
#      caller invokes retry(); there is no backoff and no limit.
#   4. Failures of the remote call become state, not exceptions:
#      start()/retry() return the FileProcessingState either way.
#
# Usage:
#   async with DocumentOrchestrator() as orchestrator:
#       file_id = orchestrator.accept(load_submitted_file("scan.pdf"))
#       state = await orchestrator.start(file_id, "pipeline")
#       if state.stage is Stage.COMPLETE:
#           result = orchestrator.store.get(file_id)
# ============================================================

import asyncio
import uuid
from typing import Callable, Iterable, Optional, Union

from docrecon.client.api import InferenceClient
from docrecon.client.schemas import ProcessingResult
from docrecon.config.settings import settings
from docrecon.exceptions import (
    DocReconError,
    InvalidTransitionError,
    NoTasksSelectedError,
    UnknownFileError,
)
from docrecon.pipeline.modes import ProcessingMode, build_request, resolve_tasks
from docrecon.pipeline.state import FileProcessingState, Stage
from docrecon.pipeline.store import ResultStore
from docrecon.tasks import Task
from docrecon.utils.files import SubmittedFile
from docrecon.utils.logger import get_logger

logger = get_logger(__name__)

StateListener = Callable[[FileProcessingState], None]


class DocumentOrchestrator:
    """
    Coordinates processing runs for every submitted file.

    Flow per file:
        1. accept() → state `upload`, progress 0
        2. start()  → mode policy resolves tasks → first task stage
        3. InferenceClient.process_file() (one round trip for all tasks)
        4. success → ResultStore.put(), state `complete`, progress 100
           failure → state `error`, last_error set, progress unchanged

    Observers:
        Pass `on_change` to be called with the FileProcessingState after
        every transition. A progress bar or status badge can be driven
        from it; the orchestrator itself renders nothing.

    Example:
        >>> orchestrator = DocumentOrchestrator(on_change=print)
        >>> file_id = orchestrator.accept(submitted)
        >>> state = await orchestrator.start(file_id, "single", ["ocr"])
    """

    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        store: Optional[ResultStore] = None,
        on_change: Optional[StateListener] = None,
        layout_model: Optional[str] = None,
        ocr_model: Optional[str] = None,
        max_concurrent_files: Optional[int] = None,
    ):
        """
        Initialize the orchestrator.

        If not provided, a client and store are created using settings.

        Args:
            client: Pre-configured InferenceClient instance.
            store: ResultStore to write completed results into.
            on_change: Optional callback invoked after each state transition.
            layout_model: Layout model requested when the layout task runs.
            ocr_model: OCR model requested when the OCR task runs.
            max_concurrent_files: Concurrency bound for process_all().
        """
        self.client = client or InferenceClient()
        self.store = store or ResultStore()
        self.on_change = on_change
        self.layout_model = layout_model or settings.layout_model
        self.ocr_model = ocr_model or settings.ocr_model
        self.max_concurrent_files = max_concurrent_files or settings.max_concurrent_files

        self._files: dict[str, SubmittedFile] = {}
        self._states: dict[str, FileProcessingState] = {}

        logger.info(
            f"DocumentOrchestrator initialized — backend: [bold]{self.client.base_url}[/bold]"
        )

    async def __aenter__(self) -> "DocumentOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def configure(self, base_url: str, timeout: Optional[float] = None) -> None:
        """
        Point the orchestrator at another deployment.

        A new InferenceClient is built for `base_url`; the old one is
        closed. Not allowed while any request is in flight.

        Raises:
            InvalidTransitionError: If a run is in progress.
        """
        if any(state.is_processing for state in self._states.values()):
            raise InvalidTransitionError(
                "Cannot change the backend URL while files are being processed"
            )
        old_client = self.client
        self.client = InferenceClient(base_url=base_url, timeout=timeout)
        await old_client.aclose()
        logger.info(f"Backend URL set to [bold]{self.client.base_url}[/bold]")

    # ------------------------------------------------------------
    # File table
    # ------------------------------------------------------------

    def accept(self, file: SubmittedFile) -> str:
        """Register a file for processing and return its id."""
        file_id = uuid.uuid4().hex
        self._files[file_id] = file
        self._states[file_id] = FileProcessingState(
            file_id=file_id,
            filename=file.filename,
        )
        logger.info(
            f"Accepted [bold]{file.filename}[/bold] ({file.size_label}) as {file_id}"
        )
        return file_id

    def get_state(self, file_id: str) -> FileProcessingState:
        try:
            return self._states[file_id]
        except KeyError:
            raise UnknownFileError(f"Unknown file id: {file_id}") from None

    def get_file(self, file_id: str) -> SubmittedFile:
        try:
            return self._files[file_id]
        except KeyError:
            raise UnknownFileError(f"Unknown file id: {file_id}") from None

    def get_result(self, file_id: str) -> Optional[ProcessingResult]:
        self.get_state(file_id)
        return self.store.get(file_id)

    def states(self) -> list[FileProcessingState]:
        """States of all accepted files, in acceptance order."""
        return list(self._states.values())

    def file_ids(self) -> list[str]:
        return list(self._states)

    def clear(self, file_id: str) -> None:
        """Forget a file: its payload, its state and its result."""
        self.get_state(file_id)
        del self._files[file_id]
        del self._states[file_id]
        self.store.discard(file_id)
        logger.info(f"Cleared {file_id}")

    def reset(self) -> None:
        """Forget every file and every stored result."""
        self._files.clear()
        self._states.clear()
        self.store.clear()
        logger.info("Session reset")

    # ------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------

    async def submit(
        self,
        file: SubmittedFile,
        mode: Union[ProcessingMode, str] = ProcessingMode.PIPELINE,
        selected_tasks: Iterable[Union[Task, str]] = (),
    ) -> FileProcessingState:
        """accept() followed by start()."""
        file_id = self.accept(file)
        return await self.start(file_id, mode, selected_tasks)

    async def start(
        self,
        file_id: str,
        mode: Union[ProcessingMode, str] = ProcessingMode.PIPELINE,
        selected_tasks: Iterable[Union[Task, str]] = (),
    ) -> FileProcessingState:
        """
        Run processing for one file.

        Args:
            file_id: Id returned by accept().
            mode: "pipeline" runs layout, OCR and visualization; "single"
                  runs exactly `selected_tasks`.
            selected_tasks: Task selection for single mode.

        Returns:
            The file's state, now `complete` or `error`.

        Raises:
            UnknownFileError: If the file id is not registered.
            InvalidTransitionError: If the file is in flight or already complete.
            ValueError: Unknown mode, or unknown task name in single mode.
        """
        state = self.get_state(file_id)
        if state.is_processing:
            raise InvalidTransitionError(
                f"{state.filename} is already being processed"
            )
        if state.stage is Stage.COMPLETE:
            raise InvalidTransitionError(f"{state.filename} is already complete")

        mode = ProcessingMode(mode)
        tasks = resolve_tasks(mode, selected_tasks)

        # Remembered for retry() only once both are known to be valid
        state.mode = mode
        state.tasks = tasks if mode is ProcessingMode.SINGLE else []

        if not tasks:
            # Precondition: never reaches the network
            self._fail(state, NoTasksSelectedError())
            return state

        file = self._files[file_id]
        request = build_request(tasks, self.layout_model, self.ocr_model)

        state.stage = Stage.for_task(tasks[0])
        state.progress = 0
        state.last_error = None
        state.error_code = None
        state.is_processing = True
        self._notify(state)

        logger.info(
            f"Run started — [bold]{state.filename}[/bold], mode: {mode.value}, "
            f"tasks: {[t.value for t in tasks]}"
        )

        try:
            result = await self.client.process_file(
                file,
                layout_model=request.layout_model,
                ocr_model=request.ocr_model,
                return_visualization=request.return_visualization,
            )
        except DocReconError as e:
            state.is_processing = False
            if self._was_cleared(file_id, state):
                logger.warning(
                    f"Ignoring failure for {state.filename}: file was cleared mid-run ({e})"
                )
                return state
            self._fail(state, e)
            return state

        state.is_processing = False
        if self._was_cleared(file_id, state):
            logger.warning(
                f"Discarding result for {state.filename}: file was cleared mid-run"
            )
            return state

        self.store.put(file_id, result)
        state.stage = Stage.COMPLETE
        state.progress = 100
        self._notify(state)

        logger.info(
            f"Run complete — [bold]{state.filename}[/bold]: "
            f"{len(result.layout.boxes)} regions, {len(result.ocr.tokens)} tokens"
        )
        return state

    async def retry(self, file_id: str) -> FileProcessingState:
        """
        Re-run a failed file with the mode and tasks of its last start().

        Raises:
            UnknownFileError: If the file id is not registered.
            InvalidTransitionError: If the file is not in the `error` stage.
        """
        state = self.get_state(file_id)
        if state.stage is not Stage.ERROR:
            raise InvalidTransitionError(
                f"Retry is only possible after a failure "
                f"({state.filename} is in stage '{state.stage.value}')"
            )

        logger.info(f"Retrying [bold]{state.filename}[/bold]")
        state.stage = Stage.UPLOAD
        state.last_error = None
        state.error_code = None
        self._notify(state)

        return await self.start(
            file_id,
            state.mode or ProcessingMode.PIPELINE,
            state.tasks,
        )

    async def process_all(
        self,
        mode: Union[ProcessingMode, str] = ProcessingMode.PIPELINE,
        selected_tasks: Iterable[Union[Task, str]] = (),
    ) -> list[FileProcessingState]:
        """
        Start every file that has not been processed yet, concurrently.

        Files already in flight, complete or failed are left untouched.
        Concurrency is bounded by `max_concurrent_files`.

        Returns:
            States of the files that were started, in acceptance order.
        """
        selected_tasks = list(selected_tasks)
        idle = [
            file_id for file_id, state in self._states.items()
            if state.stage is Stage.UPLOAD and not state.is_processing
        ]
        if not idle:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrent_files)

        async def _run(file_id: str) -> FileProcessingState:
            async with semaphore:
                return await self.start(file_id, mode, selected_tasks)

        logger.info(
            f"Processing {len(idle)} files "
            f"(max {self.max_concurrent_files} concurrent)"
        )
        return list(await asyncio.gather(*[_run(file_id) for file_id in idle]))

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _was_cleared(self, file_id: str, state: FileProcessingState) -> bool:
        return self._states.get(file_id) is not state

    def _fail(self, state: FileProcessingState, error: DocReconError) -> None:
        state.stage = Stage.ERROR
        state.last_error = str(error) or type(error).__name__
        state.error_code = error.code
        logger.error(f"Run failed — [bold]{state.filename}[/bold]: {state.last_error}")
        self._notify(state)

    def _notify(self, state: FileProcessingState) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(state)
        except Exception as e:
            logger.warning(f"State listener failed for {state.filename}: {e}")
