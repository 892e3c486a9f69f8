# tests/test_orchestrator.py
# ============================================================
# Unit Tests — Document Orchestrator (per-file state machine)
# ============================================================
# Drives DocumentOrchestrator against the FakeBackend transport:
#   - stage / progress / result invariants
#   - single vs. pipeline task selection on the wire
#   - manual retry, one active run per file, clear/reset
#
# Run:
#   pytest tests/test_orchestrator.py -v
# ============================================================

import asyncio

import httpx
import pytest

from docrecon.client.api import InferenceClient
from docrecon.exceptions import InvalidTransitionError, UnknownFileError
from docrecon.pipeline.modes import ProcessingMode
from docrecon.pipeline.orchestrator import DocumentOrchestrator
from docrecon.pipeline.state import Stage
from docrecon.tasks import Task
from docrecon.utils.files import SubmittedFile

from conftest import SAMPLE_RESULT, form_field


def run(coro):
    return asyncio.run(coro)


def assert_consistent(orchestrator, file_id):
    """complete ⇔ progress 100 ⇔ a stored result."""
    state = orchestrator.get_state(file_id)
    complete = state.stage is Stage.COMPLETE
    assert complete == (state.progress == 100)
    assert complete == (file_id in orchestrator.store)


@pytest.fixture
def orchestrator(backend):
    return DocumentOrchestrator(client=backend.client())


# ============================================================
# File Table Tests
# ============================================================

class TestFileTable:
    """Test accepting, looking up and clearing files."""

    def test_accept_creates_upload_state(self, orchestrator, submitted):
        """A newly accepted file should be idle in `upload` at 0%."""
        file_id = orchestrator.accept(submitted)
        state = orchestrator.get_state(file_id)
        assert state.stage is Stage.UPLOAD
        assert state.progress == 0
        assert state.last_error is None
        assert state.filename == "scan.png"
        assert state.status_text == "Ready"
        assert orchestrator.get_file(file_id) is submitted

    def test_ids_are_stable_and_unique(self, orchestrator, submitted):
        """Each accepted file should get its own id, kept after others are cleared."""
        first = orchestrator.accept(submitted)
        second = orchestrator.accept(submitted)
        third = orchestrator.accept(submitted)
        assert len({first, second, third}) == 3

        orchestrator.clear(second)
        assert orchestrator.file_ids() == [first, third]
        assert orchestrator.get_state(third).file_id == third

    def test_unknown_file_raises(self, orchestrator):
        """Looking up an unknown id should raise UnknownFileError (a KeyError)."""
        with pytest.raises(UnknownFileError):
            orchestrator.get_state("missing")
        with pytest.raises(KeyError):
            run(orchestrator.start("missing"))


# ============================================================
# start() Tests
# ============================================================

class TestStart:
    """Test a single processing run."""

    def test_pipeline_run_completes(self, orchestrator, submitted, backend):
        """A pipeline run should end complete, at 100%, with the result stored."""
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id, ProcessingMode.PIPELINE))

        assert state.stage is Stage.COMPLETE
        assert state.progress == 100
        assert state.status_text == "Complete"
        result = orchestrator.get_result(file_id)
        assert len(result.layout.boxes) == 2
        assert len(result.ocr.tokens) == 2
        assert_consistent(orchestrator, file_id)

        (request,) = backend.calls("/infer-file")
        assert form_field(request, "layout_model") == "docling_layout_v1"
        assert form_field(request, "ocr_model") == "tesseract_default"
        assert form_field(request, "return_visualization") == "true"

    def test_pipeline_ignores_selection(self, orchestrator, submitted, backend):
        """Pipeline mode should request every task whatever the selection."""
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id, "pipeline", ["ocr"]))

        (request,) = backend.calls("/infer-file")
        assert form_field(request, "layout_model") == "docling_layout_v1"
        assert form_field(request, "return_visualization") == "true"

    def test_single_mode_only_requests_selected_tasks(self, orchestrator, submitted, backend):
        """Single mode should never send a model for an unselected task."""
        file_id = orchestrator.accept(submitted)
        state = run(orchestrator.start(file_id, "single", ["ocr"]))

        assert state.stage is Stage.COMPLETE
        (request,) = backend.calls("/infer-file")
        assert form_field(request, "layout_model") == ""
        assert form_field(request, "ocr_model") == "tesseract_default"
        assert form_field(request, "return_visualization") == "false"

    def test_configured_models_are_sent(self, backend, submitted):
        """Models passed to the orchestrator should replace the catalog defaults."""
        orchestrator = DocumentOrchestrator(
            client=backend.client(),
            layout_model="layout_v2",
            ocr_model="easyocr_en",
        )
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id, "pipeline"))

        (request,) = backend.calls("/infer-file")
        assert form_field(request, "layout_model") == "layout_v2"
        assert form_field(request, "ocr_model") == "easyocr_en"

    def test_single_mode_without_tasks_fails_before_network(self, orchestrator, submitted, backend):
        """An empty single-mode selection should fail with no request issued."""
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id, "single", []))

        assert state.stage is Stage.ERROR
        assert state.error_code == "no_tasks_selected"
        assert "Select at least one task" in state.last_error
        assert state.progress == 0
        assert backend.requests == []
        assert_consistent(orchestrator, file_id)

    def test_http_error_sets_error_state(self, orchestrator, submitted, backend):
        """A non-2xx status should leave the file in `error` with the status text."""
        backend.set("POST", "/infer-file", status=500)
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id))

        assert state.stage is Stage.ERROR
        assert state.last_error == "Internal Server Error"
        assert state.error_code == "request_failed"
        assert state.progress == 0
        assert state.is_processing is False
        assert state.status_text == "Failed"
        assert orchestrator.get_result(file_id) is None
        assert_consistent(orchestrator, file_id)

    def test_network_error_sets_error_state(self, submitted):
        """A connection failure should become an error state, not an exception."""
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = InferenceClient("http://testserver", transport=httpx.MockTransport(refuse))
        orchestrator = DocumentOrchestrator(client=client)
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id))

        assert state.stage is Stage.ERROR
        assert "connection refused" in state.last_error

    def test_malformed_payload_sets_error_state(self, orchestrator, submitted, backend):
        """A 200 with an unusable body should become an error state."""
        backend.set("POST", "/infer-file", body="not json")
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id))

        assert state.stage is Stage.ERROR
        assert state.error_code == "malformed_response"

    def test_pipeline_ignores_unknown_task_names(self, orchestrator, submitted, backend):
        """An unknown name in a pipeline selection should not stop the run."""
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id, "pipeline", ["bogus"]))

        assert state.stage is Stage.COMPLETE
        assert state.tasks == []
        assert len(backend.calls("/infer-file")) == 1

    def test_unknown_task_in_single_mode_raises(self, orchestrator, submitted, backend):
        """Single mode should reject unknown task names before any request."""
        file_id = orchestrator.accept(submitted)

        with pytest.raises(ValueError, match="Unknown task"):
            run(orchestrator.start(file_id, "single", ["bogus"]))

        assert orchestrator.get_state(file_id).stage is Stage.UPLOAD
        assert backend.requests == []

    def test_out_of_range_confidence_fails_the_file(self, orchestrator, submitted, backend):
        """A confidence outside 0–1 should fail the file as a malformed response."""
        body = dict(SAMPLE_RESULT, ocr={"tokens": [
            {"x1": 0, "y1": 0, "x2": 1, "y2": 1, "text": "x", "confidence": 1.5},
        ]})
        backend.set("POST", "/infer-file", body={"results": [body]})
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id))

        assert state.stage is Stage.ERROR
        assert state.error_code == "malformed_response"
        assert orchestrator.get_result(file_id) is None

    def test_cannot_restart_completed_file(self, orchestrator, submitted):
        """start() on a complete file should raise InvalidTransitionError."""
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id))

        with pytest.raises(InvalidTransitionError):
            run(orchestrator.start(file_id))

    def test_one_active_run_per_file(self, orchestrator, submitted, backend):
        """start() while a run is in flight should raise, then the run completes."""
        async def main():
            gate = asyncio.Event()

            async def slow(request):
                await gate.wait()
                return httpx.Response(200, json={"results": [SAMPLE_RESULT]})

            backend.on("POST", "/infer-file", slow)
            file_id = orchestrator.accept(submitted)

            run_task = asyncio.create_task(orchestrator.start(file_id))
            await asyncio.sleep(0)

            state = orchestrator.get_state(file_id)
            assert state.is_processing is True
            assert state.stage is Stage.LAYOUT
            assert state.status_text == "Processing (layout)"
            assert state.progress == 0
            assert file_id not in orchestrator.store

            with pytest.raises(InvalidTransitionError):
                await orchestrator.start(file_id)

            gate.set()
            return await run_task

        state = run(main())
        assert state.stage is Stage.COMPLETE
        assert len(backend.calls("/infer-file")) == 1

    def test_first_stage_follows_selection(self, orchestrator, submitted):
        """The run should enter the stage of the first resolved task."""
        seen = []
        orchestrator.on_change = lambda state: seen.append(state.stage)
        file_id = orchestrator.accept(submitted)

        run(orchestrator.start(file_id, "single", ["visualization", "ocr"]))

        assert seen == [Stage.VISUALIZATION, Stage.COMPLETE]

    def test_listener_errors_are_ignored(self, orchestrator, submitted):
        """A failing on_change callback should not break the run."""
        def broken(state):
            raise RuntimeError("listener exploded")

        orchestrator.on_change = broken
        file_id = orchestrator.accept(submitted)

        state = run(orchestrator.start(file_id))
        assert state.stage is Stage.COMPLETE

    def test_cleared_mid_run_discards_result(self, orchestrator, submitted, backend):
        """A result arriving after its file was cleared should not be stored."""
        async def main():
            gate = asyncio.Event()

            async def slow(request):
                await gate.wait()
                return httpx.Response(200, json={"results": [SAMPLE_RESULT]})

            backend.on("POST", "/infer-file", slow)
            file_id = orchestrator.accept(submitted)
            run_task = asyncio.create_task(orchestrator.start(file_id))
            await asyncio.sleep(0)

            orchestrator.clear(file_id)
            gate.set()
            await run_task
            return file_id

        file_id = run(main())
        assert file_id not in orchestrator.store
        assert len(orchestrator.store) == 0

    def test_cleared_mid_run_ignores_late_failure(self, orchestrator, submitted, backend):
        """A failure arriving after its file was cleared should not be reported."""
        seen = []

        async def main():
            gate = asyncio.Event()

            async def slow_failure(request):
                await gate.wait()
                return httpx.Response(500)

            backend.on("POST", "/infer-file", slow_failure)
            file_id = orchestrator.accept(submitted)
            orchestrator.on_change = lambda state: seen.append(state.stage)
            run_task = asyncio.create_task(orchestrator.start(file_id))
            await asyncio.sleep(0)

            orchestrator.clear(file_id)
            gate.set()
            return await run_task

        state = run(main())
        assert seen == [Stage.LAYOUT]
        assert state.last_error is None
        assert orchestrator.states() == []


# ============================================================
# retry() Tests
# ============================================================

class TestRetry:
    """Test manual retries from the error stage."""

    def test_retry_reuses_mode_and_tasks(self, orchestrator, submitted, backend):
        """retry() should re-run with the parameters of the failed start()."""
        backend.set("POST", "/infer-file", status=503)
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id, "single", ["layout"]))
        assert orchestrator.get_state(file_id).stage is Stage.ERROR

        backend.set("POST", "/infer-file", body={"results": [SAMPLE_RESULT]})
        state = run(orchestrator.retry(file_id))

        assert state.stage is Stage.COMPLETE
        assert state.last_error is None
        assert state.error_code is None
        assert state.mode is ProcessingMode.SINGLE
        assert state.tasks == [Task.LAYOUT]
        assert_consistent(orchestrator, file_id)

        first, second = backend.calls("/infer-file")
        for request in (first, second):
            assert form_field(request, "layout_model") == "docling_layout_v1"
            assert form_field(request, "ocr_model") == ""

    def test_retry_passes_through_upload(self, orchestrator, submitted, backend):
        """retry() should re-enter `upload` before the new run starts."""
        backend.set("POST", "/infer-file", status=500)
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id))

        seen = []
        orchestrator.on_change = lambda state: seen.append(state.stage)
        run(orchestrator.retry(file_id))

        assert seen == [Stage.UPLOAD, Stage.LAYOUT, Stage.ERROR]

    def test_retries_are_manual_and_unlimited(self, orchestrator, submitted, backend):
        """Each retry() should issue exactly one request, however many times it fails."""
        backend.set("POST", "/infer-file", status=500)
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id))

        for _ in range(3):
            state = run(orchestrator.retry(file_id))
            assert state.stage is Stage.ERROR

        assert len(backend.calls("/infer-file")) == 4

    def test_rejected_start_keeps_retry_parameters(self, orchestrator, submitted, backend):
        """A start() rejected for an unknown task should not touch mode or tasks."""
        backend.set("POST", "/infer-file", status=500)
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id, "single", ["layout"]))

        with pytest.raises(ValueError):
            run(orchestrator.start(file_id, "single", ["ocr", "bogus"]))

        state = orchestrator.get_state(file_id)
        assert state.mode is ProcessingMode.SINGLE
        assert state.tasks == [Task.LAYOUT]

        backend.set("POST", "/infer-file", body={"results": [SAMPLE_RESULT]})
        run(orchestrator.retry(file_id))
        last = backend.calls("/infer-file")[-1]
        assert form_field(last, "layout_model") == "docling_layout_v1"
        assert form_field(last, "ocr_model") == ""

    def test_retry_outside_error_raises(self, orchestrator, submitted):
        """retry() from `upload` or `complete` should raise InvalidTransitionError."""
        file_id = orchestrator.accept(submitted)
        with pytest.raises(InvalidTransitionError):
            run(orchestrator.retry(file_id))

        run(orchestrator.start(file_id))
        with pytest.raises(InvalidTransitionError):
            run(orchestrator.retry(file_id))


# ============================================================
# process_all() / reset Tests
# ============================================================

class TestProcessAll:
    """Test concurrent processing of several files."""

    def test_failures_are_isolated(self, orchestrator, backend):
        """One failing file should not affect the others."""
        def by_filename(request):
            if b'filename="bad.png"' in request.content:
                return httpx.Response(500)
            return httpx.Response(200, json={"results": [SAMPLE_RESULT]})

        backend.on("POST", "/infer-file", by_filename)
        ids = [
            orchestrator.accept(SubmittedFile(b"a", "good.png", "image/png")),
            orchestrator.accept(SubmittedFile(b"b", "bad.png", "image/png")),
            orchestrator.accept(SubmittedFile(b"c", "also-good.pdf", "application/pdf")),
        ]

        states = run(orchestrator.process_all("pipeline"))

        assert [s.file_id for s in states] == ids
        assert [s.stage for s in states] == [Stage.COMPLETE, Stage.ERROR, Stage.COMPLETE]
        for file_id in ids:
            assert_consistent(orchestrator, file_id)
        assert set(orchestrator.store.keys()) == {ids[0], ids[2]}

    def test_only_idle_files_are_started(self, orchestrator, backend):
        """Complete and failed files should be skipped."""
        done = orchestrator.accept(SubmittedFile(b"a", "done.png"))
        run(orchestrator.start(done))
        backend.set("POST", "/infer-file", status=500)
        failed = orchestrator.accept(SubmittedFile(b"b", "failed.png"))
        run(orchestrator.start(failed))
        backend.set("POST", "/infer-file", body={"results": [SAMPLE_RESULT]})
        fresh = orchestrator.accept(SubmittedFile(b"c", "fresh.png"))

        states = run(orchestrator.process_all())

        assert [s.file_id for s in states] == [fresh]
        assert orchestrator.get_state(failed).stage is Stage.ERROR

    def test_concurrency_is_bounded(self, backend):
        """No more than max_concurrent_files requests should be in flight."""
        in_flight = 0
        peak = 0

        async def tracking(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, json={"results": [SAMPLE_RESULT]})

        backend.on("POST", "/infer-file", tracking)
        orchestrator = DocumentOrchestrator(client=backend.client(), max_concurrent_files=2)
        for i in range(5):
            orchestrator.accept(SubmittedFile(b"x", f"page{i}.png"))

        states = run(orchestrator.process_all())

        assert all(s.stage is Stage.COMPLETE for s in states)
        assert peak <= 2

    def test_reset_clears_everything(self, orchestrator, submitted):
        """reset() should drop files, states and results."""
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id))
        assert len(orchestrator.store) == 1

        orchestrator.reset()

        assert orchestrator.states() == []
        assert len(orchestrator.store) == 0

    def test_clear_removes_result(self, orchestrator, submitted):
        """clear() should drop the file's stored result."""
        file_id = orchestrator.accept(submitted)
        run(orchestrator.start(file_id))

        orchestrator.clear(file_id)

        assert file_id not in orchestrator.store
        with pytest.raises(UnknownFileError):
            orchestrator.get_state(file_id)

    def test_configure_swaps_client(self, orchestrator):
        """configure() should build a client for the new URL."""
        old_client = orchestrator.client

        run(orchestrator.configure("http://other-host:9000/"))

        assert orchestrator.client is not old_client
        assert orchestrator.client.base_url == "http://other-host:9000"
        run(orchestrator.aclose())
