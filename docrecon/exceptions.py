# docrecon/exceptions.py
# ============================================================
# Error Taxonomy
# ============================================================
# Every failure the client or the orchestrator can report derives
# from DocReconError. Each class carries a short machine-readable
# `code` that the orchestrator copies into FileProcessingState.
#
#   UnreachableError: /health or /models did not succeed
#   RequestFailedError: non-2xx (or transport failure) while processing
#   MalformedResponseError: 2xx body that is not a ProcessingResult
#   NoResultsReturnedError: /infer answered with an empty collection
#   NoTasksSelectedError: single mode started with no tasks
#   InvalidTransitionError: start/retry called from the wrong stage
#   UnknownFileError: file id was never accepted (or was cleared)
# ============================================================

from typing import Optional


class DocReconError(Exception):
    """Base exception for the docrecon package."""

    code = "error"


class UnreachableError(DocReconError):
    """Raised when the inference service does not answer a health/model request."""

    code = "unreachable"


class RequestFailedError(DocReconError):
    """
    Raised when a processing request fails.

    The message is the server's status text (e.g. "Internal Server Error")
    when an HTTP response was received, otherwise the transport error.
    """

    code = "request_failed"

    def __init__(self, status_text: str, status_code: Optional[int] = None):
        super().__init__(status_text)
        self.status_text = status_text
        self.status_code = status_code


class MalformedResponseError(RequestFailedError):
    """Raised when a successful response cannot be decoded into a result."""

    code = "malformed_response"


class NoResultsReturnedError(DocReconError):
    """Raised when the base64 inference path returns an empty result list."""

    code = "no_results"

    def __init__(self, message: str = "No results returned from API"):
        super().__init__(message)


class NoTasksSelectedError(DocReconError):
    """Raised when single-task mode is started without any selected task."""

    code = "no_tasks_selected"

    def __init__(self, message: str = "Select at least one task to proceed"):
        super().__init__(message)


class InvalidTransitionError(DocReconError):
    """Raised when an operation is not allowed from the file's current stage."""

    code = "invalid_transition"


class UnknownFileError(DocReconError, KeyError):
    """Raised when a file id is not registered with the orchestrator."""

    code = "unknown_file"

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0]) if self.args else ""
