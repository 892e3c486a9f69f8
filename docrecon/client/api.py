# docrecon/client/api.py
# ============================================================
# Inference Client — Reconstruction Backend over HTTP
# ============================================================
# Thin async wrapper around the four operations of the remote
# layout/OCR service:
#
#   GET  /health      → HealthStatus
#   GET  /models      → ModelsResponse
#   POST /infer-file  → ProcessingResult   (multipart upload)
#   POST /infer       → ProcessingResult   (base64 JSON payload)
#
# Every call is an independent round trip: no caching, no retries.
# The base URL belongs to the instance; to point at another
# deployment, build another client.
#
# Usage:
#   async with InferenceClient("http://localhost:8000") as client:
#       result = await client.process_file(submitted)
# ============================================================

import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from docrecon.client.schemas import (
    APIResponse,
    HealthStatus,
    ModelsResponse,
    ProcessingResult,
)
from docrecon.config.settings import settings
from docrecon.exceptions import (
    MalformedResponseError,
    NoResultsReturnedError,
    RequestFailedError,
    UnreachableError,
)
from docrecon.tasks import Task, get_task_info
from docrecon.utils.files import SubmittedFile
from docrecon.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LAYOUT_MODEL = get_task_info(Task.LAYOUT).model
DEFAULT_OCR_MODEL = get_task_info(Task.OCR).model


class InferenceClient:
    """
    Stateless client for the Reconstruction Backend.

    Args:
        base_url: Service root, e.g. "http://localhost:8000". Default: from settings.
        timeout: HTTP timeout in seconds. Default: from settings.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api_timeout_s
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )
        logger.debug(f"InferenceClient initialized — {self.base_url}")

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------

    async def health_check(self) -> HealthStatus:
        """
        Check that the service is up.

        Raises:
            UnreachableError: On transport failure, non-2xx status or bad body.
        """
        body = await self._get_json("/health", "Health check failed")
        try:
            return HealthStatus.model_validate(body)
        except ValidationError as e:
            raise UnreachableError(f"Health check failed: {e}") from e

    async def list_models(self) -> ModelsResponse:
        """
        List the layout and OCR models the service can run.

        Raises:
            UnreachableError: On transport failure, non-2xx status or bad body.
        """
        body = await self._get_json("/models", "Failed to get models")
        try:
            return ModelsResponse.model_validate(body)
        except ValidationError as e:
            raise UnreachableError(f"Failed to get models: {e}") from e

    async def check_connection(self) -> ModelsResponse:
        """Health check followed by model listing."""
        status = await self.health_check()
        logger.info(f"Connected to {self.base_url} — status: {status.status}")
        return await self.list_models()

    # ------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------

    async def process_file(
        self,
        file: SubmittedFile,
        layout_model: str = DEFAULT_LAYOUT_MODEL,
        ocr_model: str = DEFAULT_OCR_MODEL,
        return_visualization: bool = True,
    ) -> ProcessingResult:
        """
        Upload a file to /infer-file.

        An empty model identifier tells the service to skip that stage.

        The response is normalized to one ProcessingResult: the first
        element of `results` when present and non-empty, otherwise the
        top-level fields with empty layout/OCR defaults.

        Raises:
            RequestFailedError: Non-2xx status (message = status text) or
                transport failure.
            MalformedResponseError: Body is not JSON or does not match the schema.
        """
        files = {"file": (file.filename, file.content, file.content_type)}
        data = {
            "layout_model": layout_model or "",
            "ocr_model": ocr_model or "",
            "return_visualization": "true" if return_visualization else "false",
        }

        logger.info(
            f"Processing [bold]{file.filename}[/bold] — "
            f"layout: {layout_model or '-'}, ocr: {ocr_model or '-'}, "
            f"visualization: {return_visualization}"
        )
        response = await self._post("/infer-file", files=files, data=data)
        api_response = self._decode(response)

        return api_response.first_result() or api_response.flat_result()

    async def process_image(
        self,
        image_b64: str,
        image_id: str = "page1",
        layout_model: str = DEFAULT_LAYOUT_MODEL,
        ocr_model: str = DEFAULT_OCR_MODEL,
        return_visualization: bool = True,
    ) -> ProcessingResult:
        """
        Send a base64 image to /infer.

        Unlike process_file there is no single-object fallback: the
        service must answer with a non-empty `results` collection.

        Raises:
            RequestFailedError: Non-2xx status or transport failure.
            MalformedResponseError: Body is not JSON or does not match the schema.
            NoResultsReturnedError: `results` is missing or empty.
        """
        payload = {
            "inputs": [
                {
                    "image_id": image_id,
                    "image_b64": image_b64,
                }
            ],
            "layout_model": layout_model or "",
            "ocr_model": ocr_model or "",
            "params": {
                "layout": {},
                "ocr": {},
            },
            "return_visualization": return_visualization,
        }

        logger.info(f"Processing base64 image [bold]{image_id}[/bold]")
        response = await self._post("/infer", json=payload)
        result = self._decode(response).first_result()
        if result is None:
            raise NoResultsReturnedError()
        return result

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    async def _get_json(self, path: str, failure: str) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            logger.error(f"GET {path} failed: {e}")
            raise UnreachableError(f"{failure}: {e}") from e

        if not response.is_success:
            logger.error(f"GET {path} → {response.status_code} {response.reason_phrase}")
            raise UnreachableError(f"{failure}: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise UnreachableError(f"{failure}: invalid JSON body") from e

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        start_time = time.perf_counter()
        try:
            response = await self._client.post(path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"POST {path} failed: {e}")
            raise RequestFailedError(str(e) or type(e).__name__) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        if not response.is_success:
            logger.error(
                f"POST {path} → {response.status_code} {response.reason_phrase} "
                f"({latency_ms:.0f}ms)"
            )
            raise RequestFailedError(response.reason_phrase, response.status_code)

        logger.debug(f"POST {path} → {response.status_code} ({latency_ms:.0f}ms)")
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> APIResponse:
        try:
            return APIResponse.model_validate(response.json())
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise MalformedResponseError(
                f"Malformed response from {response.request.url.path}: {e}",
                response.status_code,
            ) from e
