# docrecon/pipeline/store.py
# ============================================================
# Result Store & Aggregator
# ============================================================
# Holds completed ProcessingResults keyed by file id, in insertion
# order, for the lifetime of the session. Nothing is evicted; the
# front end clears entries explicitly.
#
# Usage:
#   store = ResultStore()
#   store.put(file_id, result)
#   store.save_json("output/results.json")
# ============================================================

import json
import time
from pathlib import Path
from typing import Iterator, Optional, Union

from docrecon.client.schemas import ProcessingResult
from docrecon.utils.logger import get_logger

logger = get_logger(__name__)


def full_text(result: ProcessingResult) -> str:
    """
    Join the text of every OCR token with single spaces, in sequence order.

    Example:
        tokens "Sample", "Title", "This", "is", "text"
        → "Sample Title This is text"
    """
    return " ".join(token.text for token in result.ocr.tokens)


class ResultStore:
    """In-memory, insertion-ordered mapping of file id → ProcessingResult."""

    def __init__(self):
        self._results: dict[str, ProcessingResult] = {}

    def put(self, key: str, result: ProcessingResult) -> None:
        """Store a result. A later write for the same key replaces the earlier one."""
        replaced = key in self._results
        self._results[key] = result
        logger.debug(
            f"{'Replaced' if replaced else 'Stored'} result for {key} "
            f"(total: {len(self._results)})"
        )

    def get(self, key: str) -> Optional[ProcessingResult]:
        return self._results.get(key)

    def get_all(self) -> list[ProcessingResult]:
        return list(self._results.values())

    def keys(self) -> list[str]:
        return list(self._results)

    def discard(self, key: str) -> None:
        self._results.pop(key, None)

    def clear(self) -> None:
        self._results.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    full_text = staticmethod(full_text)

    # ------------------------------------------------------------
    # Export
    # ------------------------------------------------------------

    def export_json(self, key: Optional[str] = None) -> bytes:
        """
        Serialize results as UTF-8 JSON.

        Args:
            key: Export only this file's result (a JSON object). When
                 omitted, the whole collection is exported as an array.

        Raises:
            KeyError: If `key` has no stored result.
        """
        if key is not None:
            data = self._results[key].model_dump(mode="json", exclude_none=True)
        else:
            data = [
                result.model_dump(mode="json", exclude_none=True)
                for result in self._results.values()
            ]
        return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

    def export_filename(self, key: Optional[str] = None) -> str:
        """
        Default download name for an export.

        The collection is named after the current time in milliseconds;
        a single result after its file name (or its key).
        """
        if key is None:
            return f"ocr-results-{int(time.time() * 1000)}.json"
        result = self._results[key]
        return f"results_{result.filename or f'file_{key}'}.json"

    def save_json(
        self,
        output_path: Union[str, Path],
        key: Optional[str] = None,
    ) -> str:
        """
        Write export_json() to a file.

        Args:
            output_path: Destination file, or an existing directory (the
                         file is then named by export_filename()).
            key: Optional single file to export.

        Returns:
            The absolute path to the saved file.
        """
        output_path = Path(output_path)
        if output_path.is_dir():
            output_path = output_path / self.export_filename(key)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        output_path.write_bytes(self.export_json(key))
        logger.info(f"Saved JSON to [bold]{output_path}[/bold]")
        return str(output_path.resolve())
