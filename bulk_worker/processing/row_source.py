from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from bulk_worker.processing.exceptions import MalformedSourceError, RowSourceError


def resolve_row_source(files_root: Path, reference: str) -> Path:
    """Relative references are resolved under files_root; absolute ones are used as-is."""
    path = Path(reference)
    if not path.is_absolute():
        path = files_root / path
    return path


class RowSourceOpener:
    """Opens the CSV a job message points at as a text stream."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    @contextmanager
    def open(self, reference: str) -> Generator[TextIO, None, None]:
        """Yield a text stream over the CSV. A leading BOM is stripped.

        Raises:
            MalformedSourceError: if the job carries no row source reference.
            RowSourceError: if the file does not exist or cannot be opened.
        """
        if not reference or not reference.strip():
            raise MalformedSourceError("Job has no row source")
        path = resolve_row_source(self._files_root, reference)
        if not path.exists():
            raise RowSourceError(f"File not found: {path}")
        try:
            stream = path.open("r", encoding="utf-8-sig", newline="")
        except OSError as exc:
            raise RowSourceError(f"Cannot open {path}: {exc}") from exc
        with stream:
            yield stream
