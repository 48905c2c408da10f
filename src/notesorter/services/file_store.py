"""JSON file document store.

Keeps the whole document set in ``documents.json`` and the profile blob in
``profile.json`` inside one directory. Every mutation rewrites the affected
file with a temp-file-rename so a crash never leaves a half-written file.
"""

import json
import os
from pathlib import Path
from typing import Any

from notesorter.models.document import Document
from notesorter.services.store import InMemoryDocumentStore
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)


def atomic_write(path: Path, content: str) -> None:
    """
    Atomically write content to file with temp-file-rename pattern.

    1. Write to temporary file in the same directory
    2. fsync to ensure data is on disk
    3. Atomic rename to replace original file

    Args:
        path: Target file path
        content: Content to write

    Raises:
        OSError: On file I/O errors
        PermissionError: On permission errors
    """
    # Same directory keeps the rename on one filesystem
    temp_path = path.parent / f".{path.name}.tmp.{os.getpid()}"

    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(path)

        logger.debug(
            "atomic_write_success",
            path=str(path),
            size=len(content)
        )

    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        logger.error(
            "atomic_write_failed",
            path=str(path),
            error=str(e)
        )
        raise


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Document store persisted as JSON files in a directory.

    Example:
        >>> store = JsonFileDocumentStore(Path("~/.local/share/notesorter").expanduser())
        >>> doc_id = await store.create({"title": "Scratch"})
    """

    DOCUMENTS_FILE = "documents.json"
    PROFILE_FILE = "profile.json"

    def __init__(self, directory: Path):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.reload()

    @property
    def documents_path(self) -> Path:
        return self.directory / self.DOCUMENTS_FILE

    @property
    def profile_path(self) -> Path:
        return self.directory / self.PROFILE_FILE

    def reload(self) -> None:
        """Re-read both files, dropping any in-memory state."""
        self._documents = {}
        self._profile = {}
        if self.documents_path.exists():
            raw = json.loads(self.documents_path.read_text(encoding="utf-8") or "[]")
            for item in raw:
                document = Document.model_validate(item)
                self._documents[document.id] = document
        if self.profile_path.exists():
            self._profile = json.loads(self.profile_path.read_text(encoding="utf-8") or "{}")

        logger.info(
            "file_store_loaded",
            directory=str(self.directory),
            document_count=len(self._documents),
        )

    async def _persist(self) -> None:
        documents: list[dict[str, Any]] = [
            d.model_dump(mode="json", by_alias=True) for d in self._documents.values()
        ]
        atomic_write(self.documents_path, json.dumps(documents, indent=2, ensure_ascii=False))
        atomic_write(self.profile_path, json.dumps(self._profile, indent=2, ensure_ascii=False))
