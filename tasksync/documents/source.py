"""Access to the plain-text documents that hold the local task list."""

import os
import tempfile
from pathlib import Path
from typing import Callable, Protocol

import structlog
import yaml

log = structlog.stdlib.get_logger()

LineMutation = Callable[[list[str]], list[str]]


class DocumentError(Exception):
    """A document could not be read or written."""


class DocumentSource(Protocol):
    """What the reconciliation engine needs from the host holding the documents."""

    def list_sync_enabled(self) -> list[str]:
        """Paths of every document marked for sync."""
        ...

    def read(self, path: str) -> str:
        """Current text, including unsaved edits for the document being edited."""
        ...

    def modified_at(self, path: str) -> int:
        """Modification time in epoch milliseconds."""
        ...

    def write(self, path: str, mutate: LineMutation) -> None:
        """Apply ``mutate`` to the document's current lines, atomically or not at all."""
        ...

    def is_active(self, path: str) -> bool:
        """True for the document currently being interactively edited."""
        ...


def read_frontmatter(text: str) -> dict:
    """YAML frontmatter between leading ``---`` fences, empty when absent or invalid."""
    if not text.startswith("---"):
        return {}
    lines = text.split("\n")
    for end, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            try:
                data = yaml.safe_load("\n".join(lines[1:end]))
            except yaml.YAMLError as e:
                log.warning("invalid_frontmatter", error=str(e))
                return {}
            return data if isinstance(data, dict) else {}
    return {}


class FilesystemDocumentSource:
    """Markdown files below a root directory.

    A document takes part in sync when its frontmatter sets the sync marker
    key to ``true``. Paths are POSIX-style and relative to the root.
    """

    def __init__(
        self,
        root: str | Path,
        pattern: str = "**/*.md",
        sync_marker: str = "todoist-sync",
        active_path: str | None = None,
    ):
        self._root = Path(root)
        self._pattern = pattern
        self._sync_marker = sync_marker
        self._active_path = active_path
        log.info("document_source_initialized", root=str(self._root), pattern=pattern)

    def set_active(self, path: str | None) -> None:
        self._active_path = path

    def is_active(self, path: str) -> bool:
        return self._active_path is not None and path == self._active_path

    def list_sync_enabled(self) -> list[str]:
        paths = []
        for file_path in sorted(self._root.glob(self._pattern)):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(self._root).as_posix()
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                log.warning("unreadable_document_skipped", path=relative, error=str(e))
                continue
            if read_frontmatter(text).get(self._sync_marker) is True:
                paths.append(relative)
        return paths

    def read(self, path: str) -> str:
        try:
            return self._resolve(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentError(f"Failed to read document {path}: {e}") from e

    def modified_at(self, path: str) -> int:
        try:
            return int(self._resolve(path).stat().st_mtime * 1000)
        except OSError as e:
            raise DocumentError(f"Failed to stat document {path}: {e}") from e

    def write(self, path: str, mutate: LineMutation) -> None:
        target = self._resolve(path)
        lines = self.read(path).split("\n")
        new_lines = mutate(list(lines))
        if new_lines == lines:
            return

        try:
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write("\n".join(new_lines))
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise DocumentError(f"Failed to write document {path}: {e}") from e

        log.debug("document_written", path=path, line_count=len(new_lines))

    def _resolve(self, path: str) -> Path:
        return self._root / path
