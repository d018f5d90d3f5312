"""
EditorSession - Caller-owned editing state on top of the registry.

The registry only exposes name-keyed operations. Which allocator is open and
whether the buffer has unsaved changes belongs to the caller; this class is
that caller-side state for one editor (CLI, GUI window, notebook).
"""

import logging
from typing import Optional

from allocman.errors import UnsavedChangesError
from allocman.registry import AllocatorRegistry
from allocman.schemas import CompileOutcome, SourceRecord

logger = logging.getLogger(__name__)


class EditorSession:
    """
    One editing session over an AllocatorRegistry.

    At most one allocator is open at a time. Opening or creating another
    allocator while the buffer is modified raises UnsavedChangesError
    unless the caller saves or discards first.
    """

    def __init__(self, registry: AllocatorRegistry):
        self._registry = registry
        self._current: Optional[str] = None
        self._text: str = ""
        self._modified = False

    @property
    def current(self) -> Optional[str]:
        """Name of the open allocator, or None."""
        return self._current

    @property
    def text(self) -> str:
        return self._text

    @property
    def modified(self) -> bool:
        return self._modified

    def _require_open(self) -> str:
        if self._current is None:
            raise RuntimeError("No allocator is open")
        return self._current

    def _check_unsaved(self) -> None:
        if self._modified:
            raise UnsavedChangesError(f"Unsaved changes to {self._current}")

    def new(self, name: str, text: Optional[str] = None) -> SourceRecord:
        """Create an allocator and open it."""
        self._check_unsaved()
        record = self._registry.create(name, text)
        self._load(name)
        return record

    def open(self, name: str) -> str:
        """Open an allocator, loading its persisted text into the buffer."""
        self._check_unsaved()
        return self._load(name)

    def _load(self, name: str) -> str:
        self._text = self._registry.open(name)
        self._current = name
        self._modified = False
        return self._text

    def edit(self, text: str) -> None:
        """Replace the buffer text."""
        name = self._require_open()
        self._registry.edit(name, text)
        self._text = text
        self._modified = True

    def save(self) -> Optional[SourceRecord]:
        """Persist the buffer. No-op when nothing changed."""
        name = self._require_open()
        if not self._modified:
            return None
        record = self._registry.save(name)
        self._modified = False
        return record

    def compile(self) -> CompileOutcome:
        """Save if needed, then compile the open allocator."""
        name = self._require_open()
        outcome = self._registry.compile(name)
        self._modified = False
        return outcome

    def delete(self, name: str) -> bool:
        """
        Delete an allocator through the registry.

        Returns:
            True if the deleted allocator was the open one (the session
            is closed in that case)
        """
        must_close = self._registry.delete(name, open_name=self._current)
        if must_close:
            logger.debug(f"Closing session on deleted allocator {name}")
            self._reset()
        return must_close

    def close(self, discard: bool = False) -> None:
        """
        Close the open allocator.

        Args:
            discard: Drop unsaved changes instead of refusing to close

        Raises:
            UnsavedChangesError: If modified and discard is False
        """
        if self._current is None:
            return
        if self._modified:
            if not discard:
                raise UnsavedChangesError(f"Unsaved changes to {self._current}")
            self._registry.revert(self._current)
        self._reset()

    def _reset(self) -> None:
        self._current = None
        self._text = ""
        self._modified = False
