"""
SourceStore - Persist allocator source text by name.

The SourceStore manages only text. Compile state lives in the registry and
is never persisted, so a restart sees every allocator as uncompiled.

Storage backends:
- In-memory (for testing)
- File-based (one <name>.py per allocator in a directory)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from allocman.errors import AllocatorImportError, IOFailure, NotFoundError
from allocman.names import derive_name
from allocman.utils import atomic_write_text

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"


class SourceStore(ABC):
    """
    Abstract base class for allocator source storage.

    Name validation is the caller's job: the store persists whatever name it
    is given, so the importer and registry validate before calling write().
    """

    @abstractmethod
    def list(self) -> list[str]:
        """
        List all persisted allocator names.

        Returns:
            Sorted list of names (order is for display only)
        """
        pass

    @abstractmethod
    def read(self, name: str) -> str:
        """
        Read the persisted text for an allocator.

        Raises:
            NotFoundError: If no text is persisted under name
            IOFailure: If the storage layer fails
        """
        pass

    @abstractmethod
    def write(self, name: str, text: str) -> None:
        """
        Create or overwrite the text for an allocator.

        Readers never observe a partially written text.

        Raises:
            IOFailure: If the storage layer fails
        """
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """
        Remove the text for an allocator.

        Returns:
            False if name was absent, True once fully removed

        Raises:
            IOFailure: If the storage layer fails
        """
        pass

    def exists(self, name: str) -> bool:
        return name in self.list()

    def load_external(self, external_path: Union[str, Path]) -> tuple[str, str]:
        """
        Read an external allocator source without storing it.

        Args:
            external_path: Path to a source file anywhere on disk

        Returns:
            (derived_name, text) where derived_name is the file name
            without its extension

        Raises:
            AllocatorImportError: If the file cannot be read as UTF-8 text
        """
        path = Path(external_path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AllocatorImportError(f"Cannot import {path}: {e}") from e
        return derive_name(path), text

    def import_from(self, external_path: Union[str, Path]) -> tuple[str, str]:
        """
        Copy an external allocator source into the store.

        The derived name is not validated here; callers validate it first
        (see Importer).

        Returns:
            (derived_name, text)
        """
        name, text = self.load_external(external_path)
        self.write(name, text)
        return name, text


class InMemorySourceStore(SourceStore):
    """
    In-memory implementation of SourceStore for testing.

    All data is lost when the instance is garbage collected.
    """

    def __init__(self):
        self._texts: dict[str, str] = {}

    def list(self) -> list[str]:
        return sorted(self._texts)

    def read(self, name: str) -> str:
        if name not in self._texts:
            raise NotFoundError(name)
        return self._texts[name]

    def write(self, name: str, text: str) -> None:
        self._texts[name] = text

    def delete(self, name: str) -> bool:
        return self._texts.pop(name, None) is not None

    def exists(self, name: str) -> bool:
        return name in self._texts

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        self._texts.clear()


class FileSourceStore(SourceStore):
    """
    File-based implementation of SourceStore.

    Stores one file per allocator:
        allocators_dir/
            RoundRobin.py
            FirstFit.py

    The file name is the allocator name plus ``.py``, so listing the
    directory reconstructs every name. Temporary files used for atomic
    writes are dot-prefixed and never listed.
    """

    def __init__(self, allocators_dir: Union[Path, str]):
        self._dir = Path(allocators_dir)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create allocators directory {self._dir}: {e}", e) from e

    @property
    def directory(self) -> Path:
        """Get the allocators directory path."""
        return self._dir

    def path_for(self, name: str) -> Path:
        """Storage location for an allocator name."""
        return self._dir / f"{name}{SOURCE_SUFFIX}"

    def list(self) -> list[str]:
        try:
            return sorted(
                f.stem for f in self._dir.glob(f"*{SOURCE_SUFFIX}")
                if f.is_file() and not f.name.startswith(".")
            )
        except OSError as e:
            raise IOFailure(f"Cannot list {self._dir}: {e}", e) from e

    def read(self, name: str) -> str:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError(name)
        except OSError as e:
            raise IOFailure(f"Cannot read {path}: {e}", e) from e

    def write(self, name: str, text: str) -> None:
        path = self.path_for(name)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            raise IOFailure(f"Cannot write {path}: {e}", e) from e
        logger.debug(f"Wrote {len(text)} chars to {path}")

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise IOFailure(f"Cannot delete {path}: {e}", e) from e
        return True

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()
