"""
Importer - Bring an external allocator source into the store.

The name is derived from the file name (extension stripped) and validated
before anything is written, so an invalid file never touches storage.
"""

import logging
from pathlib import Path
from typing import Callable, Union

from allocman.errors import InvalidNameError
from allocman.names import validate
from allocman.source_store import SourceStore

logger = logging.getLogger(__name__)


class Importer:
    """Validates and copies external allocator sources into a SourceStore."""

    def __init__(self, store: SourceStore, validator: Callable[[object], bool] = validate):
        self._store = store
        self._validator = validator

    def import_file(self, external_path: Union[str, Path]) -> tuple[str, str]:
        """
        Import one external file.

        An existing allocator with the same name is overwritten.

        Args:
            external_path: Path to the source file

        Returns:
            (name, text) as stored

        Raises:
            AllocatorImportError: If the file cannot be read
            InvalidNameError: If the derived name is not a legal allocator name
            IOFailure: If the store write fails
        """
        name, text = self._store.load_external(external_path)
        if not self._validator(name):
            raise InvalidNameError(name)

        self._store.write(name, text)
        logger.info(
            f"Imported {name} from {external_path}",
            extra={"allocator": name, "event": "imported", "metadata": {"path": str(external_path)}},
        )
        return name, text
