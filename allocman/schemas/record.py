"""
Source record schemas - per-allocator lifecycle state.

SourceRecord is the registry's in-memory, authoritative view of one allocator.
The source store only persists text; compile state never survives a restart.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class CompileState(str, Enum):
    """Compile state of an allocator."""
    UNCOMPILED = "uncompiled"
    COMPILING = "compiling"
    COMPILED = "compiled"
    FAILED = "failed"


def text_digest(text: str) -> str:
    """SHA256 of source text, used to tag compile snapshots."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class SourceRecord:
    """
    Lifecycle record for one allocator.

    Attributes:
        name: The allocator name (validated identifier)
        source_text: Current in-memory text (may be ahead of the persisted copy)
        state: Compile state of the persisted text
        last_diagnostics: Diagnostics of the last failed compile, None otherwise
        modified_since_compile: Text changed since the last applied compile
        dirty: In-memory text differs from the persisted copy
        persisted_digest: SHA256 of the text last written to the store
    """
    name: str
    source_text: str
    state: CompileState = CompileState.UNCOMPILED
    last_diagnostics: Optional[str] = None
    modified_since_compile: bool = True
    dirty: bool = False
    persisted_digest: str = ""

    def __post_init__(self):
        if not self.persisted_digest:
            self.persisted_digest = text_digest(self.source_text)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "name": self.name,
            "state": self.state.value,
            "modified_since_compile": self.modified_since_compile,
            "dirty": self.dirty,
            "persisted_digest": self.persisted_digest,
        }
        if self.last_diagnostics is not None:
            result["last_diagnostics"] = self.last_diagnostics
        return result
