"""
Compile outcome schema.

A CompileOutcome is the result of compiling one snapshot of an allocator's
text: either a loaded artifact or a non-empty diagnostics string.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TYPE_CHECKING

from allocman.errors import CompileFailure

if TYPE_CHECKING:
    from allocman.artifact import CompiledArtifact


@dataclass(frozen=True)
class CompileOutcome:
    """
    The outcome of compiling one allocator snapshot.

    Attributes:
        name: Allocator name
        digest: SHA256 of the compiled text
        success: True if an artifact was produced
        artifact: The loaded artifact (success only)
        diagnostics: Toolchain/loader output (failure only, never empty)
        started_at: When the compile started
        completed_at: When the compile finished
        applied: False if the registry discarded the outcome as stale
    """
    name: str
    digest: str
    success: bool
    started_at: datetime
    completed_at: datetime
    artifact: Optional["CompiledArtifact"] = None
    diagnostics: Optional[str] = None
    applied: bool = True

    def __post_init__(self):
        if self.success and self.artifact is None:
            raise ValueError("Successful outcomes must carry an artifact")
        if not self.success and not self.diagnostics:
            raise ValueError("Failed outcomes must carry diagnostics")

    @property
    def duration_ms(self) -> int:
        delta = self.completed_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def raise_for_failure(self) -> "CompileOutcome":
        """Raise CompileFailure if this outcome is a failure, else return self."""
        if not self.success:
            raise CompileFailure(self.name, self.diagnostics or "")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "name": self.name,
            "digest": self.digest,
            "success": self.success,
            "applied": self.applied,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
        }
        if self.diagnostics is not None:
            result["diagnostics"] = self.diagnostics
        return result
