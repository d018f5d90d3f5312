"""
allocman.schemas - Data structures for the allocator lifecycle.

SourceRecord -> CompileOutcome -> CompiledArtifact -> Assignment

Lifecycle:
1. SourceRecord: Registry-owned state of one allocator (text, compile state)
2. CompileOutcome: Result of compiling one text snapshot
3. Job / Resource / Assignment: The scheduling contract a compiled
   allocator fulfils for the simulator
"""

from .record import (
    CompileState,
    SourceRecord,
    text_digest,
)
from .outcome import (
    CompileOutcome,
)
from .scheduling import (
    Job,
    Resource,
    Assignment,
)

__all__ = [
    # Record
    "CompileState",
    "SourceRecord",
    "text_digest",
    # Outcome
    "CompileOutcome",
    # Scheduling contract
    "Job",
    "Resource",
    "Assignment",
]
