"""
Error classes for allocman.

These error types enable retry classification at the registry boundary:
- TransientError: Safe to retry (storage hiccups, permission flips, full disk)
- PermanentError: Do not retry (invalid names, missing allocators, bad sources)

The registry propagates these unchanged to its callers. A compile failure is
an expected outcome and is reported as a value (CompileOutcome); CompileFailure
exists for callers that prefer to raise it.
"""

from typing import Optional


class AllocmanError(Exception):
    """Base exception for allocman."""
    pass


class TransientError(AllocmanError):
    """
    Transient error - safe to retry.

    The failed operation left the registry unchanged, so repeating it
    after the underlying condition clears is safe.
    """
    pass


class PermanentError(AllocmanError):
    """
    Permanent error - do not retry.

    Repeating the same call with the same arguments will fail the same way.
    """
    pass


class InvalidNameError(PermanentError):
    """Raised when a proposed allocator name is not a legal identifier."""

    def __init__(self, name: object):
        self.name = name
        super().__init__(f"Invalid allocator name: {name!r}")


class NotFoundError(PermanentError):
    """Raised when an allocator name is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Allocator not found: {name}")


class AlreadyExistsError(PermanentError):
    """Raised when creating an allocator whose name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Allocator already exists: {name}")


class AllocatorImportError(PermanentError):
    """Raised when an external allocator source cannot be imported."""
    pass


class CompileFailure(PermanentError):
    """A compile that the toolchain or the artifact loader rejected."""

    def __init__(self, name: str, diagnostics: str):
        self.name = name
        self.diagnostics = diagnostics
        super().__init__(f"Compilation of {name} failed:\n{diagnostics}")


class IOFailure(TransientError):
    """Storage-layer read/write failure (disk, permissions)."""

    def __init__(self, message: str, cause: Optional[OSError] = None):
        self.cause = cause
        super().__init__(message)


class ArtifactNotAvailableError(PermanentError):
    """Raised when invoking an artifact that has been released."""
    pass


class SchedulingContractError(PermanentError):
    """Raised when an allocator returns an assignment that breaks the contract."""
    pass


class UnsavedChangesError(PermanentError):
    """Raised when closing an editor session that holds unsaved edits."""
    pass
