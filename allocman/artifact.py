"""
CompiledArtifact - The invocable unit produced by a successful compile.

The simulator never sees allocator classes directly. It asks the registry for
an artifact by name and calls ``schedule``; the artifact checks the returned
assignment against the scheduling contract.
"""

import logging
import sys
import threading
from datetime import datetime
from types import ModuleType
from typing import Any, Mapping, Sequence

from allocman.errors import ArtifactNotAvailableError, SchedulingContractError
from allocman.schemas import Assignment, Job, Resource

logger = logging.getLogger(__name__)


class CompiledArtifact:
    """
    Opaque handle for one compiled allocator.

    Holds the isolated module the snapshot was loaded into and one allocator
    instance. Released artifacts drop both references and refuse calls.
    """

    def __init__(
        self,
        name: str,
        digest: str,
        module: ModuleType,
        instance: Any,
        compiled_at: datetime,
    ):
        self._name = name
        self._digest = digest
        self._module = module
        self._instance = instance
        self._compiled_at = compiled_at
        self._released = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def digest(self) -> str:
        """SHA256 of the source text this artifact was compiled from."""
        return self._digest

    @property
    def compiled_at(self) -> datetime:
        return self._compiled_at

    @property
    def released(self) -> bool:
        return self._released

    def schedule(self, jobs: Sequence[Job], resources: Sequence[Resource]) -> Assignment:
        """
        Invoke the allocator.

        Args:
            jobs: Pending jobs
            resources: Available resources

        Returns:
            The validated Assignment

        Raises:
            ArtifactNotAvailableError: If the artifact has been released
            SchedulingContractError: If the allocator returns something that
                is not a mapping of known job ids to known resource ids
        """
        with self._lock:
            if self._released:
                raise ArtifactNotAvailableError(
                    f"Artifact for {self._name} has been released"
                )
            instance = self._instance

        raw = instance.schedule(list(jobs), list(resources))
        return _to_assignment(self._name, raw, jobs, resources)

    def release(self) -> None:
        """Drop the loaded module and instance. Idempotent."""
        with self._lock:
            if self._released:
                return
            self._released = True
            module = self._module
            self._instance = None
            self._module = None
        if module is not None:
            sys.modules.pop(module.__name__, None)
        logger.debug(f"Released artifact {self._name} ({self._digest[:12]})")

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"CompiledArtifact(name={self._name}, digest={self._digest[:12]}, {state})"


def _to_assignment(
    name: str,
    raw: Any,
    jobs: Sequence[Job],
    resources: Sequence[Resource],
) -> Assignment:
    """Validate an allocator's return value and wrap it as an Assignment."""
    if isinstance(raw, Assignment):
        raw = raw.mapping
    if not isinstance(raw, Mapping):
        raise SchedulingContractError(
            f"{name}.schedule must return a mapping, got {type(raw).__name__}"
        )

    job_ids = {j.job_id for j in jobs}
    resource_ids = {r.resource_id for r in resources}

    mapping: dict[str, str] = {}
    for job_id, resource_id in raw.items():
        if job_id not in job_ids:
            raise SchedulingContractError(f"{name} assigned unknown job: {job_id!r}")
        if resource_id not in resource_ids:
            raise SchedulingContractError(
                f"{name} assigned job {job_id!r} to unknown resource: {resource_id!r}"
            )
        mapping[job_id] = resource_id

    return Assignment(mapping=mapping)
