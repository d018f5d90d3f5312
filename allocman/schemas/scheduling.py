"""
Scheduling contract shared by the simulator and compiled allocators.

An allocator receives the pending jobs and the available resources and
returns an Assignment mapping job ids to resource ids. Jobs left out of the
mapping stay pending.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Job:
    """
    A pending job waiting for a resource.

    Attributes:
        job_id: Unique job identifier
        size: Amount of work (arbitrary units, e.g. MFLOP)
        priority: Higher runs first when an allocator honours priorities
    """
    job_id: str
    size: float = 1.0
    priority: int = 0

    def __post_init__(self):
        if not self.job_id:
            raise ValueError("job_id is required")
        if self.size < 0:
            raise ValueError("size must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return {"job_id": self.job_id, "size": self.size, "priority": self.priority}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        return cls(
            job_id=str(data["job_id"]),
            size=float(data.get("size", 1.0)),
            priority=int(data.get("priority", 0)),
        )


@dataclass(frozen=True)
class Resource:
    """
    An available resource (machine, VM slot, core).

    Attributes:
        resource_id: Unique resource identifier
        capacity: Processing capacity (arbitrary units, e.g. MFLOPS)
    """
    resource_id: str
    capacity: float = 1.0

    def __post_init__(self):
        if not self.resource_id:
            raise ValueError("resource_id is required")
        if self.capacity <= 0:
            raise ValueError("capacity must be > 0")

    def to_dict(self) -> dict[str, Any]:
        return {"resource_id": self.resource_id, "capacity": self.capacity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Resource":
        return cls(
            resource_id=str(data["resource_id"]),
            capacity=float(data.get("capacity", 1.0)),
        )


@dataclass(frozen=True)
class Assignment:
    """Result of one scheduling decision: job_id -> resource_id."""
    mapping: Mapping[str, str] = field(default_factory=dict)

    def resource_for(self, job_id: str) -> str | None:
        return self.mapping.get(job_id)

    def jobs_on(self, resource_id: str) -> list[str]:
        return sorted(j for j, r in self.mapping.items() if r == resource_id)

    def __len__(self) -> int:
        return len(self.mapping)

    def to_dict(self) -> dict[str, Any]:
        return {"mapping": dict(self.mapping)}
