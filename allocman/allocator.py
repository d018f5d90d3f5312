"""Base class for allocators."""

from abc import ABC, abstractmethod
from typing import Mapping, Sequence

from allocman.schemas import Job, Resource


class Allocator(ABC):
    """
    Base class for allocators.

    An allocator source module named ``Foo`` defines ``class Foo`` with a
    ``schedule`` method. Subclassing this ABC is optional: the loader only
    requires the class to be instantiable without arguments and to expose a
    callable ``schedule``.
    """

    @abstractmethod
    def schedule(
        self,
        jobs: Sequence[Job],
        resources: Sequence[Resource],
    ) -> Mapping[str, str]:
        """
        Assign pending jobs to resources.

        Args:
            jobs: Jobs waiting to be placed
            resources: Resources available for placement

        Returns:
            Mapping of job_id -> resource_id. Jobs missing from the mapping
            stay pending.
        """
        pass
