"""
Job type registry.

Maps job type names to the classes that implement them. A registry is an
explicit object: build one at startup, register the host's job types on it
and hand it to the JobQueue that constructs jobs.
"""

import logging
from typing import TYPE_CHECKING, Callable, TypeVar

from bgqueue.exceptions import UnregisteredJobType

if TYPE_CHECKING:
    from bgqueue.jobs.base import Job

logger = logging.getLogger(__name__)

JobClass = type["Job"]
J = TypeVar("J", bound="type[Job]")


class JobTypeRegistry:
    """Name-based lookup of job classes."""

    def __init__(self) -> None:
        self._types: dict[str, JobClass] = {}

    def register(self, name: str, constructor: JobClass) -> str:
        """
        Register a job class under a type name.

        Registering an existing name replaces the previous class.

        Args:
            name: The job type name.
            constructor: The Job subclass handling this type.

        Returns:
            The registered name.
        """
        if name in self._types and self._types[name] is not constructor:
            logger.info(
                f"Replacing job type: {name}",
                extra={"job_type": name}
            )
        self._types[name] = constructor
        logger.debug(f"Registered job type: {name}")
        return name

    def deregister(self, name: str) -> str:
        """Remove a job type. Unknown names are ignored."""
        self._types.pop(name, None)
        return name

    def resolve(self, name: str) -> JobClass:
        """
        Get the job class for a type name.

        Raises:
            UnregisteredJobType: If nothing is registered under ``name``.
        """
        try:
            return self._types[name]
        except KeyError:
            raise UnregisteredJobType(name) from None

    def job_type(self, name: str) -> Callable[[J], J]:
        """
        Decorator to register a job class.

        Example:
            @registry.job_type("resize")
            class ResizeImage(Job):
                def run(self) -> None:
                    ...
        """
        def decorator(constructor: J) -> J:
            self.register(name, constructor)
            return constructor
        return decorator

    def names(self) -> list[str]:
        """List all registered job type names."""
        return list(self._types.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)
