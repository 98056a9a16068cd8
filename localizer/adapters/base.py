"""
Abstract base class for job stores.

Every store keeps whole job records keyed by id and guards writes with an
optimistic version number, so concurrent writers never silently overwrite
each other. `update` layers merge-on-write retries on top of that.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from ..errors import JobConflictError, JobNotFoundError
from ..models import LocalizationJob

logger = logging.getLogger("video_localizer")


class JobStore(ABC):
    """Abstract base class for job stores"""

    def connect(self) -> None:
        """Open connections or create storage; no-op by default"""

    def close(self) -> None:
        """Release resources; no-op by default"""

    @abstractmethod
    def get(self, job_id: str) -> Optional[LocalizationJob]:
        """
        Load one job.

        Returns:
            The stored job, or None if no job has that id
        """
        pass

    @abstractmethod
    def list_jobs(self) -> List[LocalizationJob]:
        """Return every stored job, in no particular order"""
        pass

    @abstractmethod
    def save(self, job: LocalizationJob) -> LocalizationJob:
        """
        Insert or replace a job with compare-and-swap on `job.version`.

        A job with version 0 is inserted; otherwise the stored version must
        equal `job.version`. On success `job.version` is incremented.

        Raises:
            JobConflictError: the stored version differs, or an insert hit an existing id
        """
        pass

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """
        Remove a job.

        Returns:
            True if a job was removed
        """
        pass

    def ping(self) -> bool:
        """Whether the store is reachable"""
        try:
            self.list_jobs()
            return True
        except Exception as e:
            logger.warning(f"Job store health check failed: {e}")
            return False

    def update(self, job_id: str, mutate: Callable[[LocalizationJob], None],
               retries: int = 5) -> LocalizationJob:
        """
        Re-read a job, apply `mutate` to it and save, retrying on version conflicts.

        Raises:
            JobNotFoundError: no job with that id
            JobConflictError: still conflicting after `retries` attempts
        """
        for attempt in range(1, retries + 1):
            job = self.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            mutate(job)
            try:
                return self.save(job)
            except JobConflictError:
                logger.debug(f"Version conflict on job {job_id} (attempt {attempt}/{retries})")
        raise JobConflictError(f"Job {job_id} kept changing during update")
