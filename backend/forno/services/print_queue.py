"""Outbound print queue.

Services enqueue jobs after their transaction commits; the print bridge
polls ``pending()`` and clears jobs once they are printed.
"""

import logging
import threading
from typing import List, Optional

from forno.schemas.print_job import PrintJob

logger = logging.getLogger(__name__)


class PrintQueue:
    """Thread-safe in-process list of print jobs."""

    def __init__(self):
        self._jobs: List[PrintJob] = []
        self._lock = threading.Lock()

    def enqueue(self, job: PrintJob) -> PrintJob:
        with self._lock:
            self._jobs.append(job)
        logger.info("Queued %s job %s for printer %s", job.type, job.id, job.printer_name)
        return job

    def pending(self, printer_name: Optional[str] = None) -> List[PrintJob]:
        with self._lock:
            jobs = list(self._jobs)
        if printer_name is not None:
            jobs = [job for job in jobs if job.printer_name == printer_name]
        return jobs

    def clear(self, job_id: str) -> bool:
        """Remove a printed job. Returns False if it was not queued."""
        with self._lock:
            for index, job in enumerate(self._jobs):
                if job.id == job_id:
                    del self._jobs[index]
                    return True
        return False

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()


print_queue = PrintQueue()


def get_print_queue() -> PrintQueue:
    """Dependency returning the process-wide queue."""
    return print_queue
