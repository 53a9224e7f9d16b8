"""
Error types raised by the dispatch engine.

StoreError is the only one that escapes a dispatch invocation, and only when
raised before any job has been claimed. The others are handled per job.
"""
from __future__ import annotations


class DispatchError(RuntimeError):
    pass


class StoreError(DispatchError):
    """A read or write against the job store or device directory failed."""


class DeliveryError(DispatchError):
    """The push gateway was unreachable or answered with something unparseable."""


class JobProcessingError(DispatchError):
    """Any other failure while handling a single job."""

    def __init__(self, job_id: str, detail: str):
        super().__init__(f"job {job_id}: {detail}")
        self.job_id = job_id
        self.detail = detail
