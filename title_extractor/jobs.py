"""In-process job registry with pluggable storage and bounded retention"""
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Protocol

from .config import JOB_TTL_SECONDS, MAX_JOBS
from .models import ExtractedDocument

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class PipelineState(str, Enum):
    RECEIVED = "received"
    CLASSIFYING = "classifying"
    EXTRACTING = "extracting"
    AI_EXTRACTING = "ai_extracting"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class Job:
    id: str
    filename: str
    status: JobStatus = JobStatus.PROCESSING
    state: PipelineState = PipelineState.RECEIVED
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    result: Optional[ExtractedDocument] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    finished_at: Optional[float] = None  # monotonic clock, set on complete/failed

    @property
    def is_finished(self) -> bool:
        return self.status != JobStatus.PROCESSING

    def summary(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "status": self.status.value,
            "createdAt": self.created_at,
        }

    def to_dict(self) -> dict:
        data = self.summary()
        data["stage"] = self.state.value
        data["metadata"] = self.metadata
        if self.error is not None:
            data["error"] = self.error
        if self.result is not None:
            data["extractedData"] = self.result.to_dict()
        return data


class JobStore(Protocol):
    """Key/value storage behind the registry"""

    def get(self, job_id: str) -> Optional[Job]: ...

    def put(self, job: Job) -> None: ...

    def delete(self, job_id: str) -> None: ...

    def values(self) -> Iterator[Job]: ...

    def __len__(self) -> int: ...


class InMemoryJobStore:
    """Insertion-ordered dict storage (oldest first)"""

    def __init__(self):
        self._jobs: "OrderedDict[str, Job]" = OrderedDict()

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def put(self, job: Job) -> None:
        self._jobs[job.id] = job

    def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    def values(self) -> Iterator[Job]:
        return iter(list(self._jobs.values()))

    def __len__(self) -> int:
        return len(self._jobs)


class JobRegistry:
    """
    Tracks the lifecycle of every submitted job.

    Finished jobs are pruned once older than ``ttl_seconds`` and the oldest
    finished jobs are evicted when more than ``max_jobs`` are held. Jobs still
    processing are never evicted.
    """

    def __init__(self, store: Optional[JobStore] = None, max_jobs: int = MAX_JOBS,
                 ttl_seconds: Optional[float] = JOB_TTL_SECONDS):
        self.store = store if store is not None else InMemoryJobStore()
        self.max_jobs = max_jobs
        self.ttl_seconds = ttl_seconds

    def create(self, job_id: str, filename: str, metadata: Optional[Dict[str, Any]] = None) -> Job:
        self.prune()
        job = Job(id=job_id, filename=filename, metadata=dict(metadata or {}))
        self.store.put(job)
        return job

    def get(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def list(self) -> List[Job]:
        return list(self.store.values())

    def set_status(self, job_id: str, status: JobStatus) -> None:
        job = self._require(job_id)
        job.status = status
        if job.is_finished and job.finished_at is None:
            job.finished_at = time.monotonic()
        self.store.put(job)

    def set_stage(self, job_id: str, state: PipelineState) -> None:
        job = self._require(job_id)
        job.state = state
        self.store.put(job)

    def set_result(self, job_id: str, result: ExtractedDocument) -> None:
        job = self._require(job_id)
        job.result = result
        job.state = PipelineState.COMPLETE
        self.store.put(job)
        self.set_status(job_id, JobStatus.COMPLETE)

    def fail(self, job_id: str, message: str) -> None:
        job = self.get(job_id)
        if job is None:
            return
        job.error = message
        job.state = PipelineState.ERROR
        self.store.put(job)
        self.set_status(job_id, JobStatus.FAILED)

    def prune(self) -> int:
        """Drop expired and excess finished jobs; returns how many were removed"""
        removed = 0
        now = time.monotonic()
        finished = [job for job in self.store.values() if job.is_finished]

        if self.ttl_seconds is not None:
            for job in finished:
                if now - job.finished_at >= self.ttl_seconds:
                    self.store.delete(job.id)
                    removed += 1
            finished = [job for job in finished if self.store.get(job.id) is not None]

        # Leave room for the job about to be created
        excess = len(self.store) - self.max_jobs + 1
        for job in finished[:max(excess, 0)]:
            self.store.delete(job.id)
            removed += 1

        if removed:
            logger.debug("Pruned %d finished jobs", removed)
        return removed

    def __len__(self) -> int:
        return len(self.store)

    def _require(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        return job
