"""Domain models for the batch job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING
from uuid import uuid4

if TYPE_CHECKING:
    from studio_batch.orchestrator.artifacts import ArtifactHandle


class JobStatus(str, Enum):
    """Per-job lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({JobStatus.SUCCESS, JobStatus.ERROR})


class FailureClass(str, Enum):
    """Normalized failure classes used by the gateway retry policy."""

    QUOTA = "quota"
    TRANSIENT = "transient"
    ACCESS_OR_AUTH = "access_or_auth"
    INVALID_REQUEST = "invalid_request"
    NO_OUTPUT = "no_output"
    NON_RETRYABLE = "non_retryable"


RETRYABLE_FAILURE_CLASSES = frozenset({FailureClass.QUOTA, FailureClass.TRANSIENT})


class VariantKind(str, Enum):
    """Gallery variants that can be spawned from a finished job."""

    MACRO_DETAIL = "macro_detail"
    LIFESTYLE_TABLE = "lifestyle_table"
    PACKAGING = "packaging"
    HAND_HELD = "hand_held"
    CONTEXT = "context"

    @classmethod
    def parse(cls, value: VariantKind | str) -> VariantKind:
        if isinstance(value, VariantKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as error:
            supported = ", ".join(kind.value for kind in cls)
            raise ValueError(
                f"Unsupported variant kind: {value!r}. Expected one of: {supported}.",
            ) from error


@dataclass(slots=True, frozen=True)
class AuxRole:
    """Marks a job as a derived variant of another job."""

    variant_kind: VariantKind
    parent_id: str


@dataclass(slots=True)
class Job:
    """One input tracked through one generation to a terminal outcome.

    Only the dispatcher mutates a job; everyone else sees ``JobSnapshot``.
    """

    input: ArtifactHandle
    label: str
    aux_role: AuxRole | None = None
    job_id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    output: ArtifactHandle | None = None
    error_detail: str | None = None

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            job_id=self.job_id,
            label=self.label,
            status=self.status,
            input=self.input,
            output=self.output,
            error_detail=self.error_detail,
            aux_role=self.aux_role,
        )


@dataclass(slots=True, frozen=True)
class JobSnapshot:
    """Immutable view of a job delivered to callers and listeners."""

    job_id: str
    label: str
    status: JobStatus
    input: ArtifactHandle
    output: ArtifactHandle | None
    error_detail: str | None
    aux_role: AuxRole | None


@dataclass(slots=True)
class BatchStats:
    """Aggregate counters over the current queue."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def is_settled(self) -> bool:
        return self.pending == 0 and self.processing == 0
