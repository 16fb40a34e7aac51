"""Auxiliary input lookup and eligibility for queued jobs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from studio_batch.orchestrator.artifacts import ArtifactHandle
from studio_batch.orchestrator.models import Job, JobStatus
from studio_batch.orchestrator.tools import ToolSpec


class Resolution(Enum):
    """Outcomes that carry no artifact."""

    ABSENT = "absent"
    NOT_READY = "not_ready"


ABSENT = Resolution.ABSENT
NOT_READY = Resolution.NOT_READY


@dataclass(slots=True, frozen=True)
class AuxInput:
    """Artifacts an execution needs besides the job's own input."""

    reference: ArtifactHandle | None = None
    side_input: ArtifactHandle | None = None

    def handles(self) -> tuple[ArtifactHandle, ...]:
        return tuple(handle for handle in (self.reference, self.side_input) if handle is not None)


class DependencyResolver:
    """Pure lookup against the dispatcher's current configuration.

    Never blocks, never retries. The dispatcher passes its own reference
    selection and side input on every call.
    """

    def __init__(self, tool: ToolSpec) -> None:
        self.tool = tool

    def resolve(
        self,
        job: Job,
        *,
        jobs: Mapping[str, Job],
        reference_id: str | None,
        side_input: ArtifactHandle | None,
    ) -> AuxInput | Resolution:
        if self.tool.requires_side_input:
            if side_input is None:
                return NOT_READY
            return AuxInput(side_input=side_input)

        if self.tool.uses_reference:
            reference = self._reference_output(job, jobs=jobs, reference_id=reference_id)
            if reference is not None:
                return AuxInput(reference=reference)

        return ABSENT

    def _reference_output(
        self,
        job: Job,
        *,
        jobs: Mapping[str, Job],
        reference_id: str | None,
    ) -> ArtifactHandle | None:
        if reference_id is None or reference_id == job.job_id:
            return None
        reference_job = jobs.get(reference_id)
        if reference_job is None or reference_job.status != JobStatus.SUCCESS:
            return None
        return reference_job.output
