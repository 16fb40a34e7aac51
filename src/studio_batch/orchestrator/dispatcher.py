"""Event-driven job queue that runs every eligible job concurrently.

A job is launched only on a transition into ``pending`` (submit, retry, spawn)
or when a configuration change may have made deferred jobs eligible. The
launch moves the job to ``processing`` synchronously, before its task exists,
so no scan can start a second execution for the same job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from studio_batch.orchestrator.artifacts import ArtifactHandle, ArtifactStore
from studio_batch.orchestrator.backend.base import InlineImage
from studio_batch.orchestrator.canonicalizer import OUTPUT_MEDIA_TYPE, OutputCanonicalizer
from studio_batch.orchestrator.errors import (
    GENERIC_FAILURE_MESSAGE,
    JobNotFoundError,
    JobStateError,
    StudioBatchError,
)
from studio_batch.orchestrator.gateway import GenerationGateway
from studio_batch.orchestrator.models import (
    TERMINAL_STATUSES,
    AuxRole,
    BatchStats,
    Job,
    JobSnapshot,
    JobStatus,
    VariantKind,
)
from studio_batch.orchestrator.resolver import NOT_READY, AuxInput, DependencyResolver
from studio_batch.orchestrator.tools import (
    VARIANT_SPECS,
    ToolKind,
    build_request,
    output_filename,
    tool_spec,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image"

JobListener = Callable[[JobSnapshot], None]


@dataclass(slots=True)
class _Lease:
    """Handles an execution holds for its whole lifetime."""

    input: ArtifactHandle
    aux: AuxInput = field(default_factory=AuxInput)

    def handles(self) -> tuple[ArtifactHandle, ...]:
        return (self.input, *self.aux.handles())


class JobDispatcher:
    """Owns the job collection and launches one execution per eligible job."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        tool: ToolKind | str,
        gateway: GenerationGateway,
        store: ArtifactStore,
        canonicalizer: OutputCanonicalizer | None = None,
        model: str = DEFAULT_MODEL,
        aspect_ratio: str = "1:1",
    ) -> None:
        self.tool = tool_spec(tool)
        self.gateway = gateway
        self.store = store
        self.canonicalizer = canonicalizer or OutputCanonicalizer()
        self.model = model
        self.aspect_ratio = aspect_ratio
        self.resolver = DependencyResolver(self.tool)
        self._jobs: dict[str, Job] = {}
        self._in_flight: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[JobListener] = []
        self._reference_id: str | None = None
        self._side_input: ArtifactHandle | None = None

    # -- inbound operations -------------------------------------------------

    def submit(self, inputs: Iterable[ArtifactHandle]) -> list[str]:
        """Append one pending job per input; the queue takes ownership of the handles."""

        _require_running_loop()
        jobs = [Job(input=handle, label=handle.name) for handle in inputs]
        for job in jobs:
            self._jobs[job.job_id] = job
            self._emit(job)
        for job in jobs:
            self._launch_if_eligible(job)
        logger.info("Submitted %d job(s) to %s queue", len(jobs), self.tool.kind.value)
        return [job.job_id for job in jobs]

    def retry(self, job_id: str) -> None:
        """Send a finished or failed job back to ``pending``."""

        _require_running_loop()
        job = self._require(job_id)
        if job.status not in TERMINAL_STATUSES:
            raise JobStateError(
                f"Only failed or finished jobs can be retried, got {job.status.value} "
                f"(job_id={job_id}).",
            )
        self._reset(job)
        self._launch_if_eligible(job)

    def retry_all_failed(self) -> list[str]:
        _require_running_loop()
        failed = [job for job in self._jobs.values() if job.status == JobStatus.ERROR]
        for job in failed:
            self._reset(job)
        for job in failed:
            self._launch_if_eligible(job)
        return [job.job_id for job in failed]

    def clear(self) -> None:
        """Drop every job, releasing the artifacts they own.

        Executions still in flight finish in the background; their results
        are discarded.
        """

        for job in self._jobs.values():
            self.store.release(job.input)
            if job.output is not None:
                self.store.release(job.output)
        count = len(self._jobs)
        self._jobs.clear()
        self._reference_id = None
        logger.info("Cleared %d job(s) from %s queue", count, self.tool.kind.value)

    def set_reference(self, job_id: str | None) -> str | None:
        """Toggle the style reference; returns the selection now in effect."""

        if job_id is None:
            self._reference_id = None
            return None
        self._require(job_id)
        self._reference_id = None if self._reference_id == job_id else job_id
        return self._reference_id

    def set_shared_side_input(self, artifact: ArtifactHandle | None) -> None:
        """Replace the shared side input; the queue takes ownership of ``artifact``."""

        previous = self._side_input
        self._side_input = artifact
        if previous is not None:
            self.store.release(previous)
        if artifact is not None and any(
            job.status == JobStatus.PENDING for job in self._jobs.values()
        ):
            self.dispatch_pending()

    def spawn_variants(
        self,
        parent_id: str,
        variant_kinds: Iterable[VariantKind | str],
    ) -> list[str]:
        """Queue derived jobs that reuse a finished parent's input."""

        _require_running_loop()
        if not self.tool.supports_variants:
            raise JobStateError(f"Tool {self.tool.kind.value!r} does not support variants.")
        parent = self._require(parent_id)
        if parent.status != JobStatus.SUCCESS:
            raise JobStateError(
                f"Variants can only be spawned from a finished job, got {parent.status.value} "
                f"(job_id={parent_id}).",
            )
        kinds = [VariantKind.parse(kind) for kind in variant_kinds]
        if len(set(kinds)) != len(kinds):
            raise ValueError("Variant kinds must be distinct within one spawn request.")

        jobs = [
            Job(
                input=self.store.share(parent.input),
                label=VARIANT_SPECS[kind].job_label,
                aux_role=AuxRole(variant_kind=kind, parent_id=parent.job_id),
            )
            for kind in kinds
        ]
        for job in jobs:
            self._jobs[job.job_id] = job
            self._emit(job)
        for job in jobs:
            self._launch_if_eligible(job)
        return [job.job_id for job in jobs]

    def dispatch_pending(self) -> int:
        """Launch every eligible pending job; returns how many were started."""

        _require_running_loop()
        pending = [job for job in self._jobs.values() if job.status == JobStatus.PENDING]
        return sum(1 for job in pending if self._launch_if_eligible(job))

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def wait_idle(self) -> None:
        """Wait until no execution is in flight. Deferred jobs stay pending."""

        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.wait_idle()
        self.clear()
        self.set_shared_side_input(None)

    # -- read access --------------------------------------------------------

    def get(self, job_id: str) -> JobSnapshot:
        return self._require(job_id).snapshot()

    def snapshots(self) -> list[JobSnapshot]:
        return [job.snapshot() for job in self._jobs.values()]

    def stats(self) -> BatchStats:
        stats = BatchStats(total=len(self._jobs))
        for job in self._jobs.values():
            if job.status == JobStatus.PENDING:
                stats.pending += 1
            elif job.status == JobStatus.PROCESSING:
                stats.processing += 1
            elif job.status == JobStatus.SUCCESS:
                stats.completed += 1
            else:
                stats.failed += 1
        return stats

    def output_filename(self, job_id: str) -> str:
        job = self._require(job_id)
        return output_filename(
            self.tool,
            input_name=job.input.name,
            variant_kind=job.aux_role.variant_kind if job.aux_role else None,
        )

    @property
    def reference_id(self) -> str | None:
        return self._reference_id

    @property
    def side_input(self) -> ArtifactHandle | None:
        return self._side_input

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # -- execution ----------------------------------------------------------

    def _launch_if_eligible(self, job: Job) -> bool:
        if job.status != JobStatus.PENDING or job.job_id in self._in_flight:
            return False

        resolution = self.resolver.resolve(
            job,
            jobs=self._jobs,
            reference_id=self._reference_id,
            side_input=self._side_input,
        )
        if resolution is NOT_READY:
            logger.debug("Job %s deferred: auxiliary input not ready", job.job_id)
            return False

        loop = asyncio.get_running_loop()
        aux = resolution if isinstance(resolution, AuxInput) else AuxInput()
        lease = _Lease(
            input=self.store.share(job.input),
            aux=AuxInput(
                reference=self.store.share(aux.reference) if aux.reference else None,
                side_input=self.store.share(aux.side_input) if aux.side_input else None,
            ),
        )
        job.status = JobStatus.PROCESSING
        self._emit(job)
        self._in_flight[job.job_id] = loop.create_task(
            self._execute(job, lease),
            name=f"job-{job.job_id}",
        )
        logger.info(
            "Dispatched job %s (%s)%s",
            job.job_id,
            job.label,
            " with reference" if lease.aux.reference else "",
        )
        return True

    async def _execute(self, job: Job, lease: _Lease) -> None:
        output: bytes | None = None
        error_detail: str | None = None
        try:
            output = await self._generate(job, lease)
        except StudioBatchError as error:
            logger.warning("Job %s failed: %s", job.job_id, error)
            error_detail = error.user_message
        except Exception:  # noqa: BLE001
            logger.exception("Job %s crashed", job.job_id)
            error_detail = GENERIC_FAILURE_MESSAGE
        finally:
            for handle in lease.handles():
                self.store.release(handle)
            self._in_flight.pop(job.job_id, None)
        self._finish(job, output=output, error_detail=error_detail)

    async def _generate(self, job: Job, lease: _Lease) -> bytes:
        target = await self._inline(lease.input)
        reference = await self._inline(lease.aux.reference) if lease.aux.reference else None
        side_input = await self._inline(lease.aux.side_input) if lease.aux.side_input else None
        request = build_request(
            self.tool.kind,
            model=self.model,
            target=target,
            reference=reference,
            side_input=side_input,
            variant_kind=job.aux_role.variant_kind if job.aux_role else None,
            aspect_ratio=self.aspect_ratio,
        )
        raw = await self.gateway.invoke(request)
        return await asyncio.to_thread(self.canonicalizer.canonicalize, raw)

    async def _inline(self, handle: ArtifactHandle) -> InlineImage:
        data = await self.store.read_bytes(handle)
        mime_type = handle.media_type if handle.media_type.startswith("image/") else "image/jpeg"
        return InlineImage(data=data, mime_type=mime_type)

    def _finish(self, job: Job, *, output: bytes | None, error_detail: str | None) -> None:
        if self._jobs.get(job.job_id) is not job:
            logger.info("Discarding result of cleared job %s", job.job_id)
            return

        if output is None:
            job.status = JobStatus.ERROR
            job.error_detail = error_detail or GENERIC_FAILURE_MESSAGE
            job.output = None
        else:
            job.output = self.store.put(
                output,
                name=self.output_filename(job.job_id),
                media_type=OUTPUT_MEDIA_TYPE,
            )
            job.status = JobStatus.SUCCESS
            job.error_detail = None
        logger.info("Job %s finished: %s", job.job_id, job.status.value)
        self._emit(job)

    def _reset(self, job: Job) -> None:
        if job.output is not None:
            self.store.release(job.output)
        job.output = None
        job.error_detail = None
        job.status = JobStatus.PENDING
        self._emit(job)

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def _emit(self, job: Job) -> None:
        snapshot = job.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Job listener failed for %s", job.job_id)


def _require_running_loop() -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError as error:
        raise RuntimeError(
            "JobDispatcher operations that launch work must run inside an asyncio event loop.",
        ) from error
