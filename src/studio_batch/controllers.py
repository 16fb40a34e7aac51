"""Controllers for batch CLI commands."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from studio_batch.config import Settings
from studio_batch.orchestrator.artifacts import ArtifactStore
from studio_batch.orchestrator.backend import EchoTransport, GeminiTransport, GenerationTransport
from studio_batch.orchestrator.backoff import BackoffPolicy
from studio_batch.orchestrator.canonicalizer import OutputCanonicalizer
from studio_batch.orchestrator.dispatcher import JobDispatcher
from studio_batch.orchestrator.gateway import GenerationGateway
from studio_batch.orchestrator.models import JobSnapshot, JobStatus, VariantKind
from studio_batch.orchestrator.tools import TOOL_SPECS, VARIANT_SPECS, tool_spec

logger = logging.getLogger(__name__)

SUPPORTED_TRANSPORTS = ("gemini", "echo")


@dataclass(slots=True)
class BatchRunCommand:
    """CLI input for one batch run."""

    tool: str
    inputs: tuple[Path, ...]
    output_dir: Path | None = None
    reference: Path | None = None
    scene: Path | None = None
    variants: tuple[str, ...] = ()
    retry_failed: int = 0
    transport: str = "gemini"


class BatchCliController:
    """Runs batch commands and renders plain-text output lines."""

    def list_tools(self) -> list[str]:
        lines = ["Tools:"]
        for spec in TOOL_SPECS.values():
            extras = []
            if spec.uses_reference:
                extras.append("--reference")
            if spec.requires_side_input:
                extras.append("--scene (required)")
            if spec.supports_variants:
                extras.append("--variant")
            suffix = f" [{', '.join(extras)}]" if extras else ""
            lines.append(f"  {spec.kind.value:<10} {spec.title}: {spec.description}{suffix}")
        lines.append("Variant kinds:")
        for variant in VARIANT_SPECS.values():
            lines.append(f"  {variant.kind.value:<16} {variant.request_label}")
        return lines

    def run(self, command: BatchRunCommand) -> list[str]:
        """Process a batch to completion and write canonical outputs."""

        settings = Settings.from_env(output_dir=command.output_dir)
        if command.transport == "gemini":
            settings.validate_for_generation()
        else:
            settings.validate()
        _validate_command(command)
        return asyncio.run(self._run(command=command, settings=settings))

    async def _run(self, *, command: BatchRunCommand, settings: Settings) -> list[str]:
        store = ArtifactStore()
        output_dir = settings.output.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        lines: list[str] = []

        async with _open_transport(settings, command.transport) as transport:
            dispatcher = JobDispatcher(
                tool=command.tool,
                gateway=GenerationGateway(
                    transport,
                    policy=BackoffPolicy(
                        max_retries=settings.retry.max_retries,
                        initial_delay_seconds=settings.retry.initial_delay_seconds,
                    ),
                    credentials_configured=(
                        command.transport == "echo" or bool(settings.generation.api_key)
                    ),
                ),
                store=store,
                canonicalizer=OutputCanonicalizer(
                    size=settings.output.size,
                    quality=settings.output.jpeg_quality,
                ),
                model=settings.generation.model,
                aspect_ratio=settings.generation.aspect_ratio,
            )
            dispatcher.subscribe(_log_transition)

            if command.scene is not None:
                dispatcher.set_shared_side_input(store.put_file(command.scene))

            if command.reference is not None:
                [reference_id] = dispatcher.submit([store.put_file(command.reference)])
                await dispatcher.wait_idle()
                reference = dispatcher.get(reference_id)
                if reference.status == JobStatus.SUCCESS:
                    dispatcher.set_reference(reference_id)
                    lines.append(f"Style reference ready: {reference.label}")
                else:
                    lines.append(
                        f"Style reference failed, continuing without it: {reference.error_detail}",
                    )

            job_ids = dispatcher.submit(store.put_file(path) for path in command.inputs)
            await dispatcher.wait_idle()

            if command.variants:
                for job_id in job_ids:
                    if dispatcher.get(job_id).status == JobStatus.SUCCESS:
                        dispatcher.spawn_variants(job_id, command.variants)
                await dispatcher.wait_idle()

            for round_no in range(1, command.retry_failed + 1):
                retried = dispatcher.retry_all_failed()
                if not retried:
                    break
                lines.append(f"Retry round {round_no}: {len(retried)} job(s)")
                await dispatcher.wait_idle()

            written: set[str] = set()
            for snapshot in dispatcher.snapshots():
                lines.append(
                    await _write_output(
                        dispatcher,
                        snapshot,
                        output_dir=output_dir,
                        written=written,
                    ),
                )

            stats = dispatcher.stats()
            lines.append(
                f"Total: {stats.total}, completed: {stats.completed}, failed: {stats.failed}, "
                f"pending: {stats.pending}",
            )
            await dispatcher.shutdown()
        return lines


def _validate_command(command: BatchRunCommand) -> None:
    spec = tool_spec(command.tool)
    if command.transport not in SUPPORTED_TRANSPORTS:
        raise ValueError(f"Unsupported transport: {command.transport!r}")
    if not command.inputs:
        raise ValueError("At least one input image is required.")
    if command.reference is not None and not spec.uses_reference:
        raise ValueError(f"Tool {spec.kind.value!r} does not take a style reference.")
    if spec.requires_side_input and command.scene is None:
        raise ValueError(f"Tool {spec.kind.value!r} requires --scene.")
    if command.scene is not None and not spec.requires_side_input:
        raise ValueError(f"Tool {spec.kind.value!r} does not take a scene image.")
    if command.variants:
        if not spec.supports_variants:
            raise ValueError(f"Tool {spec.kind.value!r} does not support variants.")
        for kind in command.variants:
            VariantKind.parse(kind)
    if command.retry_failed < 0:
        raise ValueError("--retry-failed must be >= 0.")


@asynccontextmanager
async def _open_transport(settings: Settings, name: str) -> AsyncIterator[GenerationTransport]:
    if name == "echo":
        yield EchoTransport()
        return
    transport = GeminiTransport(
        api_key=settings.generation.api_key,
        base_url=settings.generation.base_url,
        timeout_seconds=settings.generation.request_timeout_seconds,
    )
    try:
        yield transport
    finally:
        await transport.aclose()


async def _write_output(
    dispatcher: JobDispatcher,
    snapshot: JobSnapshot,
    *,
    output_dir: Path,
    written: set[str],
) -> str:
    if snapshot.status != JobStatus.SUCCESS or snapshot.output is None:
        return f"{snapshot.status.value:<10} {snapshot.label}: {snapshot.error_detail or '-'}"
    target = output_dir / _unique_name(dispatcher.output_filename(snapshot.job_id), written)
    target.write_bytes(await dispatcher.store.read_bytes(snapshot.output))
    return f"{snapshot.status.value:<10} {snapshot.label} -> {target}"


def _log_transition(snapshot: JobSnapshot) -> None:
    logger.debug("Job %s (%s) -> %s", snapshot.job_id, snapshot.label, snapshot.status.value)


def _unique_name(filename: str, written: set[str]) -> str:
    """Same-named inputs from different directories get ``-2``, ``-3``... suffixes."""

    stem, dot, extension = filename.rpartition(".")
    candidate = filename
    counter = 1
    while candidate in written:
        counter += 1
        candidate = f"{stem}-{counter}{dot}{extension}"
    written.add(candidate)
    return candidate
