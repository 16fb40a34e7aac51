"""CLI entrypoint for studio-batch."""

from pathlib import Path

import rich_click as click

from studio_batch import __version__
from studio_batch.config import Settings
from studio_batch.controllers import SUPPORTED_TRANSPORTS, BatchCliController, BatchRunCommand
from studio_batch.orchestrator.errors import StudioBatchError
from studio_batch.orchestrator.models import VariantKind
from studio_batch.orchestrator.tools import ToolKind

click.rich_click.USE_MARKDOWN = True
BATCH_CONTROLLER = BatchCliController()


@click.group()
@click.version_option(version=__version__, prog_name="studio-batch")
def studio_batch() -> None:
    """Batch product image generation CLI."""

    try:
        settings = Settings.from_env()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    settings.configure_logging()


@studio_batch.command("tools")
def tools() -> None:
    """List batch tools and gallery variant kinds."""

    _emit_lines(BATCH_CONTROLLER.list_tools())


@studio_batch.command("run")
@click.argument("tool", type=click.Choice([kind.value for kind in ToolKind], case_sensitive=False))
@click.argument(
    "inputs",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--out-dir",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for canonical outputs (default: STUDIO_BATCH_OUTPUT_DIR or ./studio_output).",
)
@click.option(
    "--reference",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Image processed first and used as the style reference (gloves only).",
)
@click.option(
    "--scene",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Shared scene image every product is composited into (scene only).",
)
@click.option(
    "--variant",
    "variants",
    multiple=True,
    type=click.Choice([kind.value for kind in VariantKind], case_sensitive=False),
    help="Gallery variant to spawn from each finished shot (ecommerce only). Can be repeated.",
)
@click.option(
    "--retry-failed",
    type=click.IntRange(min=0, max=10),
    default=0,
    show_default=True,
    help="How many rounds of retrying failed jobs after the batch settles.",
)
@click.option(
    "--transport",
    type=click.Choice(list(SUPPORTED_TRANSPORTS), case_sensitive=False),
    default="gemini",
    show_default=True,
    help="Generation transport; `echo` runs offline and returns the input image.",
)
def run(  # noqa: PLR0913
    tool: str,
    inputs: tuple[Path, ...],
    output_dir: Path | None,
    reference: Path | None,
    scene: Path | None,
    variants: tuple[str, ...],
    retry_failed: int,
    transport: str,
) -> None:
    """Run every input through TOOL and write 1000x1000 JPEG outputs."""

    try:
        lines = BATCH_CONTROLLER.run(
            BatchRunCommand(
                tool=tool,
                inputs=inputs,
                output_dir=output_dir,
                reference=reference,
                scene=scene,
                variants=variants,
                retry_failed=retry_failed,
                transport=transport.lower(),
            ),
        )
    except (ValueError, StudioBatchError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    studio_batch()
