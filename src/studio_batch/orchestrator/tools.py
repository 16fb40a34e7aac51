"""Batch tools and the request shaping each of them applies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from studio_batch.orchestrator.backend.base import GenerationRequest, InlineImage
from studio_batch.orchestrator.models import VariantKind


class ToolKind(str, Enum):
    """Closed set of batch tools."""

    GLOVES = "gloves"
    ECOMMERCE = "ecommerce"
    VARIANTS = "variants"
    SCENE = "scene"

    @classmethod
    def parse(cls, value: ToolKind | str) -> ToolKind:
        if isinstance(value, ToolKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as error:
            supported = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unsupported tool: {value!r}. Expected one of: {supported}.") from error


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Static properties of one tool."""

    kind: ToolKind
    title: str
    description: str
    output_suffix: str
    uses_reference: bool = False
    requires_side_input: bool = False
    supports_variants: bool = False


@dataclass(slots=True, frozen=True)
class VariantSpec:
    """Request-shaping parameters for one gallery variant."""

    kind: VariantKind
    request_label: str
    display_label: str
    direction: str

    @property
    def job_label(self) -> str:
        return f"Gallery: {self.display_label}"

    @property
    def output_suffix(self) -> str:
        # Colons are not valid in filenames on every platform.
        return "_" + "".join(char for char in self.job_label if char.isalnum())


TOOL_SPECS: dict[ToolKind, ToolSpec] = {
    ToolKind.GLOVES: ToolSpec(
        kind=ToolKind.GLOVES,
        title="Gloves Enhancer",
        description="Retouch gloves to a unified beige cotton look; optional style reference.",
        output_suffix="_glove",
        uses_reference=True,
    ),
    ToolKind.ECOMMERCE: ToolSpec(
        kind=ToolKind.ECOMMERCE,
        title="E-commerce Shot Creator",
        description="Extract the product into a white flat-lay shot; spawn gallery variants.",
        output_suffix="_flatlay",
        supports_variants=True,
    ),
    ToolKind.VARIANTS: ToolSpec(
        kind=ToolKind.VARIANTS,
        title="Variants Generator",
        description="Cinematic luxury lifestyle shot of the product held in a gloved hand.",
        output_suffix="_variant",
    ),
    ToolKind.SCENE: ToolSpec(
        kind=ToolKind.SCENE,
        title="Scene Composer",
        description="Composite each product into one shared reference scene.",
        output_suffix="_composed",
        requires_side_input=True,
    ),
}

VARIANT_SPECS: dict[VariantKind, VariantSpec] = {
    VariantKind.MACRO_DETAIL: VariantSpec(
        kind=VariantKind.MACRO_DETAIL,
        request_label="Macro Detail",
        display_label="Macro",
        direction="Close macro view of beads and tassel; visible texture, shallow depth of field.",
    ),
    VariantKind.LIFESTYLE_TABLE: VariantSpec(
        kind=VariantKind.LIFESTYLE_TABLE,
        request_label="Lifestyle (Table)",
        display_label="Lifestyle",
        direction="Product resting naturally on a wooden or marble table in warm light.",
    ),
    VariantKind.PACKAGING: VariantSpec(
        kind=VariantKind.PACKAGING,
        request_label="Packaging",
        display_label="Packaging",
        direction="Product arranged in or beside a luxury velvet pouch or box.",
    ),
    VariantKind.HAND_HELD: VariantSpec(
        kind=VariantKind.HAND_HELD,
        request_label="Hand Held",
        display_label="Hand Held",
        direction="Close-up of a hand (bare or simple glove) counting the beads.",
    ),
    VariantKind.CONTEXT: VariantSpec(
        kind=VariantKind.CONTEXT,
        request_label="Context",
        display_label="Context",
        direction="Product draped over a book or a decorative art background.",
    ),
}

_GLOVES_PROMPT = """\
Product retouching task: glove refinement.
{reference_rule}
The {target_position}image is the target to edit.
- Keep the hand pose, fingers, wrist and palm exactly as in the target.
- Do not paint over prayer beads or jewelry; they must stay untouched.
- Make the glove fit tightly like a second skin; remove loose wrinkles.
- Replace shiny leather with soft matte light beige cotton on the glove only.
- Output: square 1:1, photorealistic, high definition.
"""
_GLOVES_WITH_REFERENCE = (
    "The FIRST image is the style reference: treat its glove color and texture as ground truth, "
    "so the result looks like part of the same photoshoot."
)
_GLOVES_WITHOUT_REFERENCE = "No reference image: use light beige (#F5F5DC) soft matte cotton."

_ECOMMERCE_PROMPT = """\
Product extraction and flat-lay generator.
Identify the product in the image (material, color, pattern, bead count, tassel).
Produce a straight, symmetrical flat-lay of that exact product on pure white (#FFFFFF).
Remove any hand or glove and reconstruct hidden parts seamlessly.
Keep color and texture identical. Soft even studio light, no harsh shadows. 1:1 output.
"""

_ECOMMERCE_VARIANT_PROMPT = """\
Product photography gallery variant.
Preserve the input product's identity exactly.
Variant type: {request_label}.
Direction: {direction}
Photorealistic, 4K quality, aspect ratio 1:1.
"""

_VARIANTS_PROMPT = """\
Luxury lifestyle product shot.
Keep the product (material, color, tassel, bead shape) identical to the input.
Show it held elegantly by a hand in a high-end fitted glove (fine leather, velvet or silk)
in a tone that complements the product. Cinematic, moody jewelry-advertisement lighting,
bokeh background, high contrast and detail.
"""

_SCENE_PROMPT = """\
Product compositing task.
Image 1 is the reference scene; image 2 is the user product and the immutable source of truth.
Clear the focal point of the scene if occupied, then place the product there with matching
perspective and plausible scale. Add cast and contact shadows (and a reflection on glossy
surfaces) around the product only. Never change the product's pixels, color or lighting.
"""


def tool_spec(kind: ToolKind | str) -> ToolSpec:
    return TOOL_SPECS[ToolKind.parse(kind)]


def variant_spec(kind: VariantKind | str) -> VariantSpec:
    return VARIANT_SPECS[VariantKind.parse(kind)]


def output_filename(
    tool: ToolSpec,
    *,
    input_name: str,
    variant_kind: VariantKind | None = None,
) -> str:
    """``<stem><suffix>.jpg`` for a job's canonical output."""

    stem = input_name.rsplit(".", 1)[0] if "." in input_name.strip(".") else input_name
    suffix = VARIANT_SPECS[variant_kind].output_suffix if variant_kind else tool.output_suffix
    return f"{stem}{suffix}.jpg"


def build_request(  # noqa: PLR0913
    tool: ToolKind,
    *,
    model: str,
    target: InlineImage,
    reference: InlineImage | None = None,
    side_input: InlineImage | None = None,
    variant_kind: VariantKind | None = None,
    aspect_ratio: str = "1:1",
) -> GenerationRequest:
    """Shape one generation request; image order matters to the prompt."""

    metadata = {"tool": tool.value}
    if tool == ToolKind.GLOVES:
        prompt = _GLOVES_PROMPT.format(
            reference_rule=_GLOVES_WITH_REFERENCE if reference else _GLOVES_WITHOUT_REFERENCE,
            target_position="SECOND " if reference else "",
        )
        images = (reference, target) if reference else (target,)
        metadata["reference"] = "yes" if reference else "no"
    elif tool == ToolKind.ECOMMERCE:
        if variant_kind is None:
            prompt = _ECOMMERCE_PROMPT
        else:
            spec = VARIANT_SPECS[variant_kind]
            prompt = _ECOMMERCE_VARIANT_PROMPT.format(
                request_label=spec.request_label,
                direction=spec.direction,
            )
            metadata["variant_kind"] = variant_kind.value
        images = (target,)
    elif tool == ToolKind.VARIANTS:
        prompt = _VARIANTS_PROMPT
        images = (target,)
    else:
        if side_input is None:
            raise ValueError("Scene compositing requires a scene image.")
        prompt = _SCENE_PROMPT
        images = (side_input, target)

    return GenerationRequest(
        model=model,
        prompt=prompt,
        images=images,
        aspect_ratio=aspect_ratio,
        metadata=metadata,
    )
