from __future__ import annotations

from typing import Sequence

from ..types import AccessorySummary, RenderConfiguration

MUST_INCLUDE_LIMIT = 12

NEGATIVE_CONSTRAINTS = """Constraints:
- One bike only. No rider. No people.
- No text, no watermark, no labels.
- Do not add extra bikes or extra objects."""

COMPACT_NEGATIVE_CONSTRAINTS = "No rider, no people, no extra bikes or objects, no text, no watermark."

_STYLE_LINES = {
    "more_real": "Convert the photo into a photorealistic studio product render with PBR materials and accurate shadows.",
    "slightly_stylized": (
        "Convert the photo into a high-quality studio 3D product render with subtle stylization, "
        "still realistic materials."
    ),
    "studio_3d": (
        "Convert the photo into a premium studio 3D product render (catalog look), "
        "realistic materials, clean lighting."
    ),
}
_DEFAULT_STYLE_LINE = (
    "Convert the photo into a clean studio product render with realistic materials and soft lighting."
)

_COMPACT_STYLE = {
    "more_real": "Photorealistic studio render, PBR materials, accurate shadows.",
    "slightly_stylized": "Studio 3D render, subtle stylization, realistic materials.",
    "studio_3d": "Premium studio 3D catalog render, clean lighting.",
}
_DEFAULT_COMPACT_STYLE = "Clean studio product render."


def variant_text(variant: str) -> str:
    return "BMW R1300GS Adventure" if variant == "r1300gs_adventure" else "BMW R1300GS"


def view_text(view: str) -> str:
    if view == "front_3q":
        return "front three-quarter view"
    if view == "rear_3q":
        return "rear three-quarter view"
    return f"{view} side view"


def background_text(background: str) -> str:
    if background == "white":
        return "pure white seamless studio background"
    if background == "studio_gray":
        return "neutral studio gray seamless background"
    return "neutral light gray seamless background"


def style_text(realism: str, *, compact: bool = False) -> str:
    if compact:
        return _COMPACT_STYLE.get(realism, _DEFAULT_COMPACT_STYLE)
    return _STYLE_LINES.get(realism, _DEFAULT_STYLE_LINE)


def _accessory_lines(accessories: Sequence[AccessorySummary]) -> str:
    if not accessories:
        return "- (none)"
    return "\n".join(
        f"- {item.name}: {item.description}" if item.description else f"- {item.name}"
        for item in accessories
    )


def _must_include_lines(accessories: Sequence[AccessorySummary]) -> str:
    if not accessories:
        return "- (none)"
    return "\n".join(f"- {item.name}" for item in accessories[:MUST_INCLUDE_LIMIT])


def _compose_full(config: RenderConfiguration, accessories: Sequence[AccessorySummary]) -> str:
    bike = variant_text(config.variant)
    return f"""You are editing a photo of a motorcycle.

Goal:
- Keep the same motorcycle identity and overall silhouette from the input photo.
- Transform it into a single clean {bike} studio product render, {view_text(config.view)}.
- Keep geometry consistent with a real {bike}.

Style:
- {style_text(config.realism)}
- Lighting: professional studio softboxes, clean highlights, realistic shadow under the bike.
- Background: {background_text(config.background)}

Accessories:
Install and clearly show these accessories mounted on the bike:
{_accessory_lines(accessories)}

Important:
- If the input photo already contains luggage, bars, guards, racks, or similar accessories, REPLACE them with the specified accessories above. Do not merge old and new parts.
- Make the installed accessories clearly visible and prominent in the final render (do not hide them).

Must visibly include (non-negotiable):
{_must_include_lines(accessories)}
If any item above is not visible, regenerate and fix until all are visible.

{NEGATIVE_CONSTRAINTS}"""


def _compose_compact(
    config: RenderConfiguration,
    accessories: Sequence[AccessorySummary],
    max_length: int,
) -> str:
    bike = variant_text(config.variant)
    head = (
        f"Edit this motorcycle photo into one clean {bike} studio product render, "
        f"{view_text(config.view)}. Keep the same bike identity and silhouette. "
        f"{style_text(config.realism, compact=True)} "
        f"Background: {background_text(config.background)}. "
        "Replace any existing luggage, bars, guards or racks with the listed accessories; "
        "do not merge old and new parts.\n"
        "Must visibly include:"
    )
    tail = f"\n{COMPACT_NEGATIVE_CONSTRAINTS}"

    checklist = ""
    for item in accessories:
        line = f"\n- {item.name}"
        if len(head) + len(checklist) + len(line) + len(tail) > max_length:
            break
        checklist += line
    if not checklist and not accessories:
        checklist = "\n- (none)"

    prompt = head + checklist + tail
    return prompt[:max_length]


def compose_prompt(
    config: RenderConfiguration,
    accessories: Sequence[AccessorySummary],
    max_length: int | None = None,
) -> str:
    """
    Build the edit instruction for a render.

    With ``max_length`` unset the full instruction is returned, accessory
    descriptions included. With ``max_length`` set, a compact instruction is
    built from accessory names only; names are added while the whole prompt
    still fits and the result is cut to ``max_length`` as a last resort.
    """
    if max_length is None:
        return _compose_full(config, accessories)
    return _compose_compact(config, accessories, max(0, max_length))
