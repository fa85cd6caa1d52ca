"""Provider-agnostic prompt composition.

Turns a style id, a set of filter ids and an optional image caption into a
positive/negative prompt pair. Unknown styles fall back to the default style
and unknown filters are dropped; composition never fails.
"""

from dataclasses import dataclass
from typing import Iterable

from portraitly.services.prompting.catalog import FILTERS, get_filter, get_style

QUALITY_BOILERPLATE = "high quality, detailed, 8k"

NEGATIVE_BOILERPLATE = (
    "(lowres, low quality, worst quality:1.2), (text:1.2), watermark, (frame:1.2), "
    "deformed, ugly, deformed eyes, blur, out of focus, blurry, bad quality"
)

IDENTITY_NEGATIVES = "different person, altered facial structure, changed identity, extra faces"


@dataclass(frozen=True)
class ComposedPrompt:
    positive: str
    negative: str


def filter_phrases(filter_ids: Iterable[str]) -> list[str]:
    """Map filter ids (or labels) to phrases in catalogue order, dropping unknown ids."""
    selected = {f.id for f in (get_filter(key) for key in filter_ids) if f is not None}
    return [f.phrase for f in FILTERS if f.id in selected]


def compose(
    style_id: str | None,
    filter_ids: Iterable[str] = (),
    caption: str | None = None,
) -> ComposedPrompt:
    """Compose the positive and negative prompts for one generation.

    Positive prompt order: caption context, style prompt, filter phrases,
    quality boilerplate. Empty parts are skipped.

    Args:
        style_id: Requested style (unknown ids use the default style)
        filter_ids: Retouch filters, order irrelevant (unknown ids are dropped)
        caption: Optional description of the source image

    Returns:
        ComposedPrompt with positive and negative prompt strings
    """
    caption = caption.strip() if caption else None
    parts = []
    if caption:
        parts.append(f"({caption})")
    parts.append(get_style(style_id).prompt)
    parts.extend(filter_phrases(filter_ids))
    parts.append(QUALITY_BOILERPLATE)

    negative = NEGATIVE_BOILERPLATE
    if caption:
        negative = f"{negative}, {IDENTITY_NEGATIVES}"

    return ComposedPrompt(positive=", ".join(parts), negative=negative)
