"""Portrait style and retouch filter catalogues."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Style:
    id: str
    label: str
    prompt: str
    preview_url: str
    color: str


@dataclass(frozen=True)
class Filter:
    id: str
    label: str
    phrase: str


# First entry is the default for unknown style ids
STYLES: tuple[Style, ...] = (
    Style(
        id="studio_professional",
        label="Studio Professional",
        prompt=(
            "High-end corporate headshot, shot on Canon R5, 85mm portrait lens, f/1.8, "
            "soft studio lighting, three-point lighting setup, neutral grey gradient background, "
            "sharp focus on eyes, 8k resolution, hyper-realistic skin texture, "
            "professional business attire, confident expression"
        ),
        preview_url="https://images.unsplash.com/photo-1560250097-0b93528c311a?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#3b82f6",
    ),
    Style(
        id="neon_dual_tone",
        label="Neon Cyberpunk",
        prompt=(
            "Futuristic cyberpunk portrait, bi-color neon lighting, intense cyan and magenta "
            "rim lights, volumetric fog, dark cinematic background, rain-slicked aesthetic, "
            "Blade Runner style, high contrast, moody, digital art masterpiece, synthwave vibe"
        ),
        preview_url="https://images.unsplash.com/photo-1535713875002-d1d0cf377fde?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#f43f5e",
    ),
    Style(
        id="classic_bw",
        label="Classic Film Noir (B&W)",
        prompt=(
            "Timeless black and white photography, Ilford HP5 Plus film stock, heavy film grain, "
            "high contrast, dramatic chiaroscuro lighting, sharp shadows, "
            "1950s Hollywood aesthetic, emotional, iconic, Leica M6, 50mm lens"
        ),
        preview_url="https://images.unsplash.com/photo-1531427186611-ecfd6d936c79?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#18181b",
    ),
    Style(
        id="ethereal_lighting",
        label="Golden Hour (Ethereal)",
        prompt=(
            "Dreamy outdoor portrait, warm golden hour sunlight, sun flare, soft bokeh background, "
            "nature setting, angelic atmosphere, soft diffusion filter, pastel color palette, "
            "cinematic lighting, shot on Kodak Portra 400"
        ),
        preview_url="https://images.unsplash.com/photo-1534528741775-53994a69daeb?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#f59e0b",
    ),
    Style(
        id="beam_lighting",
        label="Tech CEO (Modern)",
        prompt=(
            "Modern tech entrepreneur, TED Talk stage lighting, dark blurred auditorium "
            "background, smart casual clothing, confident posture, spotlight on face, "
            "sharp 4k video quality, Steve Jobs aesthetic, minimalist"
        ),
        preview_url="https://images.unsplash.com/photo-1506794778202-cad84cf45f1d?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#eab308",
    ),
    Style(
        id="slit_lighting",
        label="Fashion Editorial",
        prompt=(
            "Vogue magazine cover shoot, avant-garde lighting, dramatic fashion pose, "
            "neutral beige background, high fashion styling, sharp jawline, intense gaze, "
            "softbox lighting from top, highly detailed, 8k"
        ),
        preview_url="https://images.unsplash.com/photo-1618077360395-f3068be8e001?q=80&w=250&h=250&auto=format&fit=crop",  # noqa: E501
        color="#ef4444",
    ),
)

# Declared order is the order phrases appear in the prompt
FILTERS: tuple[Filter, ...] = (
    Filter("smooth_skin", "Smooth Skin", "smooth skin texture, beauty retouch"),
    Filter("reduce_circles", "Reduce Circles", "remove dark circles, fresh eyes"),
    Filter("smooth_hair", "Smooth Hair", "silky hair, neat hairstyle"),
    Filter("enhance_contours", "Enhance Contours", "defined facial features, sculpted look"),
    Filter("whiten_teeth", "Whiten Teeth", "bright white teeth, perfect smile"),
    Filter("remove_marks", "Remove Marks", "flawless skin, no blemishes"),
    Filter("gentle_smile", "Gentle Smile", "gentle smile, friendly expression"),
    Filter(
        "serious_expression",
        "Serious Expression",
        "serious emotion, closed mouth, intense stare",
    ),
    Filter("looking_sideways", "Looking Sideways", "looking away, side profile"),
    Filter("direct_gaze", "Direct Gaze", "looking directly at camera, eye contact"),
)

DEFAULT_STYLE = STYLES[0]

_STYLES_BY_ID = {style.id: style for style in STYLES}
# Filters are addressable by id or by their UI label
_FILTERS_BY_KEY = {**{f.id: f for f in FILTERS}, **{f.label: f for f in FILTERS}}


def get_style(style_id: str | None) -> Style:
    """Return the style for style_id, or the default style if unknown."""
    if style_id is None:
        return DEFAULT_STYLE
    return _STYLES_BY_ID.get(style_id, DEFAULT_STYLE)


def get_filter(key: str) -> Filter | None:
    """Return the filter for an id or label, or None if unknown."""
    return _FILTERS_BY_KEY.get(key)


def is_known_style(style_id: str) -> bool:
    return style_id in _STYLES_BY_ID
