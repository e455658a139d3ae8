"""Seeded visual theme generation.

Themes are embedded in persisted book manifests, so ``generate_theme`` is a
frozen contract: for a given seed it must return the same descriptor on any
platform, forever. Any change to the hash, the generator, the catalogs or
the draw order must bump ``THEME_ALGORITHM_VERSION``.
"""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from bookflow.model import (
    ThemeDescriptor,
    ThemeFont,
    ThemeImage,
    ThemeLayout,
    ThemePalette,
)

THEME_ALGORITHM_VERSION = 1

_MASK32 = 0xFFFFFFFF
_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME = 16777619
_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223

TEXT_COLOR = "#111827"

T = TypeVar("T")


@dataclass(frozen=True)
class FontPairing:
    id: str
    heading: str
    body: str
    hints: tuple[str, ...]
    display: str | None = None


FONT_PAIRINGS: tuple[FontPairing, ...] = (
    FontPairing(
        id="storybook-bright",
        heading="var(--font-fredoka), var(--font-heading-var), system-ui",
        body="var(--font-nunito), var(--font-body-var), system-ui",
        hints=("bold flat shapes", "modern storybook"),
    ),
    FontPairing(
        id="classic-serif",
        heading="var(--font-lora), var(--font-heading-var), serif",
        body="var(--font-lora), var(--font-body-var), serif",
        hints=("classic storybook", "painterly"),
    ),
    FontPairing(
        id="rounded-fun",
        heading="var(--font-mplus-rounded), var(--font-heading-var), system-ui",
        body="var(--font-nunito), var(--font-body-var), system-ui",
        hints=("playful", "rounded forms"),
    ),
    FontPairing(
        id="modern-clean",
        heading="var(--font-heading-var), Inter, system-ui",
        body="var(--font-body-var), Atkinson Hyperlegible, system-ui",
        hints=("minimal", "clean lines"),
    ),
)

PLACEMENTS = ("imageLeft", "imageRight", "imageTop")
ASPECT_RATIOS = ("4:3", "3:2", "1:1")


def seed_hash(seed: str) -> int:
    """32-bit FNV-1a over the seed's UTF-16 code units."""
    h = _FNV_OFFSET_BASIS
    data = seed.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * _FNV_PRIME) & _MASK32
    return h


def seeded_rng(seed: str) -> Callable[[], float]:
    """Linear-congruential generator yielding floats in [0, 1)."""
    state = seed_hash(seed)

    def rng() -> float:
        nonlocal state
        state = (_LCG_MULTIPLIER * state + _LCG_INCREMENT) & _MASK32
        return state / 0x100000000

    return rng


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def hsl_to_hex(h: float, s: float, l: float) -> str:
    s /= 100
    l /= 100
    c = (1 - abs(2 * l - 1)) * s
    x = c * (1 - abs((h / 60) % 2 - 1))
    m = l - c / 2
    if 0 <= h < 60:
        r, g, b = c, x, 0.0
    elif 60 <= h < 120:
        r, g, b = x, c, 0.0
    elif 120 <= h < 180:
        r, g, b = 0.0, c, x
    elif 180 <= h < 240:
        r, g, b = 0.0, x, c
    elif 240 <= h < 300:
        r, g, b = x, 0.0, c
    else:
        r, g, b = c, 0.0, x
    return "#" + "".join(
        format(_round_half_up((v + m) * 255), "02x") for v in (r, g, b)
    )


def _pick(rng: Callable[[], float], items: Sequence[T]) -> T:
    if not items:
        raise ValueError("cannot pick from an empty sequence")
    idx = math.floor(rng() * len(items))
    return items[idx if 0 <= idx < len(items) else 0]


def generate_theme(seed: str) -> ThemeDescriptor:
    rng = seeded_rng(seed)

    base_hue = math.floor(rng() * 360)
    palette = ThemePalette(
        primary=hsl_to_hex(base_hue, 65, 55),
        secondary=hsl_to_hex((base_hue + 40) % 360, 55, 60),
        accent=hsl_to_hex((base_hue + 300) % 360, 70, 50),
        bg=hsl_to_hex((base_hue + 20) % 360, 60, 96),
        text=TEXT_COLOR,
        muted=hsl_to_hex((base_hue + 20) % 360, 25, 85),
    )

    # Draw order is part of the contract: font, placement, aspect, gutter.
    try:
        pairing = _pick(rng, FONT_PAIRINGS)
    except ValueError:
        pairing = FONT_PAIRINGS[0]
    placement = _pick(rng, PLACEMENTS)
    aspect_ratio = _pick(rng, ASPECT_RATIOS)
    gutter = _round_half_up(min(28.0, max(16.0, 16 + rng() * 16)))

    return ThemeDescriptor(
        id=pairing.id,
        seed=seed,
        palette=palette,
        font=ThemeFont(
            heading=pairing.heading, body=pairing.body, display=pairing.display
        ),
        layout=ThemeLayout(image_placement=placement, gutter=gutter),
        image=ThemeImage(aspect_ratio=aspect_ratio, style_hints=list(pairing.hints)),
    )


def resolve_theme(existing: ThemeDescriptor | dict | None, seed: str) -> ThemeDescriptor:
    """Return the stored theme when a book has one, else the seed-derived one."""
    if existing is None:
        return generate_theme(seed)
    return ThemeDescriptor.model_validate(existing)


def css_vars_for_theme(theme: ThemeDescriptor) -> dict[str, str]:
    return {
        "--color-bg": theme.palette.bg,
        "--color-text": theme.palette.text,
        "--color-primary": theme.palette.primary,
        "--color-accent": theme.palette.accent,
        "--color-muted": theme.palette.muted,
        "--font-body": theme.font.body,
        "--font-heading": theme.font.heading,
    }


def css_aspect(aspect_ratio: str) -> str:
    """``"4:3"`` -> ``"4 / 3"``."""
    width, height = aspect_ratio.split(":")
    return f"{width.strip()} / {height.strip()}"
