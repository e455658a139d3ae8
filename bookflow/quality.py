"""Composite quality score for generated character images.

The score is the sum of five independently capped sub-scores:

=====================  ======  ==========================================
Sub-score              Max     Source
=====================  ======  ==========================================
transparency           30      alpha range from the image inspection
edge quality           25      stdev of the alpha channel (lower is better)
centering              20      fixed approximation, see ``centering_score``
color consistency      15      stdev of the first colour band
technical              10      resolution and file size buckets
=====================  ======  ==========================================

The total is clamped to [0, 100] and rounded half up.
"""

import io
import logging
import math

from PIL import Image, ImageStat

from bookflow.model import AlphaMetadata, QualityBreakdown

logger = logging.getLogger(__name__)

TRANSPARENCY_MAX = 30.0
EDGE_QUALITY_MAX = 25.0
CENTERING_MAX = 20.0
COLOR_CONSISTENCY_MAX = 15.0
TECHNICAL_MAX = 10.0

# Approximation until a center-of-mass analysis exists.
CENTERING_APPROXIMATION = 15.0


def _capped(value: float, maximum: float) -> float:
    return min(maximum, max(0.0, value))


def transparency_score(metadata: AlphaMetadata) -> float:
    alpha_range = metadata.alpha_range.max - metadata.alpha_range.min
    return _capped(alpha_range / 255 * TRANSPARENCY_MAX, TRANSPARENCY_MAX)


def edge_quality_score(alpha_stdev: float | None) -> float:
    stdev = alpha_stdev or 0.0
    return _capped(EDGE_QUALITY_MAX - min(EDGE_QUALITY_MAX, stdev / 10), EDGE_QUALITY_MAX)


def centering_score() -> float:
    """Fixed partial score; not derived from the image."""
    return min(CENTERING_MAX, CENTERING_APPROXIMATION)


def color_consistency_score(color_stdev: float | None) -> float:
    stdev = color_stdev or 0.0
    return _capped(
        COLOR_CONSISTENCY_MAX - min(COLOR_CONSISTENCY_MAX, stdev / 100),
        COLOR_CONSISTENCY_MAX,
    )


def technical_score(metadata: AlphaMetadata) -> float:
    width = metadata.dimensions.width
    height = metadata.dimensions.height
    size = metadata.file_size

    score = 0.0
    if width >= 1024 and height >= 1024:
        score += 5
    elif width >= 768:
        score += 3

    # Sweet spot is 400KB-900KB.
    if 400_000 <= size <= 900_000:
        score += 5
    elif size < 1_200_000:
        score += 3
    return _capped(score, TECHNICAL_MAX)


def score_breakdown(
    metadata: AlphaMetadata,
    alpha_stdev: float | None,
    color_stdev: float | None,
) -> QualityBreakdown:
    parts = {
        "transparency": transparency_score(metadata),
        "edge_quality": edge_quality_score(alpha_stdev),
        "centering": centering_score(),
        "color_consistency": color_consistency_score(color_stdev),
        "technical": technical_score(metadata),
    }
    total = math.floor(min(100.0, max(0.0, sum(parts.values()))) + 0.5)
    return QualityBreakdown(total=total, **parts)


def channel_stdevs(image_bytes: bytes) -> tuple[float | None, float | None]:
    """Return ``(alpha_stdev, color_stdev)``; None where the band is missing."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        image.load()
        if image.mode == "P":
            image = image.convert("RGBA" if "transparency" in image.info else "RGB")
        bands = image.getbands()

        alpha_stdev = None
        if "A" in bands:
            alpha_stdev = ImageStat.Stat(image.getchannel("A")).stddev[0]

        color_stdev = None
        color_bands = [band for band in bands if band != "A"]
        if color_bands:
            color_stdev = ImageStat.Stat(image.getchannel(color_bands[0])).stddev[0]

    return alpha_stdev, color_stdev


def score_quality(image_bytes: bytes, metadata: AlphaMetadata) -> int:
    alpha_stdev, color_stdev = channel_stdevs(image_bytes)
    breakdown = score_breakdown(metadata, alpha_stdev, color_stdev)
    logger.debug(f"Quality breakdown: {breakdown.model_dump()}")
    return breakdown.total


def inspect_alpha(image_bytes: bytes) -> AlphaMetadata:
    """Build ``AlphaMetadata`` directly from image bytes."""
    with Image.open(io.BytesIO(image_bytes)) as image:
        image.load()
        if image.mode == "P":
            image = image.convert("RGBA" if "transparency" in image.info else "RGB")
        width, height = image.size
        if "A" in image.getbands():
            low, high = image.getchannel("A").getextrema()
        else:
            low, high = 255, 255
    return AlphaMetadata.model_validate(
        {
            "hasTransparency": low < 255,
            "alphaRange": {"min": low, "max": high},
            "dimensions": {"width": width, "height": height},
            "fileSize": len(image_bytes),
        }
    )
