"""
Confidence → colour mapping for gutters and badges.

Hue is interpolated linearly from red (0°) through yellow (60°) to green
(120°) at full saturation and value. Channels stay floats so a renderer
that supports them shows no banding; ``RgbaColor.to_rgba8`` quantizes
for the ones that don't.
"""

from __future__ import annotations

import colorsys

from codetrust.schemas.score import RgbaColor
from codetrust.utils import clamp01

GREEN_HUE_DEG = 120.0


def color_from_confidence(confidence: float, alpha: float = 1.0) -> RgbaColor:
    c = clamp01(confidence)
    r, g, b = colorsys.hsv_to_rgb(GREEN_HUE_DEG * c / 360.0, 1.0, 1.0)
    return RgbaColor(r=clamp01(r), g=clamp01(g), b=clamp01(b), a=clamp01(alpha))
