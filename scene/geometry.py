"""
scene/geometry.py

Geometry helpers shared by the SVG parser and the scene converters.
"""

from __future__ import annotations

import math
import re
from typing import Optional

from models import Position

_TRANSLATE_RE = re.compile(
    r"translate\(\s*([-+]?\d*\.?\d+(?:[eE][-+]?\d+)?)(?:[,\s]+([-+]?\d*\.?\d+(?:[eE][-+]?\d+)?))?\s*\)"
)


def extract_translation(transform: Optional[str]) -> Position:
    """Extract the offset of a ``translate(x, y)`` transform attribute.

    A missing attribute or one without a translate yields ``(0, 0)``,
    meaning "no offset known".  ``translate(x)`` implies ``y = 0``.
    """
    m = _TRANSLATE_RE.search(transform or "")
    if not m:
        return Position(0.0, 0.0)
    return Position(float(m.group(1)), float(m.group(2) or 0.0))


def curvature_point(start: Position, end: Position, curvature: float = 0.5) -> Position:
    """Control point bending the segment *start* -> *end* into an arc.

    The midpoint is pushed along the segment's left-hand normal by
    ``curvature * |end - start|``.  Swapping the endpoints flips the side,
    a negative *curvature* does the same.

    Coincident endpoints return that point unchanged.  A vertical segment
    has no finite slope; its normal is horizontal.
    """
    dx = end.x - start.x
    dy = end.y - start.y
    mid_x = (start.x + end.x) / 2
    mid_y = (start.y + end.y) / 2

    if dx == 0 and dy == 0:
        return Position(start.x, start.y)

    distance = math.hypot(dx, dy) * curvature

    if dx == 0:
        # Normal of a downward segment points to -x, upward to +x
        return Position(mid_x - distance if dy > 0 else mid_x + distance, mid_y)

    perp_angle = math.atan2(dy, dx) + math.pi / 2
    return Position(
        mid_x + math.cos(perp_angle) * distance,
        mid_y + math.sin(perp_angle) * distance,
    )


def bounding_box(points: list) -> tuple:
    """``(min_x, min_y, width, height)`` of a list of ``Position``."""
    if not points:
        return 0.0, 0.0, 0.0, 0.0
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys)
