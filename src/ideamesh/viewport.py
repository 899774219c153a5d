from __future__ import annotations

import math
from dataclasses import dataclass, replace

from .types import CanvasOptions, Point
from .styles import merge_options

# ============================================================================
# Viewport transform: uniform scale + translation, world -> screen
# ============================================================================


@dataclass(frozen=True, slots=True)
class Transform:
    """``screen = world * scale + (x, y)``."""

    scale: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def to_world(self, point: Point) -> Point:
        return Point(
            x=(point.x - self.x) / self.scale,
            y=(point.y - self.y) / self.scale,
        )

    def to_screen(self, point: Point) -> Point:
        return Point(
            x=point.x * self.scale + self.x,
            y=point.y * self.scale + self.y,
        )

    def svg_attr(self) -> str:
        return f"translate({self.x} {self.y}) scale({self.scale})"


@dataclass(frozen=True, slots=True)
class _PinchReference:
    distance: float
    center: Point
    transform: Transform


class Viewport:
    """Owns the pan/zoom transform. Every change goes through a method here."""

    def __init__(self, options: CanvasOptions | None = None) -> None:
        opts = merge_options(options)
        self.min_scale: float = opts["min_scale"]
        self.max_scale: float = opts["max_scale"]
        self.sensitivity: float = opts["zoom_sensitivity"]
        self._transform = Transform()
        self._pinch: _PinchReference | None = None

    @property
    def transform(self) -> Transform:
        return self._transform

    @property
    def is_pinching(self) -> bool:
        return self._pinch is not None

    def to_world(self, point: Point) -> Point:
        return self._transform.to_world(point)

    def to_screen(self, point: Point) -> Point:
        return self._transform.to_screen(point)

    def clamp_scale(self, scale: float) -> float:
        return max(self.min_scale, min(self.max_scale, scale))

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def zoom_at(self, screen_point: Point, delta_y: float) -> bool:
        """Wheel zoom keeping the world point under ``screen_point`` fixed.

        Returns False when the scale is already at the clamp bound.
        """
        scale_change = 1 - delta_y * self.sensitivity
        old = self._transform
        if scale_change <= 0:
            new_scale = self.min_scale
        else:
            new_scale = self.clamp_scale(old.scale * scale_change)
        if new_scale == old.scale:
            return False
        self._transform = _scaled_about(old, screen_point, new_scale)
        return True

    def pan_by(self, dx: float, dy: float) -> None:
        t = self._transform
        self._transform = replace(t, x=t.x + dx, y=t.y + dy)

    def pinch(self, distance_ratio: float, screen_center: Point) -> None:
        """Scale by ``distance_ratio`` about ``screen_center``.

        During a two-finger gesture the ratio is relative to the distance at
        ``begin_pinch`` and the world point under the starting midpoint follows
        the current midpoint, which pans and zooms in one step.
        """
        if distance_ratio <= 0 or not math.isfinite(distance_ratio):
            return
        ref = self._pinch
        base = ref.transform if ref else self._transform
        anchor = ref.center if ref else screen_center

        new_scale = self.clamp_scale(base.scale * distance_ratio)
        world = base.to_world(anchor)
        self._transform = Transform(
            scale=new_scale,
            x=screen_center.x - world.x * new_scale,
            y=screen_center.y - world.y * new_scale,
        )

    def begin_pinch(self, p1: Point, p2: Point) -> None:
        distance = _distance(p1, p2)
        if distance == 0:
            return
        self._pinch = _PinchReference(
            distance=distance,
            center=_midpoint(p1, p2),
            transform=self._transform,
        )

    def update_pinch(self, p1: Point, p2: Point) -> None:
        if self._pinch is None:
            self.begin_pinch(p1, p2)
            return
        distance = _distance(p1, p2)
        if distance == 0:
            return
        self.pinch(distance / self._pinch.distance, _midpoint(p1, p2))

    def end_pinch(self) -> None:
        self._pinch = None

    def reset(self) -> None:
        self._transform = Transform()
        self._pinch = None


def _scaled_about(t: Transform, screen_point: Point, new_scale: float) -> Transform:
    ratio = new_scale / t.scale
    return Transform(
        scale=new_scale,
        x=screen_point.x - (screen_point.x - t.x) * ratio,
        y=screen_point.y - (screen_point.y - t.y) * ratio,
    )


def _distance(a: Point, b: Point) -> float:
    return math.sqrt((b.x - a.x) ** 2 + (b.y - a.y) ** 2)


def _midpoint(a: Point, b: Point) -> Point:
    return Point(x=(a.x + b.x) / 2, y=(a.y + b.y) / 2)
