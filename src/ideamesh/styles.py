from __future__ import annotations

from .config import settings
from .types import CanvasOptions

# ============================================================================
# Node box: shared by geometry, hit-testing and rendering
# ============================================================================

NODE_SIZE = {
    "width": 180,
    "height": 120,
}

NODE_DEFAULTS = {
    "color": "#A08ABF",
    "shape": "circle",
}

# Corner radius of a square node (rounded-lg)
SQUARE_CORNER_RADIUS = 8

# Connection handle sits just outside the top-right corner
HANDLE_OFFSET = 8
HANDLE_RADIUS = 12

# ============================================================================
# Edge routing
# ============================================================================

CURVATURE = {
    "default": 15,
    "reciprocal": 35,
}

# Below this magnitude a direction component counts as zero
AXIS_EPSILON = 1e-9

# ============================================================================
# Viewport
# ============================================================================

ZOOM = {
    "min_scale": 0.2,
    "max_scale": 3.0,
    # scale_change = 1 - delta_y * sensitivity
    "sensitivity": 0.01,
}

# Pointer travel (screen px) that turns a press on a node into a drag
DRAG_THRESHOLD = 5

# ============================================================================
# Persistence
# ============================================================================

DRAG_DEBOUNCE_SECONDS = 0.5

# Canvas used for default node placement and AI layout requests; merge_options
# takes the live size from settings (IDEAMESH_CANVAS_WIDTH / _HEIGHT)
CANVAS_SIZE = {
    "width": 1280,
    "height": 800,
}

# Ring radius for nodes created together by one AI turn
BATCH_RING_RADIUS = 220

# ============================================================================
# Text & strokes
# ============================================================================

FONT_SIZES = {
    "node_title": 14,
    "node_content": 12,
    "edge_label": 12,
}

FONT_WEIGHTS = {
    "node_title": 700,
    "node_content": 400,
    "edge_label": 400,
}

STROKE_WIDTHS = {
    "connector": 2,
    "ring": 4,
}

OPACITY = {
    "dimmed_node": 0.3,
    "dimmed_edge": 0.2,
}

# Characters of node content shown on the canvas (two clamped lines)
CONTENT_PREVIEW_CHARS = 60

TEXT_BASELINE_SHIFT = "0.35em"

ARROW_HEAD = {
    "width": 6,
    "height": 6,
}

CANVAS_DEFAULTS = {
    "node_width": NODE_SIZE["width"],
    "node_height": NODE_SIZE["height"],
    "min_scale": ZOOM["min_scale"],
    "max_scale": ZOOM["max_scale"],
    "zoom_sensitivity": ZOOM["sensitivity"],
    "drag_threshold": DRAG_THRESHOLD,
    "default_curvature": CURVATURE["default"],
    "reciprocal_curvature": CURVATURE["reciprocal"],
    "canvas_width": CANVAS_SIZE["width"],
    "canvas_height": CANVAS_SIZE["height"],
    "font": "Inter",
}


def merge_options(options: CanvasOptions | None) -> dict:
    """Overlay the non-None fields of ``options`` on CANVAS_DEFAULTS.

    Canvas size defaults come from ``settings``.
    """
    opts = dict(CANVAS_DEFAULTS)
    opts["canvas_width"] = settings.canvas_width
    opts["canvas_height"] = settings.canvas_height
    if options:
        for key in CANVAS_DEFAULTS:
            value = getattr(options, key)
            if value is not None:
                opts[key] = value
    return opts


def estimate_text_width(text: str, font_size: float, font_weight: int) -> float:
    """Average character width in px at the given font size and weight (proportional font)."""
    if font_weight >= 600:
        width_ratio = 0.58
    elif font_weight >= 500:
        width_ratio = 0.55
    else:
        width_ratio = 0.52
    return len(text) * font_size * width_ratio
