from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

# ============================================================================
# Types
# ============================================================================


@dataclass(slots=True)
class CanvasColors:
    """Canvas color configuration.

    Required: bg + fg. Node fills come from each node's own color; accent
    marks selection, suggestions and the connection preview.
    """

    bg: str
    fg: str
    accent: str | None = None
    muted: str | None = None
    border: str | None = None
    highlight: str | None = None


# ============================================================================
# Defaults
# ============================================================================

DEFAULTS = {"bg": "#FFFFFF", "fg": "#27272A", "highlight": "#4ADE80"}

MIX = {
    "muted": 55,
    "border": 12,
    "label_bg": 80,
}

THEMES: dict[str, CanvasColors] = {
    "light": CanvasColors(
        bg="#FFFFFF", fg="#27272A",
        accent="#7C5CBF", muted="#71717A", border="#E4E4E7",
    ),
    "dark": CanvasColors(
        bg="#18181B", fg="#FAFAFA",
        accent="#B4A8D3", muted="#A1A1AA", border="#27272A",
    ),
    "lavender": CanvasColors(
        bg="#F4F1FA", fg="#2E2640",
        accent="#A08ABF", muted="#6B5F80", border="#DDD5EC",
    ),
}


def resolve_theme(name: str | None) -> CanvasColors:
    if name is None:
        return CanvasColors(bg=DEFAULTS["bg"], fg=DEFAULTS["fg"])
    try:
        return THEMES[name]
    except KeyError:
        raise ValueError(f"Unknown theme: {name!r}") from None


# ============================================================================
# SVG style block
# ============================================================================


def build_style_block(font: str) -> str:
    """Build the CSS variable derivation rules for the SVG <style> block."""
    derived_vars = f"""
    --_text:        var(--fg);
    --_muted:       var(--muted, color-mix(in srgb, var(--fg) {MIX["muted"]}%, var(--bg)));
    --_accent:      var(--accent, var(--_muted));
    --_border:      var(--border, color-mix(in srgb, var(--fg) {MIX["border"]}%, var(--bg)));
    --_label-bg:    color-mix(in srgb, var(--bg) {MIX["label_bg"]}%, transparent);
    --_highlight:   var(--highlight, {DEFAULTS["highlight"]});"""

    return "\n".join([
        "<style>",
        f"  @import url('https://fonts.googleapis.com/css2?family={quote(font)}:wght@400;700&amp;display=swap');",
        f"  text {{ font-family: '{font}', system-ui, sans-serif; }}",
        "  .node-title { fill: #FFFFFF; }",
        "  .node-content { fill: #FFFFFF; fill-opacity: 0.8; }",
        f"  svg {{{derived_vars}",
        "  }",
        "</style>",
    ])


def svg_open_tag(
    width: float,
    height: float,
    colors: CanvasColors,
) -> str:
    """Build the SVG opening tag with CSS variables set as inline styles."""
    vars_parts = [
        f"--bg:{colors.bg}",
        f"--fg:{colors.fg}",
    ]
    if colors.accent:
        vars_parts.append(f"--accent:{colors.accent}")
    if colors.muted:
        vars_parts.append(f"--muted:{colors.muted}")
    if colors.border:
        vars_parts.append(f"--border:{colors.border}")
    if colors.highlight:
        vars_parts.append(f"--highlight:{colors.highlight}")

    vars_str = ";".join(vars_parts)
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {width} {height}" '
        f'width="{width}" height="{height}" style="{vars_str};background:var(--bg)">'
    )
