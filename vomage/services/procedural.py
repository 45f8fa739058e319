"""Procedural fallback renderer.

A pure function of the prompt text: the same prompt always yields the same
SVG. Used when the primary image provider is unavailable so every job still
ends with an image.
"""

import base64
import hashlib
import math
import random
from dataclasses import dataclass
from typing import Optional
from xml.sax.saxutils import escape

from vomage.services.prompt_synthesizer import keyword_present

# Archetypes are scanned in order; the first keyword hit wins.
ARCHETYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("sky", ("blue sky", "蓝天", "天空", "sky", "clouds")),
    ("mountains", ("green mountains", "青山", "mountains", "mountain", "山")),
    ("water", ("ocean", "sea", "water", "waves", "海", "水")),
    ("sunlight", ("sunlight", "阳光", "golden rays", "sun")),
    ("flowers", ("flowers", "花", "blossom")),
)
DEFAULT_ARCHETYPE = "abstract"

PALETTES: dict[str, tuple[str, ...]] = {
    "sky": ("#87CEEB", "#4169E1", "#191970"),
    "mountains": ("#87CEEB", "#98FB98"),
    "water": ("#87CEEB", "#4682B4", "#006994", "#003366"),
    "sunlight": ("#FFD700", "#FFA500", "#FF8C00", "#FF6347"),
    "flowers": ("#98FB98", "#90EE90", "#228B22"),
    "abstract": ("#DDA0DD", "#DA70D6", "#9370DB"),
}
FLOWER_COLORS = ("#FF69B4", "#FFB6C1", "#FFC0CB", "#FF1493", "#DC143C")
CAPTION_LENGTH = 50


@dataclass(frozen=True)
class ProceduralImage:
    """Rendered SVG plus the archetype that shaped it."""

    svg: str
    archetype: str
    keyword: Optional[str]

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.svg.encode("utf-8")).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"


def pick_archetype(prompt: str) -> tuple[str, Optional[str]]:
    """Return (archetype, matched keyword) for a prompt."""
    for archetype, keywords in ARCHETYPE_KEYWORDS:
        for keyword in keywords:
            if keyword_present(keyword, prompt):
                return archetype, keyword
    if keyword_present("abstract", prompt):
        return DEFAULT_ARCHETYPE, "abstract"
    return DEFAULT_ARCHETYPE, None


def _gradient(colors: tuple[str, ...]) -> str:
    last = max(len(colors) - 1, 1)
    stops = "".join(
        f'<stop offset="{i / last:.2f}" stop-color="{color}"/>' for i, color in enumerate(colors)
    )
    return f'<defs><linearGradient id="bg" x1="0" y1="0" x2="0" y2="1">{stops}</linearGradient></defs>'


def _cloud(x: float, y: float, size: float) -> str:
    return (
        f'<g fill="#FFFFFF" fill-opacity="0.8">'
        f'<circle cx="{x:.1f}" cy="{y:.1f}" r="{size:.1f}"/>'
        f'<circle cx="{x + size:.1f}" cy="{y:.1f}" r="{size * 1.2:.1f}"/>'
        f'<circle cx="{x + size * 2:.1f}" cy="{y:.1f}" r="{size:.1f}"/>'
        f'<circle cx="{x + size * 0.5:.1f}" cy="{y - size * 0.5:.1f}" r="{size * 0.8:.1f}"/>'
        f'<circle cx="{x + size * 1.5:.1f}" cy="{y - size * 0.5:.1f}" r="{size * 0.8:.1f}"/>'
        f"</g>"
    )


def _mountain(x: float, base: float, width: float, height: float, color: str) -> str:
    return (
        f'<polygon fill="{color}" points="{x:.1f},{base:.1f} '
        f'{x + width / 2:.1f},{base - height:.1f} {x + width:.1f},{base:.1f}"/>'
    )


def _wave(width: int, y: float, amplitude: float) -> str:
    points = " ".join(
        f"{x},{y + math.sin(x * 0.02) * amplitude:.1f}" for x in range(0, width + 1, 8)
    )
    return f'<polyline fill="none" stroke="#FFFFFF" stroke-opacity="0.5" stroke-width="2" points="{points}"/>'


def _flower(x: float, y: float, color: str) -> str:
    petals = "".join(
        f'<circle cx="{x + math.cos(i * math.pi / 3) * 15:.1f}" '
        f'cy="{y + math.sin(i * math.pi / 3) * 15:.1f}" r="8" fill="{color}"/>'
        for i in range(6)
    )
    return f'<g>{petals}<circle cx="{x:.1f}" cy="{y:.1f}" r="6" fill="#FFD700"/></g>'


def _shapes(archetype: str, prompt: str, width: int, height: int, rng: random.Random) -> list[str]:
    shapes: list[str] = []
    if archetype == "sky":
        shapes += [
            _cloud(width * 0.2, height * 0.3, 40),
            _cloud(width * 0.6, height * 0.2, 50),
            _cloud(width * 0.8, height * 0.4, 35),
        ]
        if keyword_present("sun", prompt) or "阳光" in prompt:
            shapes.append(f'<circle cx="{width * 0.8:.1f}" cy="{height * 0.2:.1f}" r="40" fill="#FFD700"/>')
    elif archetype == "mountains":
        base = height * 0.7
        shapes += [
            _mountain(0, base, width * 0.4, height * 0.3, "#228B22"),
            _mountain(width * 0.3, base, width * 0.4, height * 0.4, "#32CD32"),
            _mountain(width * 0.6, base, width * 0.4, height * 0.25, "#006400"),
            f'<rect x="0" y="{base:.1f}" width="{width}" height="{height - base:.1f}" fill="#4682B4"/>',
        ]
    elif archetype == "water":
        shapes += [_wave(width, height * (0.4 + i * 0.1), 10 - i * 1.5) for i in range(5)]
    elif archetype == "sunlight":
        cx, cy = width / 2, height / 3
        shapes.append(f'<circle cx="{cx:.1f}" cy="{cy:.1f}" r="60" fill="#FFFF00"/>')
        for i in range(12):
            angle = i * math.pi / 6
            shapes.append(
                f'<line x1="{cx + math.cos(angle) * 70:.1f}" y1="{cy + math.sin(angle) * 70:.1f}" '
                f'x2="{cx + math.cos(angle) * 110:.1f}" y2="{cy + math.sin(angle) * 110:.1f}" '
                f'stroke="#FFD700" stroke-width="4"/>'
            )
    elif archetype == "flowers":
        for i in range(8):
            x = rng.uniform(0.1, 0.9) * width
            y = rng.uniform(0.5, 0.9) * height
            shapes.append(_flower(x, y, FLOWER_COLORS[i % len(FLOWER_COLORS)]))
    else:
        shapes += [
            f'<circle cx="{width * 0.3:.1f}" cy="{height * 0.4:.1f}" r="{width * 0.18:.1f}" '
            f'fill="#FFFFFF" fill-opacity="0.3"/>',
            f'<rect x="{width * 0.45:.1f}" y="{height * 0.5:.1f}" width="{width * 0.35:.1f}" '
            f'height="{height * 0.25:.1f}" fill="#FFFFFF" fill-opacity="0.2" '
            f'transform="rotate({rng.randint(-30, 30)} {width / 2:.1f} {height / 2:.1f})"/>',
        ]
    return shapes


def render_procedural(prompt: str, width: int = 512, height: int = 512) -> ProceduralImage:
    """
    Render a prompt into a deterministic SVG scene.

    Args:
        prompt: Final prompt text
        width: Canvas width in pixels
        height: Canvas height in pixels

    Returns:
        ProceduralImage with the SVG document and the chosen archetype
    """
    archetype, keyword = pick_archetype(prompt)
    rng = random.Random(int(hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:16], 16))

    # Control characters are not allowed in XML text.
    caption = "".join(ch for ch in prompt if ch.isprintable())
    if len(caption) > CAPTION_LENGTH:
        caption = caption[: CAPTION_LENGTH - 3] + "..."
    body = "".join(_shapes(archetype, prompt, width, height, rng))
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}" data-archetype="{archetype}">'
        f"{_gradient(PALETTES[archetype])}"
        f'<rect width="{width}" height="{height}" fill="url(#bg)"/>'
        f"{body}"
        f'<rect x="0" y="{height - 40}" width="{width}" height="40" fill="#000000" fill-opacity="0.5"/>'
        f'<text x="{width / 2:.1f}" y="{height - 15}" fill="#FFFFFF" font-size="14" '
        f'font-family="sans-serif" text-anchor="middle">{escape(caption)}</text>'
        f"</svg>"
    )
    return ProceduralImage(svg=svg, archetype=archetype, keyword=keyword)
