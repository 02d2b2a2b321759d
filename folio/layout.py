"""Place lines of text onto fixed-geometry pages."""

from __future__ import annotations

import math
from typing import List

from .errors import ConfigurationError
from .structures import PageGeometry, PlacedLine, Placement


def validate_geometry(geometry: PageGeometry) -> PageGeometry:
    """Reject page geometries that cannot describe a usable page."""

    problems: List[str] = []
    for name in (
        "width",
        "height",
        "line_height",
        "font_size",
    ):
        if getattr(geometry, name) <= 0:
            problems.append(f"{name} must be positive.")
    for name in ("top_margin", "bottom_margin", "left_origin"):
        if getattr(geometry, name) < 0:
            problems.append(f"{name} must not be negative.")
    if geometry.left_origin >= geometry.width:
        problems.append("left_origin must lie inside the page width.")
    if geometry.top_margin + geometry.bottom_margin >= geometry.height:
        problems.append("top and bottom margins leave no room for text.")

    if problems:
        bullet_list = "\n".join(f"- {message}" for message in problems)
        raise ConfigurationError("Invalid page geometry:\n" + bullet_list)
    return geometry


def capacity(geometry: PageGeometry) -> int:
    """Number of lines a single page holds."""

    usable = geometry.first_baseline - geometry.bottom_margin
    if usable < 0:
        return 0
    return math.floor(usable / geometry.line_height) + 1


def place(text: str, geometry: PageGeometry) -> Placement:
    """Lay text out line by line until the cursor crosses the bottom margin.

    Lines that do not fit are returned untouched, in order, as the
    remainder; allocating further pages is left to the caller.
    """

    lines = text.split("\n")
    placement = Placement()
    cursor = geometry.first_baseline
    for position, line in enumerate(lines):
        if cursor < geometry.bottom_margin:
            placement.remainder = lines[position:]
            break
        placement.rendered.append(
            PlacedLine(text=line, x=geometry.left_origin, y=cursor)
        )
        cursor -= geometry.line_height
    return placement


def paginate(text: str, geometry: PageGeometry) -> List[List[PlacedLine]]:
    """Place text over as many pages as needed."""

    if capacity(geometry) < 1:
        raise ConfigurationError("Page geometry cannot hold a single line.")

    pages: List[List[PlacedLine]] = []
    placement = place(text, geometry)
    pages.append(placement.rendered)
    while placement.remainder:
        placement = place("\n".join(placement.remainder), geometry)
        pages.append(placement.rendered)
    return pages
