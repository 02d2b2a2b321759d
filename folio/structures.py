"""Core data structures for the Folio pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class TextSegment:
    """A budget-bounded slice of document text, in document order."""

    index: int
    text: str


@dataclass(frozen=True)
class TransformContext:
    """Parameters handed unchanged to every transform call of a run."""

    target_language: str = "fr"
    source_language: Optional[str] = "en"
    model: Optional[str] = None


@dataclass(frozen=True)
class PageGeometry:
    """Fixed page canvas used by the layout placer (PDF points)."""

    width: float = 612
    height: float = 794
    top_margin: float = 70
    bottom_margin: float = 60
    left_origin: float = 60
    line_height: float = 14
    font_size: float = 12

    @property
    def first_baseline(self) -> float:
        return self.height - self.top_margin


@dataclass(frozen=True)
class PlacedLine:
    """A line of text anchored at a baseline position on the page."""

    text: str
    x: float
    y: float


@dataclass
class Placement:
    """Outcome of one placement pass over a single page."""

    rendered: List[PlacedLine] = field(default_factory=list)
    remainder: List[str] = field(default_factory=list)


@dataclass
class PageInstructions:
    """Everything a page sink needs to write one page."""

    lines: List[PlacedLine]
    font_size: float
    width: float
    height: float
