"""Text segmentation under a byte budget."""

from __future__ import annotations

from typing import Callable, Iterable, List

from .errors import ConfigurationError
from .structures import TextSegment

DEFAULT_ENCODING = "utf-8"
# Widest code point in every Unicode encoding form.
WIDEST_CODE_POINT = chr(0x10FFFF)

Fallback = Callable[[str], List[str]]


def encoded_size(text: str, encoding: str = DEFAULT_ENCODING) -> int:
    """Return the number of bytes ``text`` occupies once encoded."""

    return len(text.encode(encoding))


def minimum_budget(encoding: str = DEFAULT_ENCODING) -> int:
    """Smallest budget guaranteed to hold any single character."""

    try:
        return encoded_size(WIDEST_CODE_POINT, encoding)
    except LookupError as exc:
        raise ConfigurationError(f"Unknown text encoding '{encoding}'.") from exc


def validate_budget(budget: int, encoding: str = DEFAULT_ENCODING) -> int:
    """Return ``budget`` unchanged or raise if it cannot hold one character."""

    floor = minimum_budget(encoding)
    if budget < floor:
        raise ConfigurationError(
            f"Byte budget {budget} is too small: at least {floor} bytes are "
            f"needed to hold one {encoding} character."
        )
    return budget


def _pack(
    pieces: Iterable[str],
    *,
    separator: str,
    budget: int,
    encoding: str,
    fallback: Fallback,
) -> List[str]:
    """Greedily join pieces with ``separator`` while staying within budget.

    A piece that cannot fit even on its own is handed to ``fallback`` and
    its results are emitted as they are.
    """

    packed: List[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}{separator}{piece}" if current else piece
        if encoded_size(candidate, encoding) <= budget:
            current = candidate
            continue
        if current:
            packed.append(current)
            current = ""
            if encoded_size(piece, encoding) <= budget:
                current = piece
                continue
        packed.extend(fallback(piece))
    if current:
        packed.append(current)
    return packed


def _oversized_character(char: str) -> List[str]:
    raise ConfigurationError(
        f"Byte budget cannot hold the character {char!r}; raise the budget."
    )


def _split_characters(word: str, budget: int, encoding: str) -> List[str]:
    return _pack(
        word,
        separator="",
        budget=budget,
        encoding=encoding,
        fallback=_oversized_character,
    )


def _split_words(line: str, budget: int, encoding: str) -> List[str]:
    return _pack(
        line.split(" "),
        separator=" ",
        budget=budget,
        encoding=encoding,
        fallback=lambda word: _split_characters(word, budget, encoding),
    )


def segment_text(
    text: str,
    budget: int,
    encoding: str = DEFAULT_ENCODING,
) -> List[str]:
    """Split text into line-aligned chunks whose encoded size fits the budget.

    Lines are packed greedily. A line too large on its own is split on
    spaces, and a word too large on its own is split into characters.
    """

    validate_budget(budget, encoding)
    if not text:
        return []
    return _pack(
        text.split("\n"),
        separator="\n",
        budget=budget,
        encoding=encoding,
        fallback=lambda line: _split_words(line, budget, encoding),
    )


class Segmenter:
    """Turns raw document text into ordered translation segments."""

    def __init__(self, budget: int, *, encoding: str = DEFAULT_ENCODING) -> None:
        self.budget = validate_budget(budget, encoding)
        self.encoding = encoding

    def segment(self, text: str) -> List[TextSegment]:
        return [
            TextSegment(index=idx, text=content)
            for idx, content in enumerate(
                segment_text(text, self.budget, self.encoding)
            )
        ]
