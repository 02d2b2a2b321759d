"""High-level orchestration: segment, translate, lay out."""

from __future__ import annotations

import pathlib
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .documents import BasePageSink, BaseTextSource
from .errors import (
    CancellationError,
    ConfigurationError,
    EmptyInputError,
    FolioError,
    OverwriteRefusedError,
    TransformFailure,
)
from .layout import paginate, place
from .ocr import DEFAULT_OCR_LANGUAGE, OcrClient
from .segmenter import Segmenter
from .structures import (
    PageGeometry,
    PageInstructions,
    PlacedLine,
    TextSegment,
    TransformContext,
)

Transform = Callable[[str, TransformContext], str]
ProgressCallback = Callable[[int, int], None]

OVERFLOW_TRUNCATE = "truncate"
OVERFLOW_PAGINATE = "paginate"
OVERFLOW_POLICIES = (OVERFLOW_TRUNCATE, OVERFLOW_PAGINATE)


class SegmentPipeline:
    """Runs the transform over segments one at a time, in order.

    The first failure ends the run and no partial text is returned.
    Cancellation is checked before every call so an in-flight request is
    allowed to finish but no new one is issued.
    """

    def __init__(
        self,
        transform: Transform,
        *,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.transform = transform
        self.cancel_event = cancel_event
        self.progress = progress

    def run(self, segments: Sequence[TextSegment], context: TransformContext) -> str:
        results: List[str] = []
        total = len(segments)
        for segment in segments:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise CancellationError(
                    f"Run cancelled before segment {segment.index + 1} of {total}."
                )
            try:
                translated = self.transform(segment.text, context)
            except TransformFailure as exc:
                if exc.segment_index is None:
                    exc.segment_index = segment.index
                raise
            except KeyboardInterrupt as exc:
                raise CancellationError("Run interrupted by user.") from exc

            if not isinstance(translated, str) or not translated:
                raise TransformFailure(
                    "Transform returned no text.",
                    segment_index=segment.index,
                )
            results.append(translated)
            if self.progress is not None:
                self.progress(len(results), total)

        return "\n".join(results)


@dataclass
class RunSummary:
    """Report returned after processing a document."""

    output_path: pathlib.Path
    document_type: str
    page_count: int
    total_bytes: int
    total_segments: int
    pages_written: int
    placed_lines: int
    overflow_lines: int
    provider_name: str
    target_language: Optional[str]
    source_language: Optional[str]
    elapsed_seconds: float


def write_layout(
    text: str,
    sink: BasePageSink,
    geometry: PageGeometry,
    overflow: str = OVERFLOW_TRUNCATE,
) -> Tuple[int, int, int]:
    """Lay text out into the sink; return pages, placed lines, dropped lines."""

    if overflow == OVERFLOW_PAGINATE:
        pages = paginate(text, geometry)
        dropped = 0
    else:
        placement = place(text, geometry)
        pages = [placement.rendered]
        dropped = len(placement.remainder)

    for lines in pages:
        sink.write_page(_instructions(lines, geometry))
    return len(pages), sum(len(lines) for lines in pages), dropped


def _instructions(lines: List[PlacedLine], geometry: PageGeometry) -> PageInstructions:
    return PageInstructions(
        lines=lines,
        font_size=geometry.font_size,
        width=geometry.width,
        height=geometry.height,
    )


def _check_overflow(overflow: str) -> str:
    if overflow not in OVERFLOW_POLICIES:
        raise ConfigurationError(
            f"Unknown overflow policy '{overflow}'. "
            f"Choose one of: {', '.join(OVERFLOW_POLICIES)}."
        )
    return overflow


class TranslationRunner:
    """Coordinates extraction, translation, and page layout."""

    def __init__(
        self,
        *,
        source: BaseTextSource,
        sink: BasePageSink,
        transform: Transform,
        context: TransformContext,
        segmenter: Segmenter,
        geometry: PageGeometry,
        document_type: str = "document",
        provider_name: str = "custom",
        overflow: str = OVERFLOW_TRUNCATE,
        cancel_event: Optional[threading.Event] = None,
        verbose: bool = False,
    ) -> None:
        self.source = source
        self.sink = sink
        self.transform = transform
        self.context = context
        self.segmenter = segmenter
        self.geometry = geometry
        self.document_type = document_type
        self.provider_name = provider_name
        self.overflow = _check_overflow(overflow)
        self.cancel_event = cancel_event
        self.verbose = verbose

    def run(self, output_path: pathlib.Path) -> RunSummary:
        start_time = time.time()

        page_count = self.source.page_count()
        extracted = self.source.extract_text()
        if not extracted.strip():
            raise EmptyInputError("No text found in the document to translate.")

        segments = self.segmenter.segment(extracted)
        total_bytes = len(extracted.encode(self.segmenter.encoding))
        if self.verbose:
            print(
                f"Prepared {len(segments)} segments from {page_count} pages "
                f"({total_bytes} bytes, budget {self.segmenter.budget})."
            )

        pipeline = SegmentPipeline(
            self.transform,
            cancel_event=self.cancel_event,
            progress=self._report_progress if self.verbose else None,
        )
        translated = pipeline.run(segments, self.context)

        pages_written, placed, dropped = write_layout(
            translated, self.sink, self.geometry, self.overflow
        )
        if dropped and self.verbose:
            print(f"{dropped} lines did not fit on the page and were left out.")
        self.sink.save(output_path)

        return RunSummary(
            output_path=output_path,
            document_type=self.document_type,
            page_count=page_count,
            total_bytes=total_bytes,
            total_segments=len(segments),
            pages_written=pages_written,
            placed_lines=placed,
            overflow_lines=dropped,
            provider_name=self.provider_name,
            target_language=self.context.target_language,
            source_language=self.context.source_language,
            elapsed_seconds=time.time() - start_time,
        )

    @staticmethod
    def _report_progress(completed: int, total: int) -> None:
        print(f"Translated segment {completed} of {total}.")


class OcrRunner:
    """Recognises text in an image and lays it out on a new page."""

    def __init__(
        self,
        *,
        client: OcrClient,
        sink: BasePageSink,
        geometry: PageGeometry,
        language: str = DEFAULT_OCR_LANGUAGE,
        overflow: str = OVERFLOW_TRUNCATE,
        verbose: bool = False,
    ) -> None:
        self.client = client
        self.sink = sink
        self.geometry = geometry
        self.language = language
        self.overflow = _check_overflow(overflow)
        self.verbose = verbose

    def run(self, image_path: pathlib.Path, output_path: pathlib.Path) -> RunSummary:
        start_time = time.time()

        text = self.client.recognise(image_path, self.language)
        if self.verbose:
            print(f"Recognised {len(text)} characters in {image_path.name}.")

        if text.strip():
            pages_written, placed, dropped = write_layout(
                text, self.sink, self.geometry, self.overflow
            )
        else:
            self.sink.write_page(_instructions([], self.geometry))
            pages_written, placed, dropped = 1, 0, 0
        self.sink.save(output_path)

        return RunSummary(
            output_path=output_path,
            document_type="image",
            page_count=1,
            total_bytes=len(text.encode("utf-8")),
            total_segments=0,
            pages_written=pages_written,
            placed_lines=placed,
            overflow_lines=dropped,
            provider_name="ocr",
            target_language=None,
            source_language=self.language,
            elapsed_seconds=time.time() - start_time,
        )


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            f"Input file not found: {input_path}. Please provide a readable file."
        )
    if not input_path.is_file():
        raise FolioError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
