from __future__ import annotations

import pathlib
import threading

import pytest

from folio.documents import PlainTextSource, RecordingSink
from folio.errors import (
    CancellationError,
    ConfigurationError,
    EmptyInputError,
    TransformFailure,
)
from folio.pipeline import OcrRunner, SegmentPipeline, TranslationRunner
from folio.segmenter import Segmenter
from folio.structures import PageGeometry, TextSegment, TransformContext

THREE_LINE_PAGE = PageGeometry(
    width=200,
    height=100,
    top_margin=10,
    bottom_margin=62,
    left_origin=5,
    line_height=14,
)


def _segments(*texts: str) -> list[TextSegment]:
    return [TextSegment(index=idx, text=text) for idx, text in enumerate(texts)]


def _upper(text: str, context: TransformContext) -> str:
    return text.upper()


class _RecordingTransform:
    def __init__(self, fail_at: int | None = None) -> None:
        self.calls: list[str] = []
        self.contexts: list[TransformContext] = []
        self.fail_at = fail_at

    def __call__(self, text: str, context: TransformContext) -> str:
        self.calls.append(text)
        self.contexts.append(context)
        if self.fail_at is not None and len(self.calls) - 1 == self.fail_at:
            raise TransformFailure("service returned 500", detail="boom")
        return text.upper()


def test_results_are_joined_in_segment_order() -> None:
    pipeline = SegmentPipeline(_upper)
    assert pipeline.run(_segments("ab", "cd"), TransformContext()) == "AB\nCD"


def test_context_is_passed_unchanged_to_every_call() -> None:
    transform = _RecordingTransform()
    context = TransformContext(target_language="de", source_language="en")
    SegmentPipeline(transform).run(_segments("a", "b", "c"), context)
    assert transform.calls == ["a", "b", "c"]
    assert all(seen is context for seen in transform.contexts)


def test_failure_aborts_the_run_and_skips_later_segments() -> None:
    transform = _RecordingTransform(fail_at=1)
    pipeline = SegmentPipeline(transform)
    with pytest.raises(TransformFailure) as excinfo:
        pipeline.run(_segments("a", "b", "c"), TransformContext())
    assert transform.calls == ["a", "b"]
    assert excinfo.value.segment_index == 1
    assert excinfo.value.detail == "boom"
    assert str(excinfo.value).startswith("Segment 2:")


def test_empty_transform_result_is_a_failure() -> None:
    pipeline = SegmentPipeline(lambda text, context: "")
    with pytest.raises(TransformFailure) as excinfo:
        pipeline.run(_segments("a"), TransformContext())
    assert excinfo.value.segment_index == 0


def test_cancellation_stops_before_the_next_call() -> None:
    cancel = threading.Event()
    calls: list[str] = []

    def transform(text: str, context: TransformContext) -> str:
        calls.append(text)
        cancel.set()
        return text

    pipeline = SegmentPipeline(transform, cancel_event=cancel)
    with pytest.raises(CancellationError) as excinfo:
        pipeline.run(_segments("a", "b"), TransformContext())
    assert calls == ["a"]
    assert not isinstance(excinfo.value, TransformFailure)


def test_keyboard_interrupt_surfaces_as_cancellation() -> None:
    def transform(text: str, context: TransformContext) -> str:
        raise KeyboardInterrupt

    with pytest.raises(CancellationError):
        SegmentPipeline(transform).run(_segments("a"), TransformContext())


def test_progress_reports_each_completed_segment() -> None:
    seen: list[tuple[int, int]] = []
    SegmentPipeline(_upper, progress=lambda done, total: seen.append((done, total))).run(
        _segments("a", "b"), TransformContext()
    )
    assert seen == [(1, 2), (2, 2)]


def _runner(source, sink, transform=_upper, **kwargs) -> TranslationRunner:
    options = {
        "context": TransformContext(target_language="fr", source_language="en"),
        "segmenter": Segmenter(9000),
        "geometry": PageGeometry(),
        "document_type": "txt",
        "provider_name": "test",
    }
    options.update(kwargs)
    return TranslationRunner(source=source, sink=sink, transform=transform, **options)


def test_runner_concatenates_pages_translates_and_lays_out() -> None:
    sink = RecordingSink()
    source = PlainTextSource(["hello world", "second page"])
    output = pathlib.Path("out.pdf")

    summary = _runner(source, sink).run(output)

    assert sink.saved_to == output
    assert len(sink.pages) == 1
    assert [line.text for line in sink.pages[0].lines] == [
        "HELLO WORLD",
        "SECOND PAGE",
        "",
    ]
    assert sink.pages[0].font_size == 12
    assert summary.page_count == 2
    assert summary.total_segments == 1
    assert summary.placed_lines == 3
    assert summary.overflow_lines == 0
    assert summary.target_language == "fr"


def test_runner_sends_one_request_per_segment() -> None:
    transform = _RecordingTransform()
    source = PlainTextSource(["hello world\nfoo"])
    _runner(source, RecordingSink(), transform, segmenter=Segmenter(10)).run(
        pathlib.Path("out.pdf")
    )
    # every page is followed by a newline, which stays with the last segment
    assert transform.calls == ["hello", "world", "foo\n"]


def test_blank_document_is_rejected_before_any_request() -> None:
    transform = _RecordingTransform()
    sink = RecordingSink()
    with pytest.raises(EmptyInputError):
        _runner(PlainTextSource(["  ", ""]), sink, transform).run(pathlib.Path("x.pdf"))
    assert transform.calls == []
    assert sink.pages == []


def test_failed_run_writes_nothing() -> None:
    sink = RecordingSink()
    transform = _RecordingTransform(fail_at=0)
    with pytest.raises(TransformFailure):
        _runner(PlainTextSource(["text"]), sink, transform).run(pathlib.Path("x.pdf"))
    assert sink.pages == []
    assert sink.saved_to is None


def test_truncate_policy_reports_dropped_lines() -> None:
    sink = RecordingSink()
    summary = _runner(
        PlainTextSource(["a\nb\nc\nd\ne"]),
        sink,
        geometry=THREE_LINE_PAGE,
    ).run(pathlib.Path("x.pdf"))
    assert summary.pages_written == 1
    assert summary.placed_lines == 3
    # "d", "e" and the blank line that closes the page text
    assert summary.overflow_lines == 3


def test_paginate_policy_keeps_every_line() -> None:
    sink = RecordingSink()
    summary = _runner(
        PlainTextSource(["a\nb\nc\nd\ne"]),
        sink,
        geometry=THREE_LINE_PAGE,
        overflow="paginate",
    ).run(pathlib.Path("x.pdf"))
    assert summary.pages_written == 2
    assert summary.overflow_lines == 0
    assert [line.text for line in sink.pages[1].lines] == ["D", "E", ""]


def test_unknown_overflow_policy_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        _runner(PlainTextSource(["a"]), RecordingSink(), overflow="shrink")


class _FakeOcrClient:
    def __init__(self, text: str) -> None:
        self.text = text
        self.requests: list[tuple[pathlib.Path, str]] = []

    def recognise(self, image_path: pathlib.Path, language: str) -> str:
        self.requests.append((image_path, language))
        return self.text


def test_ocr_runner_lays_out_recognised_text() -> None:
    client = _FakeOcrClient("line one\nline two")
    sink = RecordingSink()
    summary = OcrRunner(
        client=client,
        sink=sink,
        geometry=PageGeometry(),
        language="deu",
    ).run(pathlib.Path("scan.png"), pathlib.Path("scan_ocr.pdf"))

    assert client.requests == [(pathlib.Path("scan.png"), "deu")]
    assert [line.text for line in sink.pages[0].lines] == ["line one", "line two"]
    assert summary.placed_lines == 2
    assert summary.document_type == "image"


def test_ocr_runner_writes_blank_page_for_blank_text() -> None:
    sink = RecordingSink()
    summary = OcrRunner(
        client=_FakeOcrClient("   "),
        sink=sink,
        geometry=PageGeometry(),
    ).run(pathlib.Path("scan.png"), pathlib.Path("scan_ocr.pdf"))
    assert len(sink.pages) == 1
    assert sink.pages[0].lines == []
    assert summary.placed_lines == 0
