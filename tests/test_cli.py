from __future__ import annotations

import pathlib
import threading

import httpx
import pytest

from folio import cli
from folio.cli import (
    build_parser,
    derive_output_path,
    execute_ocr,
    execute_translation,
    print_summary,
)
from folio.documents import PdfTextSource
from folio.providers import EchoTranslationProvider


def _translate(settings, input_file: pathlib.Path, **overrides):
    options = {
        "settings": settings,
        "input_file": str(input_file),
        "output_file": None,
        "target_language": "fr",
        "source_language": "en",
        "provider": None,
        "model": None,
        "byte_budget": None,
        "overflow": "truncate",
        "force_overwrite": False,
        "verbose": False,
        "provider_debug": False,
    }
    options.update(overrides)
    return execute_translation(**options)


def test_derive_output_path_uses_language_suffix() -> None:
    assert derive_output_path(pathlib.Path("/docs/report.docx"), "pt BR") == (
        pathlib.Path("/docs/report_pt-BR.pdf")
    )
    assert derive_output_path(pathlib.Path("/docs/a.pdf"), "日本語").name == (
        "a_translated.pdf"
    )


def test_parser_defaults_follow_the_original_dialogs() -> None:
    args = build_parser().parse_args(["translate", "doc.pdf"])
    assert (args.source_language, args.target_language) == ("en", "fr")
    assert args.overflow == "truncate"
    args = build_parser().parse_args(["ocr", "scan.png"])
    assert args.language == "eng"


def test_translation_writes_a_pdf(make_settings, tmp_path: pathlib.Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello world\fsecond page", encoding="utf-8")

    exit_code, summary, message = _translate(make_settings(), source)

    assert (exit_code, message) == (0, None)
    assert summary is not None
    assert summary.output_path == tmp_path / "notes_fr.pdf"
    assert summary.provider_name == "echo"
    with PdfTextSource(summary.output_path) as written:
        text = written.load_page_text(1)
    assert "hello world" in text
    assert "second page" in text


def test_existing_output_is_not_overwritten(make_settings, tmp_path: pathlib.Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")
    (tmp_path / "notes_fr.pdf").write_bytes(b"keep me")

    exit_code, summary, message = _translate(make_settings(), source)

    assert exit_code == 1
    assert summary is None
    assert "already exists" in message
    assert (tmp_path / "notes_fr.pdf").read_bytes() == b"keep me"


def test_blank_document_is_reported(make_settings, tmp_path: pathlib.Path) -> None:
    source = tmp_path / "blank.txt"
    source.write_text("\n\n", encoding="utf-8")

    exit_code, _, message = _translate(make_settings(), source)

    assert exit_code == 1
    assert message == "No text found in the document to translate."
    assert not (tmp_path / "blank_fr.pdf").exists()


def test_budget_too_small_is_reported(make_settings, tmp_path: pathlib.Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")

    exit_code, _, message = _translate(make_settings(), source, byte_budget=2)

    assert exit_code == 1
    assert "too small" in message


def test_transform_failure_leaves_no_output(
    make_settings, tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")
    failing = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down"))
    )
    original = cli.build_provider

    def build_with_mock(name, **kwargs):
        provider = original(name, **kwargs)
        provider._client = failing
        return provider

    monkeypatch.setattr(cli, "build_provider", build_with_mock)

    exit_code, _, message = _translate(make_settings(FOLIO_PROVIDER="http"), source)

    assert exit_code == 1
    assert message.startswith("Translation failed.")
    assert "down" in message
    assert not (tmp_path / "notes_fr.pdf").exists()


def test_unsupported_image_is_reported(make_settings, tmp_path: pathlib.Path) -> None:
    image = tmp_path / "scan.bmp"
    image.write_bytes(b"BM")

    exit_code, _, message = execute_ocr(
        settings=make_settings(),
        input_file=str(image),
        output_file=None,
        language="eng",
        overflow="truncate",
        force_overwrite=False,
        verbose=False,
    )

    assert exit_code == 1
    assert "JPG or PNG" in message


def test_missing_input_is_reported(make_settings, tmp_path: pathlib.Path) -> None:
    exit_code, _, message = _translate(make_settings(), tmp_path / "missing.pdf")
    assert exit_code == 1
    assert "not found" in message


def test_print_summary_mentions_dropped_lines(
    make_settings, tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
) -> None:
    source = tmp_path / "long.txt"
    source.write_text("\n".join(f"line {n}" for n in range(60)), encoding="utf-8")

    _, summary, _ = _translate(make_settings(), source)
    print_summary(summary)

    out = capsys.readouterr().out
    assert "48 lines on 1 page(s)" in out
    assert "13 lines did not fit" in out


def test_preset_cancellation_exits_with_code_2(
    make_settings, tmp_path: pathlib.Path
) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")
    cancel = threading.Event()
    cancel.set()

    exit_code, summary, message = _translate(
        make_settings(), source, cancel_event=cancel
    )

    assert exit_code == 2
    assert summary is None
    assert message.startswith("Run cancelled:")
    assert not (tmp_path / "notes_fr.pdf").exists()


def test_interrupted_transform_is_a_cancellation(
    make_settings, tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")

    class InterruptedProvider(EchoTranslationProvider):
        def translate(self, text, *, context):
            raise KeyboardInterrupt

    monkeypatch.setattr(
        cli, "build_provider", lambda name, **kwargs: InterruptedProvider()
    )

    exit_code, _, message = _translate(make_settings(), source)

    assert exit_code == 2
    assert "interrupted" in message
    assert not (tmp_path / "notes_fr.pdf").exists()
