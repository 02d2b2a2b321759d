"""Command line interface for Folio."""

from __future__ import annotations

import argparse
import pathlib
import re
import sys
import threading
from typing import Callable, Iterable, Optional

from .configuration import FolioConfig, geometry_from_settings, get_settings
from .documents import PdfPageSink, detect_source
from .errors import (
    CancellationError,
    ConfigurationError,
    FolioError,
    TransformFailure,
)
from .ocr import DEFAULT_OCR_LANGUAGE, OcrClient
from .pipeline import (
    OVERFLOW_POLICIES,
    OVERFLOW_TRUNCATE,
    OcrRunner,
    RunSummary,
    TranslationRunner,
    validate_paths,
)
from .providers import build_provider
from .segmenter import Segmenter
from .structures import TransformContext

CliResult = tuple[int, Optional[RunSummary], Optional[str]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folio",
        description=(
            "Translate document text in byte-bounded segments, or OCR an image, "
            "and lay the result out as a PDF page."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    translate = subparsers.add_parser(
        "translate",
        help="Translate a .pdf, .docx, .pptx or .txt document.",
    )
    translate.add_argument("input_file", help="Path to the document to translate.")
    translate.add_argument(
        "-t",
        "--target-language",
        default="fr",
        help="Destination language code (default: fr).",
    )
    translate.add_argument(
        "-s",
        "--source-language",
        default="en",
        help="Source language code (default: en).",
    )
    translate.add_argument(
        "-p",
        "--provider",
        help="Translation provider: http, openai, azure_openai or echo.",
    )
    translate.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    translate.add_argument(
        "-b",
        "--byte-budget",
        type=int,
        help="Maximum encoded bytes per translation request.",
    )
    translate.add_argument(
        "--overflow",
        choices=OVERFLOW_POLICIES,
        default=OVERFLOW_TRUNCATE,
        help="What to do with lines that do not fit on the first page.",
    )
    translate.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    _add_common_arguments(translate)

    ocr = subparsers.add_parser(
        "ocr",
        help="Recognise text in a JPG or PNG image.",
    )
    ocr.add_argument("input_file", help="Path to the image.")
    ocr.add_argument(
        "-l",
        "--language",
        default=DEFAULT_OCR_LANGUAGE,
        help=f"OCR language code (default: {DEFAULT_OCR_LANGUAGE}).",
    )
    ocr.add_argument(
        "--overflow",
        choices=OVERFLOW_POLICIES,
        default=OVERFLOW_TRUNCATE,
        help="What to do with lines that do not fit on the first page.",
    )
    _add_common_arguments(ocr)
    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o",
        "--output",
        help="Output PDF path. Defaults to a name derived from the input.",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )


def sanitise_label_for_filename(label: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", label.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, label: str) -> pathlib.Path:
    addition = sanitise_label_for_filename(label)
    return input_path.with_name(f"{input_path.stem}_{addition}.pdf")


def _resolve_paths(
    input_file: str,
    output_file: str | None,
    label: str,
) -> tuple[pathlib.Path, pathlib.Path]:
    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, label)
    )
    return input_path, output_path


def _guarded(action: Callable[[], RunSummary]) -> CliResult:
    """Run an action and map the error taxonomy onto exit codes."""

    try:
        summary = action()
    except CancellationError as exc:
        return 2, None, f"Run cancelled: {exc}"
    except KeyboardInterrupt:
        return 2, None, "Run interrupted by user."
    except TransformFailure as exc:
        return 1, None, f"Translation failed. {exc}"
    except FolioError as exc:
        return 1, None, str(exc)
    return 0, summary, None


def _check_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> Optional[str]:
    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except (FileNotFoundError, FolioError) as exc:
        return str(exc)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return None


def execute_translation(
    *,
    settings: FolioConfig,
    input_file: str,
    output_file: str | None,
    target_language: str,
    source_language: str | None,
    provider: str | None,
    model: str | None,
    byte_budget: int | None,
    overflow: str,
    force_overwrite: bool,
    verbose: bool,
    provider_debug: bool,
    cancel_event: threading.Event | None = None,
) -> CliResult:
    """Execute a translation run and return the exit code, summary, and message."""

    input_path, output_path = _resolve_paths(input_file, output_file, target_language)
    message = _check_paths(input_path, output_path, force_overwrite)
    if message:
        return 1, None, message

    provider_name = provider or settings.FOLIO_PROVIDER

    def action() -> RunSummary:
        segmenter = Segmenter(
            settings.FOLIO_BYTE_BUDGET if byte_budget is None else byte_budget,
            encoding=settings.FOLIO_TEXT_ENCODING,
        )
        document_type, source = detect_source(input_path)
        with source, build_provider(
            provider_name,
            service_url=settings.FOLIO_SERVICE_URL,
            timeout=settings.FOLIO_TIMEOUT_SECONDS,
            max_retries=settings.FOLIO_MAX_RETRIES,
            openai_api_key=settings.OPENAI_API_KEY,
            azure_api_key=settings.AZURE_OPENAI_API_KEY,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            azure_api_version=settings.AZURE_OPENAI_API_VERSION,
            azure_deployment=settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            debug=provider_debug,
        ) as transform, PdfPageSink() as sink:
            runner = TranslationRunner(
                source=source,
                sink=sink,
                transform=transform,
                context=TransformContext(
                    target_language=target_language,
                    source_language=source_language,
                    model=model,
                ),
                segmenter=segmenter,
                geometry=geometry_from_settings(settings),
                document_type=document_type,
                provider_name=transform.name,
                overflow=overflow,
                cancel_event=cancel_event,
                verbose=verbose,
            )
            return runner.run(output_path)

    return _guarded(action)


def execute_ocr(
    *,
    settings: FolioConfig,
    input_file: str,
    output_file: str | None,
    language: str,
    overflow: str,
    force_overwrite: bool,
    verbose: bool,
) -> CliResult:
    """Execute an OCR run and return the exit code, summary, and message."""

    input_path, output_path = _resolve_paths(input_file, output_file, "ocr")
    message = _check_paths(input_path, output_path, force_overwrite)
    if message:
        return 1, None, message

    def action() -> RunSummary:
        with OcrClient(
            service_url=settings.FOLIO_SERVICE_URL,
            timeout=settings.FOLIO_TIMEOUT_SECONDS,
        ) as client, PdfPageSink() as sink:
            runner = OcrRunner(
                client=client,
                sink=sink,
                geometry=geometry_from_settings(settings),
                language=language,
                overflow=overflow,
                verbose=verbose,
            )
            return runner.run(input_path, output_path)

    return _guarded(action)


def print_summary(summary: RunSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nDone.")
    print(f"  Output file:     {summary.output_path}")
    print(f"  Document type:   {summary.document_type}")
    print(f"  Source pages:    {summary.page_count} ({summary.total_bytes} bytes)")
    if summary.total_segments:
        print(f"  Segments:        {summary.total_segments}")
    print(f"  Provider:        {summary.provider_name}")
    if summary.source_language:
        print(f"  Source language: {summary.source_language}")
    if summary.target_language:
        print(f"  Target language: {summary.target_language}")
    print(
        f"  Layout:          {summary.placed_lines} lines "
        f"on {summary.pages_written} page(s)"
    )
    if summary.overflow_lines:
        print(
            f"  Notes:           {summary.overflow_lines} lines did not fit and "
            "were left out (use --overflow paginate to keep them)."
        )
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except ConfigurationError as exc:
        print(exc)
        return 1

    if args.command == "translate":
        exit_code, summary, message = execute_translation(
            settings=settings,
            input_file=args.input_file,
            output_file=args.output,
            target_language=args.target_language,
            source_language=args.source_language,
            provider=args.provider,
            model=args.model,
            byte_budget=args.byte_budget,
            overflow=args.overflow,
            force_overwrite=args.force,
            verbose=args.verbose,
            provider_debug=bool(args.debug_provider or settings.FOLIO_PROVIDER_DEBUG),
        )
    else:
        exit_code, summary, message = execute_ocr(
            settings=settings,
            input_file=args.input_file,
            output_file=args.output,
            language=args.language,
            overflow=args.overflow,
            force_overwrite=args.force,
            verbose=args.verbose,
        )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
