"""Document text sources and page sinks."""

from __future__ import annotations

import pathlib
from abc import ABC, abstractmethod
from typing import List, Tuple

from .errors import FolioError, UnsupportedFileTypeError
from .structures import PageInstructions

PDF_FONT_NAME = "helv"


def _import_fitz():
    try:
        import fitz  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise FolioError(
            "PyMuPDF is required to read and write .pdf files. "
            "Install it with `pip install pymupdf`."
        ) from exc
    return fitz


def _import_docx():
    try:
        from docx import Document  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise FolioError(
            "python-docx is required to process .docx files. "
            "Install the optional dependency with `pip install python-docx`."
        ) from exc
    return Document


def _import_pptx():
    try:
        from pptx import Presentation  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise FolioError(
            "python-pptx is required to process .pptx files. "
            "Install the optional dependency with `pip install python-pptx`."
        ) from exc
    return Presentation


class BaseTextSource(ABC):
    """Read-only, page-addressed view over a document's text."""

    def __init__(self, source_path: pathlib.Path | None = None):
        self.source_path = source_path

    @abstractmethod
    def page_count(self) -> int:
        """Number of pages in the document."""

    @abstractmethod
    def _page_text(self, page_index: int) -> str:
        """Text of the page at the 0-based index."""

    def load_page_text(self, page_number: int) -> str:
        """Return the text of a page; ``page_number`` starts at 1."""

        total = self.page_count()
        if not 1 <= page_number <= total:
            raise FolioError(
                f"Page {page_number} is out of range (document has {total} pages)."
            )
        return self._page_text(page_number - 1)

    def extract_text(self) -> str:
        """Concatenate every page, each followed by a newline."""

        return "".join(
            self.load_page_text(number) + "\n"
            for number in range(1, self.page_count() + 1)
        )

    def close(self) -> None:
        """Release the underlying document, if any."""

    def __enter__(self) -> "BaseTextSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class PlainTextSource(BaseTextSource):
    """Text held in memory or read from a .txt file; form feeds split pages."""

    def __init__(self, pages: List[str], source_path: pathlib.Path | None = None):
        super().__init__(source_path)
        self.pages = list(pages)

    @classmethod
    def from_path(cls, source_path: pathlib.Path) -> "PlainTextSource":
        content = source_path.read_text(encoding="utf-8")
        return cls(content.split("\f"), source_path)

    def page_count(self) -> int:
        return len(self.pages)

    def _page_text(self, page_index: int) -> str:
        return self.pages[page_index]


class PdfTextSource(BaseTextSource):
    """Extracts page text from PDF files with PyMuPDF."""

    def __init__(self, source_path: pathlib.Path):
        super().__init__(source_path)
        fitz = _import_fitz()
        self.document = fitz.open(str(source_path))

    def page_count(self) -> int:
        return len(self.document)

    def _page_text(self, page_index: int) -> str:
        return self.document[page_index].get_text().rstrip("\n")

    def close(self) -> None:
        self.document.close()


class DocxTextSource(BaseTextSource):
    """Word documents carry no fixed pages; the whole body is page 1."""

    def __init__(self, source_path: pathlib.Path):
        super().__init__(source_path)
        Document = _import_docx()
        self.document = Document(str(source_path))

    def page_count(self) -> int:
        return 1

    def _page_text(self, page_index: int) -> str:
        lines = [paragraph.text for paragraph in self.document.paragraphs]
        for table in self.document.tables:
            for row in table.rows:
                for cell in row.cells:
                    lines.extend(paragraph.text for paragraph in cell.paragraphs)
        return "\n".join(lines)


class PptxTextSource(BaseTextSource):
    """One page per slide, shapes read in slide order."""

    def __init__(self, source_path: pathlib.Path):
        super().__init__(source_path)
        Presentation = _import_pptx()
        self.presentation = Presentation(str(source_path))
        self.slides = list(self.presentation.slides)

    def page_count(self) -> int:
        return len(self.slides)

    def _page_text(self, page_index: int) -> str:
        lines: List[str] = []
        for shape in self.slides[page_index].shapes:
            if getattr(shape, "has_text_frame", False) and shape.has_text_frame:
                lines.extend(
                    paragraph.text for paragraph in shape.text_frame.paragraphs
                )
            if getattr(shape, "has_table", False) and shape.has_table:
                for row in shape.table.rows:
                    for cell in row.cells:
                        lines.extend(
                            paragraph.text
                            for paragraph in cell.text_frame.paragraphs
                        )
        return "\n".join(lines)


def detect_source(path: pathlib.Path) -> Tuple[str, BaseTextSource]:
    """Return the document type and text source for a path."""

    suffix = path.suffix.lower()
    if suffix == ".pdf":
        return "pdf", PdfTextSource(path)
    if suffix == ".docx":
        return "docx", DocxTextSource(path)
    if suffix == ".pptx":
        return "pptx", PptxTextSource(path)
    if suffix == ".txt":
        return "txt", PlainTextSource.from_path(path)
    raise UnsupportedFileTypeError(
        "Unsupported file type. Please provide a .pdf, .docx, .pptx or .txt file."
    )


class BasePageSink(ABC):
    """Receives placement instructions one page at a time."""

    @abstractmethod
    def write_page(self, instructions: PageInstructions) -> None:
        """Append a page built from the given instructions."""

    @abstractmethod
    def save(self, destination: pathlib.Path) -> None:
        """Persist the written pages."""

    def close(self) -> None:
        """Release the output document, if any."""

    def __enter__(self) -> "BasePageSink":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class RecordingSink(BasePageSink):
    """Keeps pages in memory; used for dry runs and tests."""

    def __init__(self) -> None:
        self.pages: List[PageInstructions] = []
        self.saved_to: pathlib.Path | None = None

    def write_page(self, instructions: PageInstructions) -> None:
        self.pages.append(instructions)

    def save(self, destination: pathlib.Path) -> None:
        self.saved_to = destination


class PdfPageSink(BasePageSink):
    """Writes placed lines into a new PDF with PyMuPDF.

    Placement uses PDF user space (origin bottom-left) while PyMuPDF
    addresses points from the top-left, so y is flipped per page.
    """

    def __init__(self) -> None:
        fitz = _import_fitz()
        self.document = fitz.open()

    def write_page(self, instructions: PageInstructions) -> None:
        page = self.document.new_page(
            width=instructions.width,
            height=instructions.height,
        )
        for line in instructions.lines:
            if not line.text:
                continue
            page.insert_text(
                (line.x, instructions.height - line.y),
                line.text,
                fontsize=instructions.font_size,
                fontname=PDF_FONT_NAME,
            )

    def save(self, destination: pathlib.Path) -> None:
        self.document.save(str(destination))
        self.close()

    def close(self) -> None:
        if not self.document.is_closed:
            self.document.close()
