import csv
import io
import os
from typing import Callable, Dict

from openpyxl import load_workbook
from pptx import Presentation
from pypdf import PdfReader
from docx import Document as DocxDocument

from .errors import UnsupportedFileType


def read_text_from_pdf(file_path: str) -> str:
    pdf = PdfReader(file_path)
    parts = []
    for page in pdf.pages:
        parts.append(page.extract_text() or "")
    return "\n".join(parts)


def read_text_from_docx(file_path: str) -> str:
    """
    Extract text from DOCX file including both paragraphs and tables.
    Tables are converted to readable text format.
    """
    doc = DocxDocument(file_path)
    parts = []

    for para in doc.paragraphs:
        text = para.text.strip()
        if text:
            parts.append(text)

    for table in doc.tables:
        table_text = extract_table_text(table)
        if table_text:
            parts.append(table_text)

    return "\n\n".join(parts)


def extract_table_text(table) -> str:
    """
    Convert a DOCX or PPTX table to readable text format.
    Each row is preserved with clear separators.
    """
    lines = []

    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]

        # Skip completely empty rows
        if not any(cells):
            continue

        lines.append(" | ".join(cells))

    return "\n".join(lines)


def read_text_from_xlsx(file_path: str) -> str:
    """
    Extract every worksheet as CSV text under a "Sheet: <name>" header.
    Cached formula results are read instead of the formulas.
    """
    wb = load_workbook(file_path, read_only=True, data_only=True)
    try:
        sheets = []
        for ws in wb.worksheets:
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            for row in ws.iter_rows(values_only=True):
                cells = ["" if v is None else str(v) for v in row]
                # Skip completely empty rows
                if any(c.strip() for c in cells):
                    writer.writerow(cells)
            sheets.append(f"Sheet: {ws.title}\n{buf.getvalue().rstrip()}")
        return "\n\n".join(sheets)
    finally:
        wb.close()


def read_text_from_pptx(file_path: str) -> str:
    """
    Extract slide text in slide order.
    Text frames and tables are read; each slide becomes one paragraph block.
    """
    prs = Presentation(file_path)
    slides = []
    for slide in prs.slides:
        parts = []
        for shape in slide.shapes:
            if shape.has_text_frame:
                text = shape.text_frame.text.strip()
                if text:
                    parts.append(text)
            elif shape.has_table:
                table_text = extract_table_text(shape.table)
                if table_text:
                    parts.append(table_text)
        if parts:
            slides.append("\n".join(parts))
    return "\n\n".join(slides)


def read_text_from_txt(file_path: str, encoding="utf-8") -> str:
    with open(file_path, "r", encoding=encoding, errors="ignore") as f:
        return f.read()


EXTRACTORS: Dict[str, Callable[[str], str]] = {
    ".pdf": read_text_from_pdf,
    ".docx": read_text_from_docx,
    ".xlsx": read_text_from_xlsx,
    ".pptx": read_text_from_pptx,
    ".txt": read_text_from_txt,
    ".md": read_text_from_txt,
    ".csv": read_text_from_txt,
}


def read_any(file_path: str, filename: str) -> str:
    """
    Extract plain text, choosing the reader by the upload's extension.

    Raises:
        UnsupportedFileType: No reader for the extension.
    """
    ext = os.path.splitext(filename.lower())[1]
    reader = EXTRACTORS.get(ext)
    if reader is None:
        raise UnsupportedFileType(
            f"Unsupported file type: {ext or '(none)'}",
            context={"filename": filename, "supported": sorted(EXTRACTORS)},
        )
    return reader(file_path)
