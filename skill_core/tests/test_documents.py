import tempfile
from pathlib import Path

import pytest
from docx import Document

from skill_core.documents.parser import parse_document
from skill_core.domain.exceptions import DocumentParseError


def test_parse_text_file():
    with tempfile.TemporaryDirectory() as d:
        f = Path(d) / "notes.md"
        f.write_text("# Title\n\nFirst paragraph.\n\nSecond paragraph.", encoding="utf-8")
        doc = parse_document(f)
        assert doc.title == "notes"
        assert "Second paragraph." in doc.text
        assert len(doc.sections) == 3


def test_unknown_suffix_read_as_text():
    with tempfile.TemporaryDirectory() as d:
        f = Path(d) / "book.chapter"
        f.write_text("plain words", encoding="utf-8")
        assert parse_document(f).text == "plain words"


def test_parse_docx_paragraphs_and_tables():
    with tempfile.TemporaryDirectory() as d:
        f = Path(d) / "swan.docx"
        document = Document()
        document.core_properties.title = "The Black Swan"
        document.add_paragraph("Chapter one")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Author"
        table.rows[0].cells[1].text = "Taleb"
        document.save(str(f))

        doc = parse_document(f)
        assert doc.title == "The Black Swan"
        assert doc.sections == ["Chapter one", "Author | Taleb"]


def test_binary_file_rejected():
    with tempfile.TemporaryDirectory() as d:
        f = Path(d) / "image.bin"
        f.write_bytes(b"\x89PNG\x00\x00\x01")
        with pytest.raises(DocumentParseError):
            parse_document(f)


def test_broken_docx_rejected():
    with tempfile.TemporaryDirectory() as d:
        f = Path(d) / "broken.docx"
        f.write_text("not a zip", encoding="utf-8")
        with pytest.raises(DocumentParseError):
            parse_document(f)


def test_missing_file():
    with pytest.raises(DocumentParseError) as exc:
        parse_document("/nonexistent/book.txt")
    assert exc.value.code == "DOCUMENT_NOT_FOUND"
