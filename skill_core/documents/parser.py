"""把磁盘上的文档解析成可索引的纯文本。

按后缀查表选择解析器；未知后缀按 UTF-8 文本读取，只有内容是二进制时才拒绝。
"""

import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Union

from docx import Document as DocxDocument
from docx.document import Document as DocType
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from docx.text.paragraph import Paragraph

from skill_core.domain.exceptions import DocumentParseError
from skill_core.infrastructure.logging.logger import logger


@dataclass
class ParsedDocument:
    """文档的纯文本视图；sections 是按段落或表格切开的片段。"""

    title: str
    text: str
    source: str
    sections: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.text)


def _iter_blocks(doc: DocType) -> Iterable[Union[Paragraph, Table]]:
    # 按正文顺序交替产出段落与表格
    for element in doc.element.body:
        if element.tag.endswith("}tbl"):
            yield Table(element, doc)
        elif element.tag.endswith("}p"):
            yield Paragraph(element, doc)


def _extract_table(table: Table) -> str:
    rows = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        if any(cells):
            rows.append(" | ".join(cells))
    return "\n".join(rows)


def _parse_docx(path: Path) -> ParsedDocument:
    try:
        doc = DocxDocument(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise DocumentParseError(message=f"Invalid docx file {path.name}: {e}", path=str(path))

    sections: List[str] = []
    for block in _iter_blocks(doc):
        text = _extract_table(block) if isinstance(block, Table) else block.text.strip()
        if text:
            sections.append(text)
    title = (doc.core_properties.title or "").strip() or path.stem
    return ParsedDocument(title=title, text="\n\n".join(sections), source=str(path), sections=sections)


def _parse_text(path: Path) -> ParsedDocument:
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise DocumentParseError(message=str(e), path=str(path))
    if b"\x00" in raw[:4096]:
        raise DocumentParseError(message=f"Unsupported binary file {path.name}", path=str(path))
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise DocumentParseError(message=f"File {path.name} is not UTF-8 text", path=str(path))
    sections = [s.strip() for s in text.split("\n\n") if s.strip()]
    return ParsedDocument(title=path.stem, text=text, source=str(path), sections=sections)


PARSERS: Dict[str, Callable[[Path], ParsedDocument]] = {
    ".docx": _parse_docx,
    ".txt": _parse_text,
    ".md": _parse_text,
    ".markdown": _parse_text,
    ".rst": _parse_text,
    ".csv": _parse_text,
    ".json": _parse_text,
    ".html": _parse_text,
}


def parse_document(path: Union[str, Path]) -> ParsedDocument:
    """解析单个文件；文件不存在抛 DOCUMENT_NOT_FOUND，格式错误抛 DocumentParseError。"""

    path = Path(path)
    if not path.is_file():
        raise DocumentParseError(code="DOCUMENT_NOT_FOUND", message=f"{path} does not exist", path=str(path))
    parser = PARSERS.get(path.suffix.lower(), _parse_text)
    document = parser(path)
    logger.info(
        "Parsed document",
        extra={"extra": {"path": str(path), "chars": len(document.text), "sections": len(document.sections)}},
    )
    return document
