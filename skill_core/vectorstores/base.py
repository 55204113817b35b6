"""向量检索的公共数据结构与接口。

- Embedder: 把文本批量转换为向量，model 用于区分不同的向量空间。
- VectorStore: insert / search / delete 三个能力，按 doc_id 幂等。
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple


@dataclass
class Chunk:
    text: str
    offset: int  # 在原文中的起始字符位置
    embedding: Optional[List[float]] = None


@dataclass
class VectorRecord:
    doc_id: str
    chunks: List[Chunk] = field(default_factory=list)


@dataclass
class SearchHit:
    doc_id: str
    text: str
    score: float
    offset: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Embedder(Protocol):
    model: str

    async def embed(self, texts: List[str]) -> List[List[float]]:
        ...


class VectorStore(Protocol):
    namespace: str

    async def insert(self, doc_id: str, document: Any) -> bool:
        ...

    async def search(self, query: str, top_k: Optional[int] = None) -> List[SearchHit]:
        ...

    async def delete(self, doc_id: str) -> bool:
        ...


def chunk_text(text: str, size: int, overlap: int) -> List[Tuple[int, str]]:
    """按字符数切块，相邻块重叠 overlap 个字符；尽量在换行或空白处断开。"""

    if overlap >= size:
        raise ValueError("overlap must be smaller than size")
    chunks: List[Tuple[int, str]] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(start + size, length)
        if end < length:
            cut = max(text.rfind("\n", start, end), text.rfind(" ", start, end))
            # 断点太靠前时宁可硬切
            if cut > start + size // 2:
                end = cut + 1
        piece = text[start:end].strip()
        if piece:
            chunks.append((start, piece))
        if end >= length:
            break
        start = max(end - overlap, start + 1)
    return chunks
