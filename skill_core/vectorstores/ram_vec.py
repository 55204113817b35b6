"""RamVectorStore：进程内的最小向量库，主要用于开发与测试。

一个实例就是一个集合：由 (isolation_key, namespace, embedder.model) 唯一确定，
不同 embedding 模型产生的向量不会放在一起比较。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import numpy as np

from skill_core.config.settings import settings
from skill_core.domain.exceptions import BusinessError, VectorStoreError
from skill_core.infrastructure.logging.logger import logger
from .base import Chunk, Embedder, SearchHit, VectorRecord, chunk_text


def _document_text(document: Any) -> str:
    if isinstance(document, str):
        return document
    text = getattr(document, "text", None)
    if isinstance(text, str):
        return text
    raise VectorStoreError(message=f"Cannot index object of type {type(document).__name__}")


class RamVectorStore:
    def __init__(
        self,
        namespace: str,
        embedder: Embedder,
        isolation_key: str = "",
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        self.namespace = namespace
        self.isolation_key = isolation_key
        self._embedder = embedder
        self._chunk_size = chunk_size or settings.chunk_size
        self._chunk_overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        self._records: Dict[str, VectorRecord] = {}
        # 同一 doc_id 的写操作串行；读不加锁。第二项是正在使用该锁的写者数
        self._doc_locks: Dict[str, List[Any]] = {}

    @property
    def collection(self) -> str:
        return f"{self.isolation_key}:{self.namespace}:{self._embedder.model}"

    @property
    def embedding_model(self) -> str:
        return self._embedder.model

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def doc_ids(self) -> List[str]:
        return list(self._records)

    async def insert(self, doc_id: str, document: Any) -> bool:
        """切块、向量化并写入；同一 doc_id 再次写入会整体替换旧记录。"""

        text = _document_text(document)
        pieces = chunk_text(text, self._chunk_size, self._chunk_overlap)
        async with self._writing(doc_id):
            if not pieces:
                self._records.pop(doc_id, None)
                logger.warning("Nothing to index", extra={"extra": {"doc_id": doc_id, "collection": self.collection}})
                return False
            vectors = await self._embed([p for _, p in pieces])
            chunks = [Chunk(text=p, offset=off, embedding=vec) for (off, p), vec in zip(pieces, vectors)]
            self._records[doc_id] = VectorRecord(doc_id=doc_id, chunks=chunks)
        logger.info(
            "Indexed document",
            extra={"extra": {"doc_id": doc_id, "chunks": len(chunks), "collection": self.collection}},
        )
        return True

    async def search(self, query: str, top_k: Optional[int] = None) -> List[SearchHit]:
        if top_k is None:
            top_k = settings.default_top_k
        if top_k < 0:
            raise VectorStoreError(message=f"top_k must be >= 0, got {top_k}")
        if top_k == 0:
            return []
        records = list(self._records.values())
        entries = [(r.doc_id, c) for r in records for c in r.chunks]
        if not entries or not query.strip():
            return []

        query_vec = np.asarray((await self._embed([query]))[0], dtype=np.float64)
        matrix = np.asarray([c.embedding for _, c in entries], dtype=np.float64)
        if matrix.shape[1] != query_vec.shape[0]:
            raise VectorStoreError(
                message=f"Embedding dimension mismatch: {matrix.shape[1]} != {query_vec.shape[0]}"
            )
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        scores = np.divide(matrix @ query_vec, norms, out=np.zeros(len(entries)), where=norms > 0)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            SearchHit(doc_id=entries[i][0], text=entries[i][1].text, score=float(scores[i]), offset=entries[i][1].offset)
            for i in order
        ]

    async def delete(self, doc_id: str) -> bool:
        async with self._writing(doc_id):
            removed = self._records.pop(doc_id, None) is not None
        if removed:
            logger.info("Deleted document", extra={"extra": {"doc_id": doc_id, "collection": self.collection}})
        return removed

    @asynccontextmanager
    async def _writing(self, doc_id: str):
        entry = self._doc_locks.get(doc_id)
        if entry is None:
            entry = self._doc_locks[doc_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            # 文档已不存在且没有其他写者时回收锁
            if entry[1] == 0 and doc_id not in self._records:
                self._doc_locks.pop(doc_id, None)

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = await self._embedder.embed(texts)
        except VectorStoreError:
            raise
        except BusinessError as e:
            raise VectorStoreError(message=e.message, cause=e.code)
        except Exception as e:
            raise VectorStoreError(message=f"Embedding backend failed: {e}")
        if len(vectors) != len(texts):
            raise VectorStoreError(message=f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors
