"""向量检索：接口、Embedding 客户端与内存向量库。"""

from .base import Chunk, Embedder, SearchHit, VectorRecord, VectorStore, chunk_text
from .embeddings import HashingEmbeddings, OpenAIEmbeddings
from .ram_vec import RamVectorStore

__all__ = [
    "Chunk",
    "Embedder",
    "SearchHit",
    "VectorRecord",
    "VectorStore",
    "chunk_text",
    "HashingEmbeddings",
    "OpenAIEmbeddings",
    "RamVectorStore",
]
