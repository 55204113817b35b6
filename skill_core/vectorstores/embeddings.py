"""Embedding 客户端。

- OpenAIEmbeddings: 调用 OpenAI 兼容的 /embeddings 接口。
- HashingEmbeddings: 基于词哈希的确定性向量，离线开发与测试使用。
"""

import hashlib
import re
from typing import List, Optional

import httpx
import numpy as np

from skill_core.config.settings import settings
from skill_core.domain.exceptions import VectorStoreError
from skill_core.infrastructure.logging.logger import logger


class OpenAIEmbeddings:
    """Embedding 向量化客户端"""

    def __init__(
        self,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model or settings.embedding_model
        self.base_url = (base_url or settings.embedding_base_url).rstrip("/")
        self._api_key = api_key or settings.embedding_api_key or settings.openai_api_key
        self._timeout = timeout or settings.http_timeout

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        if not self._api_key:
            raise VectorStoreError(code="MISSING_API_KEY", message="EMBEDDING_API_KEY not set")

        logger.info("Embedding request", extra={"extra": {"count": len(texts), "model": self.model}})
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self.base_url}/embeddings",
                    json={"model": self.model, "input": texts},
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise VectorStoreError(message=f"Embedding request failed: {e}")
        if resp.status_code >= 400:
            raise VectorStoreError(message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
            # OpenAI 协议：data[i].embedding，按 index 排序
            items = sorted(data["data"], key=lambda item: item.get("index", 0))
            vectors = [item["embedding"] for item in items]
        except (ValueError, KeyError, TypeError) as e:
            raise VectorStoreError(message=f"Malformed embedding response: {e}")
        if len(vectors) != len(texts):
            raise VectorStoreError(message=f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors


_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashingEmbeddings:
    """把词哈希到固定维度并做 L2 归一化，同一文本总是得到同一向量。"""

    def __init__(self, dim: int = 256):
        if dim <= 0:
            raise ValueError("dim must be positive")
        self.dim = dim
        self.model = f"hashing-{dim}"

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return [self._embed_one(t) for t in texts]

    def _embed_one(self, text: str) -> List[float]:
        vec = np.zeros(self.dim, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dim
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec /= norm
        return vec.tolist()
