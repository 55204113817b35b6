"""Book Assistant：演示用 Agent。

技能：
- index_book: 解析本地书籍文件并写入内存向量库。
- lookup_book: 在已索引的书籍中做语义检索。
- get_book_info: 通过 OpenLibrary 搜索书籍信息。
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from skill_core.config.settings import settings
from skill_core.documents.parser import parse_document
from skill_core.domain.exceptions import SkillExecutionError
from skill_core.infrastructure.storage.json_store import JsonSessionStore
from skill_core.providers.base import ProviderClient
from skill_core.vectorstores.base import Embedder
from .agent import Agent


BOOKS_NAMESPACE = "books"
OPENLIBRARY_SEARCH_URL = "https://openlibrary.org/search.json"
LOOKUP_TOP_K = 5


def create_book_assistant(
    provider_client: Optional[ProviderClient] = None,
    embedder: Optional[Embedder] = None,
    store: Optional[JsonSessionStore] = None,
    workspace_root: Optional[str] = None,
    model: Optional[str] = None,
) -> Agent:
    agent = Agent(
        id="book-assistant",
        name="Book Assistant",
        model=model,
        behavior="You are a helpful assistant that can answer questions about the books.",
        provider_client=provider_client,
        store=store,
    )
    books = agent.vector_db(BOOKS_NAMESPACE, embedder)
    root = Path(workspace_root or settings.workspace_root)

    async def index_book(args: Dict[str, Any]) -> str:
        file_path = (root / args["book_path"]).resolve()
        if not file_path.exists():
            return f"File resolved path to {file_path} does not exist"
        # 解析 docx 等文件是阻塞 IO，放到线程里
        parsed = await asyncio.to_thread(parse_document, file_path)
        name = file_path.name
        if await books.insert(name, parsed):
            return f"Book {name} indexed successfully"
        return f"Book {name} indexing failed"

    async def lookup_book(args: Dict[str, Any]) -> List[Dict[str, Any]]:
        hits = await books.search(args["user_query"], top_k=LOOKUP_TOP_K)
        return [h.to_dict() for h in hits]

    async def get_book_info(args: Dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
                resp = await client.get(OPENLIBRARY_SEARCH_URL, params={"q": args["book_name"]})
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as e:
            raise SkillExecutionError(message=f"OpenLibrary lookup failed: {e}", skill="get_book_info")
        docs = data.get("docs") or []
        if not docs:
            return f"No book found for {args['book_name']!r}"
        return docs[0]

    agent.add_skill(
        "index_book",
        "Use this skill to index a book in a vector database, the user will provide the path to the book",
        index_book,
        inputs={"book_path": {"description": "Path to the book file"}},
    )
    agent.add_skill(
        "lookup_book",
        "Use this skill to lookup a book in the vector database",
        lookup_book,
        inputs={"user_query": {"description": "What to look for in the indexed books"}},
    )
    openlibrary_lookup = agent.add_skill(
        "get_book_info",
        "Use this skill to get information about a book",
        get_book_info,
        inputs={"book_name": {}},
    )
    # 模型需要知道 book_name 应该从用户问题中提取
    openlibrary_lookup.in_(
        {
            "book_name": {
                "description": "This need to be a name of a book, extract it from the user query",
            }
        }
    )
    return agent
