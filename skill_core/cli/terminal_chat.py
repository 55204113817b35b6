"""终端聊天：在命令行里和 Agent 多轮对话。

    python -m skill_core.cli.terminal_chat --session my-chat-session-001
"""

import argparse
import asyncio
import json
import sys
from typing import Callable, Optional, TextIO

from skill_core.agents.chat import ChatSession, describe_error
from skill_core.domain.events import ChatEvent


EXIT_WORDS = ("exit", "quit")


def format_tool_call(event: ChatEvent) -> str:
    tool = event.tool or {}
    args = tool.get("arguments")
    shown = json.dumps(args, ensure_ascii=False) if isinstance(args, (dict, list)) else str(args)
    return f"[Calling Tool] {tool.get('name')} {shown}"


async def handle_user_input(text: str, chat: ChatSession, out: TextIO) -> None:
    out.write("Assistant is thinking...\n")
    first = True
    async for event in chat.prompt(text):
        if event.kind == "content":
            if first:
                out.write("Assistant: ")
                first = False
            out.write(event.text)
            out.flush()
        elif event.kind == "tool_call":
            if not first:
                out.write("\n")
                first = True
            out.write(format_tool_call(event) + "\n")
        elif event.kind == "end":
            out.write("\n\n")
        elif event.kind == "error":
            out.write(f"\nError: {describe_error(event.error)}\n")


async def run_chat_async(
    chat: ChatSession,
    agent_name: str = "Assistant",
    read_line: Optional[Callable[[str], str]] = None,
    out: TextIO = sys.stdout,
) -> None:
    read_line = read_line or input
    out.write(f"\n{agent_name} is ready!\n")
    out.write("Type your question below to talk to the agent.\n")
    out.write('Type "exit" or "quit" to end the conversation.\n\n')
    try:
        while True:
            try:
                line = await asyncio.to_thread(read_line, "You: ")
            except EOFError:
                break
            text = line.strip()
            if text.lower() in EXIT_WORDS:
                out.write("Goodbye!\n")
                break
            if not text:
                continue
            await handle_user_input(text, chat, out)
    finally:
        chat.close()
        out.write("Chat session ended.\n")


def run_chat(chat: ChatSession, agent_name: str = "Assistant") -> None:
    try:
        asyncio.run(run_chat_async(chat, agent_name))
    except KeyboardInterrupt:
        pass


def main(argv=None) -> None:
    from skill_core.agents.book_assistant import create_book_assistant

    parser = argparse.ArgumentParser(description="在终端里与 Book Assistant 对话")
    parser.add_argument("--session", default="my-chat-session-001", help="会话 ID，相同 ID 会加载之前的历史")
    parser.add_argument("--no-persist", action="store_true", help="不把会话写入磁盘")
    args = parser.parse_args(argv)

    agent = create_book_assistant()
    chat = agent.chat(id=args.session, persist=not args.no_persist)
    run_chat(chat, agent.name)


if __name__ == "__main__":
    main()
