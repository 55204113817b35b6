"""Three ways to talk to the Book Assistant: call a skill, prompt, and stream."""

import asyncio

from skill_core.agents.book_assistant import create_book_assistant


async def main() -> None:
    agent = create_book_assistant()

    # 1. call a skill directly
    info = await agent.call("get_book_info", {"book_name": "The Black Swan"})
    print("get_book_info:", info.get("title") if isinstance(info, dict) else info)

    # 2. prompt and wait for the full answer
    reply = await agent.prompt('Who is the author of the book "The Black Swan"?')
    print("Agent:", reply)

    # 3. prompt and stream the response
    async for event in agent.prompt("Give me a one-line summary of that book."):
        if event.kind == "content":
            print(event.text, end="", flush=True)
        elif event.kind == "tool_call":
            print(f"\n[Calling Tool] {event.tool['name']} {event.tool['arguments']}")
        elif event.kind == "error":
            print(f"\nError: {event.error.message}")
    print()


if __name__ == "__main__":
    asyncio.run(main())
