#!/usr/bin/env python3
import asyncio
import os
import sys

import httpx
import orjson

from renderer import ArticleBuffer


API_URL = os.getenv("ARTICLE_API", "http://127.0.0.1:8000/api/generate")


def _error_message(raw: bytes) -> str:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.decode("utf-8", "replace")
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return raw.decode("utf-8", "replace")


async def stream_article(topic: str, show_thought: bool = False) -> int:
    article = ArticleBuffer()
    shown = ""
    async with httpx.AsyncClient(timeout=None) as client:
        async with client.stream("POST", API_URL, json={"prompt": topic}) as resp:
            if resp.status_code != 200:
                print(f"HTTP {resp.status_code}: {_error_message(await resp.aread())}", file=sys.stderr)
                return 1
            async for text in resp.aiter_text():
                if not text:
                    continue
                body = article.append(text).body
                # Only print while the body grows at the end; anything else waits for the final pass.
                if body.startswith(shown):
                    sys.stdout.write(body[len(shown):])
                    sys.stdout.flush()
                    shown = body

    view = article.render()
    if view.body != shown:
        sys.stdout.write("\n\n" + view.body if shown else view.body)
    sys.stdout.write("\n")
    if show_thought and view.thought:
        print("\n[thought]\n" + view.thought)
    if view.error:
        print(f"[error] {view.error}", file=sys.stderr)
        return 1
    return 0


def main():
    args = [a for a in sys.argv[1:] if a != "--show-thought"]
    if not args:
        print("Usage: scripts/cli_generate.py 'article topic' [--show-thought]")
        print("Example: scripts/cli_generate.py 'robots in agriculture'")
        return
    sys.exit(asyncio.run(stream_article(" ".join(args), show_thought="--show-thought" in sys.argv)))


if __name__ == "__main__":
    main()
