# renderer.py
"""
Client-side view of a streamed article.

Reasoning models wrap their chain of thought in <think>...</think>. The
thought goes in a collapsible panel; everything else is the article. Both
are re-derived from the whole buffer after every fragment, so a tag split
across two fragments is picked up once its second half arrives.

A generation that fails after the article started streaming ends with
STREAM_ERROR_MARKER followed by the error message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from markdown_it import MarkdownIt

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

STREAM_ERROR_MARKER = "\n\n[[article-writer:error]] "

_THINK_RE = re.compile(re.escape(THINK_OPEN) + r"(.*?)" + re.escape(THINK_CLOSE), re.DOTALL)

_md = MarkdownIt("commonmark", {"html": False})


def split_error(text: str) -> Tuple[str, Optional[str]]:
    """Return (article text, terminal error or None)."""
    idx = text.find(STREAM_ERROR_MARKER)
    if idx == -1:
        return text, None
    return text[:idx], text[idx + len(STREAM_ERROR_MARKER):].strip()


def split_thought(text: str) -> Tuple[Optional[str], str]:
    """Return (thought, body). The thought is None when no <think> was opened."""
    m = _THINK_RE.search(text)
    if m:
        body = text[: m.start()] + text[m.end():]
        return m.group(1).strip(), body.strip()
    open_idx = text.find(THINK_OPEN)
    if open_idx != -1:
        # Still thinking: the close tag has not streamed in yet.
        return text[open_idx + len(THINK_OPEN):].strip(), text[:open_idx].strip()
    return None, text.strip()


def render_markdown(body: str) -> str:
    return _md.render(body)


@dataclass(frozen=True)
class RenderedArticle:
    thought: Optional[str]
    body: str
    html: str
    error: Optional[str] = None


@dataclass
class ArticleBuffer:
    fragments: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    def append(self, fragment: str) -> RenderedArticle:
        self.fragments.append(fragment)
        return self.render()

    def render(self) -> RenderedArticle:
        article, error = split_error(self.text)
        thought, body = split_thought(article)
        return RenderedArticle(thought=thought, body=body, html=render_markdown(body), error=error)
