# prompts.py
from typing import Iterable

from articles import ReferenceDocument

BLOCK_SEPARATOR = "---\n"

ARTICLE_PROMPT = (
    "You are an expert content writer. Based on the reference articles below, "
    "write a new comprehensive article on the topic given at the end.\n"
    "Use the writing style, tone, and structure from these articles, but create entirely original content.\n"
    "Incorporate relevant insights and patterns from the source articles while maintaining originality.\n"
    "Do not include any thoughts or explanations about the writing process.\n"
    "Do not include any content within <think> tags.\n"
    "\n"
    "Reference Articles:\n"
    "{articles}\n"
    "\n"
    'Write a well-structured, engaging article about "{topic}":'
)


def format_reference_block(doc: ReferenceDocument) -> str:
    return f"Title: {doc.title}\n\nContent:\n{doc.content}\n\n"


def compose_prompt(topic: str, documents: Iterable[ReferenceDocument]) -> str:
    # Order is kept as given; callers pass directory listing order.
    articles = BLOCK_SEPARATOR.join(format_reference_block(d) for d in documents)
    return ARTICLE_PROMPT.format(articles=articles, topic=topic)
