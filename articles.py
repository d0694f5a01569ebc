# articles.py
import logging
import os
from dataclasses import dataclass
from typing import List

from config import LOGGER_NAME
from errors import ConfigurationAbsence, CorpusReadFailure

logger = logging.getLogger(LOGGER_NAME)

ARTICLE_EXTENSIONS = (".txt", ".md")
SAMPLE_ARTICLE_NAME = "sample-article.md"

SAMPLE_ARTICLE = """# Welcome to the Article Generator

This is a sample article that was automatically created because no articles were found in the 'articles' directory.

## How to Add Articles

1. Create text files (.txt) or markdown files (.md) in the 'articles' directory
2. Each article should have a clear title and content
3. The AI will use these articles as reference to generate new content

## Example Article Structure

Title: The Future of Technology
Date: 2024-02-27

Artificial Intelligence and machine learning continue to reshape our world...

## Next Steps

Replace this sample article with your own content to get better results!"""


@dataclass(frozen=True)
class ReferenceDocument:
    title: str
    content: str


def _title_from_name(name: str) -> str:
    for ext in ARTICLE_EXTENSIONS:
        if name.endswith(ext):
            return name[: -len(ext)]
    return name


def ensure_articles_dir(directory: str) -> None:
    """Create the directory with a placeholder article on first run."""
    if os.path.isdir(directory):
        return
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, SAMPLE_ARTICLE_NAME), "w", encoding="utf-8") as f:
        f.write(SAMPLE_ARTICLE)
    logger.info("Created %s with a sample article.", directory)


def _read_article(path: str, name: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except UnicodeDecodeError as e:
        logger.error("Article %s is not valid UTF-8: %s", path, e)
        raise CorpusReadFailure(
            f"Failed to generate article: reference article '{name}' is not UTF-8 text"
        ) from e
    except OSError as e:
        logger.error("Could not read article %s: %s", path, e)
        raise CorpusReadFailure(
            f"Failed to generate article: could not read reference article '{name}' ({e.strerror or e})"
        ) from e


def load_articles(directory: str) -> List[ReferenceDocument]:
    """
    Read every .txt/.md file in `directory`, in listing order.

    Scanned on each call; nothing is cached.
    """
    try:
        ensure_articles_dir(directory)
        names = os.listdir(directory)
    except OSError as e:
        logger.error("Could not open articles directory %s: %s", directory, e)
        raise CorpusReadFailure(
            f"Failed to generate article: could not open the articles directory ({e.strerror or e})"
        ) from e
    if not names:
        raise ConfigurationAbsence("No articles found in the articles directory")

    docs: List[ReferenceDocument] = []
    for name in names:
        path = os.path.join(directory, name)
        if not name.endswith(ARTICLE_EXTENSIONS) or not os.path.isfile(path):
            continue
        docs.append(ReferenceDocument(title=_title_from_name(name), content=_read_article(path, name)))

    if not docs:
        raise ConfigurationAbsence("No valid article files found (.txt or .md files required)")

    logger.debug("Loaded %d reference articles from %s", len(docs), directory)
    return docs
