# config.py
import os
from dataclasses import dataclass
from typing import Optional, Tuple

APP_DIR = os.path.dirname(os.path.abspath(__file__))

LOGGER_NAME = "article_writer"

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_MODEL = "deepseek-r1:1.5b"
DEFAULT_STOP = ("<think></think>",)


def _split_csv(raw: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if raw is None:
        return default
    return tuple(s.strip() for s in raw.split(",") if s.strip())


@dataclass(frozen=True)
class Settings:
    ollama_host: str = DEFAULT_OLLAMA_HOST
    model: str = DEFAULT_MODEL
    articles_dir: str = os.path.join(APP_DIR, "articles")

    # Seconds. The streaming generate call runs without a timeout.
    check_timeout: float = 3.0
    generate_timeout: float = 300.0

    stop_sequences: Tuple[str, ...] = DEFAULT_STOP

    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        # frozen, so go through object.__setattr__
        object.__setattr__(self, "ollama_host", self.ollama_host.rstrip("/"))

    def url(self, path: str) -> str:
        return f"{self.ollama_host}/{path.lstrip('/')}"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ollama_host=os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST),
            model=os.getenv("MODEL", DEFAULT_MODEL),
            articles_dir=os.getenv("ARTICLES_DIR", os.path.join(APP_DIR, "articles")),
            check_timeout=float(os.getenv("CHECK_TIMEOUT", "3.0")),
            generate_timeout=float(os.getenv("GENERATE_TIMEOUT", "300.0")),
            stop_sequences=_split_csv(os.getenv("STOP_SEQUENCES"), DEFAULT_STOP),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
        )
