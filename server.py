# server.py
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from articles import load_articles
from config import APP_DIR, LOGGER_NAME, Settings
from errors import ArticleGenerationError, InvalidRequest
from logger_config import setup_logging
from ollama_client import (
    GenerationRequest,
    check_reachable,
    generate_article,
    iter_fragments,
    list_models,
    open_generation,
)
from prompts import compose_prompt
from renderer import STREAM_ERROR_MARKER

logger = logging.getLogger(LOGGER_NAME)

TEXT_PLAIN = "text/plain; charset=utf-8"

BAD_BODY_MESSAGE = 'Request body must be a JSON object like {"prompt": "your topic"}.'


async def _article_body(upstream: httpx.Response) -> AsyncIterator[str]:
    """
    Relay fragments to the client. The status line is already sent, so a
    failure from here on is reported in-band after STREAM_ERROR_MARKER.
    """
    fragments = iter_fragments(upstream)
    try:
        async for text in fragments:
            yield text
    except ArticleGenerationError as e:
        logger.error("Article stream ended with an error: %s", e.message)
        yield STREAM_ERROR_MARKER + e.message + "\n"
    finally:
        await fragments.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = getattr(app.state, "settings", None) or Settings.from_env()
    app.state.settings = settings
    setup_logging(settings)
    limits = httpx.Limits(max_connections=20, max_keepalive_connections=20)
    app.state.client = httpx.AsyncClient(http2=True, limits=limits)
    logger.info("Using Ollama at %s with model %s", settings.ollama_host, settings.model)
    yield
    # Shutdown
    await app.state.client.aclose()


def create_app(settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the app. Tests pass their own settings and a client wired to a fake
    transport; the lifespan only fills in what is missing.
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if client is None:
            async with lifespan(app):
                yield
            return
        app.state.client = client
        app.state.settings = app.state.settings or Settings.from_env()
        yield

    app = FastAPI(title="Article Writer", lifespan=_lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ArticleGenerationError)
    async def _generation_error(request: Request, exc: ArticleGenerationError):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _bad_body(request: Request, exc: RequestValidationError):
        logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
        return JSONResponse({"error": BAD_BODY_MESSAGE}, status_code=400)

    @app.get("/", response_class=HTMLResponse)
    async def root():
        return FileResponse(os.path.join(APP_DIR, "index.html"))

    @app.get("/api/health")
    async def health():
        s: Settings = app.state.settings
        ok = await check_reachable(app.state.client, s)
        return {"ok": ok, "ollama": s.ollama_host, "model": s.model}

    @app.get("/api/models")
    async def models():
        return JSONResponse(await list_models(app.state.client, app.state.settings))

    @app.post("/api/generate")
    async def generate(payload: Dict[str, Any] = Body(...)):
        s: Settings = app.state.settings
        topic = payload.get("prompt")
        if not isinstance(topic, str) or not topic.strip():
            raise InvalidRequest("Please enter a topic for the article.")
        stream = payload.get("stream", True)
        if not isinstance(stream, bool):
            raise InvalidRequest('"stream" must be true or false.')

        articles = await asyncio.to_thread(load_articles, s.articles_dir)
        request = GenerationRequest(
            model=s.model,
            prompt=compose_prompt(topic, articles),
            stream=stream,
            stop=s.stop_sequences,
        )
        logger.info("Generating article on %r from %d references (stream=%s)", topic, len(articles), stream)

        client: httpx.AsyncClient = app.state.client
        if not stream:
            text = await generate_article(client, s, request)
            return PlainTextResponse(text, media_type=TEXT_PLAIN)

        # Readiness and status failures raise here, before any body is sent.
        upstream = await open_generation(client, s, request)
        return StreamingResponse(
            _article_body(upstream),
            media_type=TEXT_PLAIN,
            background=BackgroundTask(upstream.aclose),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",  # module_name:app_instance
        host="127.0.0.1",
        port=8000,
        reload=True,   # optional: auto-reload on file changes
    )
