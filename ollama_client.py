# ollama_client.py
"""
Talking to the Ollama backend: readiness checks, the generate call, and the
streaming relay that turns Ollama's chunked reply into plain text fragments.

Ollama streams /api/generate as newline-delimited JSON objects, but transport
chunks carry no guarantee of lining up with those objects, or even with UTF-8
character boundaries. FrameReader reconciles the two: bytes go through an
incremental decoder, text is framed on newlines, and a trailing unit without
a newline is tried as a whole object before being held back as partial.
"""

from __future__ import annotations

import codecs
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import httpx
import orjson

from config import DEFAULT_STOP, LOGGER_NAME, Settings
from errors import BackendUnavailable, ModelMissing, UpstreamFailure

logger = logging.getLogger(LOGGER_NAME)

BACKEND_DOWN_MESSAGE = 'Ollama server is not running. Please start Ollama with "ollama serve"'


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    stream: bool = True
    stop: Tuple[str, ...] = DEFAULT_STOP

    def to_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": self.prompt,
            "stream": self.stream,
            "stop": list(self.stop),
        }


# -------- Frames --------

@dataclass(frozen=True)
class ParsedFrame:
    data: Dict[str, Any]

    @property
    def response(self) -> str:
        text = self.data.get("response")
        return text if isinstance(text, str) else ""

    @property
    def done(self) -> bool:
        return bool(self.data.get("done"))

    @property
    def error(self) -> Optional[str]:
        err = self.data.get("error")
        return str(err) if err else None


@dataclass(frozen=True)
class UnparsedFrame:
    raw: str


Frame = Union[ParsedFrame, UnparsedFrame]


def decode_frame(text: str) -> Frame:
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        return UnparsedFrame(text)
    if not isinstance(data, dict):
        return UnparsedFrame(text)
    return ParsedFrame(data)


class FrameReader:
    """
    Incremental bytes -> frames.

    Complete lines become frames (parsed or not). Until the first newline
    shows up, the unterminated tail is also tried as a whole object, for
    backends that send one object per chunk with no newline; after that the
    stream is newline-framed and the tail simply waits for more bytes.
    finish() flushes the decoder and emits whatever is left.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""
        self._line_framed = False

    def feed(self, chunk: bytes) -> List[Frame]:
        return self._consume(self._decoder.decode(chunk), final=False)

    def finish(self) -> List[Frame]:
        return self._consume(self._decoder.decode(b"", final=True), final=True)

    def _consume(self, text: str, final: bool) -> List[Frame]:
        stale = self._pending
        *lines, tail = (stale + text).split("\n")
        if lines:
            self._line_framed = True
        frames: List[Frame] = [decode_frame(line) for line in lines if line.strip()]

        if tail.strip() and (final or not self._line_framed):
            frame = decode_frame(tail)
            if isinstance(frame, UnparsedFrame) and not lines and _is_junk(stale):
                # Held-back junk followed by a whole object.
                fresh = decode_frame(text)
                if isinstance(fresh, ParsedFrame) and fresh.data:
                    frames.append(UnparsedFrame(stale))
                    frame = fresh
            if isinstance(frame, ParsedFrame) or final:
                frames.append(frame)
                tail = ""

        self._pending = tail
        return frames


def _is_junk(text: str) -> bool:
    """Held-back text that cannot be the start of an object."""
    stripped = text.strip()
    return bool(stripped) and not stripped.startswith("{")


def _drain(frames: List[Frame]) -> Tuple[List[str], Optional[ParsedFrame]]:
    """Fragments up to the first frame that ends the stream (done or error), and that frame."""
    out: List[str] = []
    for frame in frames:
        if isinstance(frame, UnparsedFrame):
            logger.warning("Skipping unparsable chunk from Ollama: %r", frame.raw[:200])
            continue
        if frame.error:
            return out, frame
        if frame.response:
            out.append(frame.response)
        if frame.done:
            return out, frame
    return out, None


# -------- Backend availability --------

async def check_reachable(client: httpx.AsyncClient, settings: Settings) -> bool:
    try:
        r = await client.get(settings.url("/api/version"), timeout=settings.check_timeout)
    except httpx.HTTPError:
        return False
    return r.is_success


async def check_model_installed(client: httpx.AsyncClient, settings: Settings, model: str) -> Optional[bool]:
    """True/False when /api/tags could be read, None when it could not."""
    try:
        r = await client.get(settings.url("/api/tags"), timeout=settings.check_timeout)
        data = orjson.loads(r.content)
    except (httpx.HTTPError, orjson.JSONDecodeError) as e:
        logger.warning("Error checking model availability: %s", e)
        return None
    if not isinstance(data, dict):
        logger.warning("Unexpected /api/tags payload: %r", data)
        return None
    models = data.get("models")
    if not isinstance(models, list):
        return False
    return any(isinstance(m, dict) and m.get("name") == model for m in models)


async def ensure_backend_ready(client: httpx.AsyncClient, settings: Settings, model: str) -> None:
    if not await check_reachable(client, settings):
        logger.warning("Ollama at %s is not reachable", settings.ollama_host)
        raise BackendUnavailable(BACKEND_DOWN_MESSAGE)
    if await check_model_installed(client, settings, model) is False:
        raise ModelMissing(model)


async def list_models(client: httpx.AsyncClient, settings: Settings) -> Dict[str, Any]:
    try:
        r = await client.get(settings.url("/api/tags"), timeout=settings.check_timeout)
        data = orjson.loads(r.content)
    except (httpx.HTTPError, orjson.JSONDecodeError) as e:
        logger.warning("Could not list models: %s", e)
        raise BackendUnavailable(BACKEND_DOWN_MESSAGE) from e
    return data if isinstance(data, dict) else {"models": []}


# -------- Generation --------

def _error_detail(status_code: int, raw: bytes) -> str:
    text = raw.decode("utf-8", "ignore").strip()
    if not text:
        return f"HTTP {status_code} from model host"
    try:
        payload = orjson.loads(text)
    except orjson.JSONDecodeError:
        return f"HTTP {status_code}: {text}"
    if isinstance(payload, dict):
        detail = payload.get("error") or payload.get("message") or payload.get("detail")
        if detail:
            return f"HTTP {status_code}: {detail}"
    return f"HTTP {status_code}: {text}"


async def open_generation(
    client: httpx.AsyncClient, settings: Settings, request: GenerationRequest
) -> httpx.Response:
    """
    Start a streaming generate call and return the open response.

    Raises before any body is read: BackendUnavailable (no generate call is
    made), ModelMissing, or UpstreamFailure. The caller owns the returned
    response and must close it; iter_fragments() does so.
    """
    await ensure_backend_ready(client, settings, request.model)

    req = client.build_request(
        "POST", settings.url("/api/generate"), json=request.to_payload(), timeout=None
    )
    try:
        resp = await client.send(req, stream=True)
    except httpx.RequestError as e:
        logger.error("Generate request to Ollama failed: %s", e)
        raise UpstreamFailure(f"Failed to connect to Ollama: {e}") from e

    if resp.is_success:
        return resp

    try:
        raw = await resp.aread()
    except httpx.HTTPError:
        raw = b""
    finally:
        await resp.aclose()
    detail = _error_detail(resp.status_code, raw)
    logger.error("Ollama rejected generate request: %s", detail)
    raise UpstreamFailure(f"Ollama API error: {detail}")


async def iter_fragments(response: httpx.Response) -> AsyncIterator[str]:
    """
    Yield the `response` text of each frame, unmodified, in arrival order.

    Ends when the body ends or a frame reports done. Transport failures and
    in-stream errors end it with UpstreamFailure. The response is closed on
    every exit, including the consumer abandoning the iterator.
    """
    reader = FrameReader()
    end: Optional[ParsedFrame] = None
    try:
        async for chunk in response.aiter_bytes():
            texts, end = _drain(reader.feed(chunk))
            for text in texts:
                yield text
            if end is not None:
                break
        else:
            texts, end = _drain(reader.finish())
            for text in texts:
                yield text
    except httpx.HTTPError as e:
        logger.error("Stream from Ollama broke off: %s", e)
        raise UpstreamFailure(f"Ollama stream failed: {e}") from e
    finally:
        await response.aclose()

    if end is not None and end.error:
        logger.error("Ollama reported an error mid-stream: %s", end.error)
        raise UpstreamFailure(f"Ollama API error: {end.error}")


async def relay(
    client: httpx.AsyncClient, settings: Settings, request: GenerationRequest
) -> AsyncIterator[str]:
    response = await open_generation(client, settings, request)
    fragments = iter_fragments(response)
    try:
        async for text in fragments:
            yield text
    finally:
        await fragments.aclose()
        await response.aclose()


async def generate_article(
    client: httpx.AsyncClient, settings: Settings, request: GenerationRequest
) -> str:
    """Non-streaming generate: one call, whole `response` field back."""
    await ensure_backend_ready(client, settings, request.model)

    payload = dataclasses.replace(request, stream=False).to_payload()
    try:
        r = await client.post(settings.url("/api/generate"), json=payload, timeout=settings.generate_timeout)
    except httpx.RequestError as e:
        logger.error("Generate request to Ollama failed: %s", e)
        raise UpstreamFailure(f"Failed to connect to Ollama: {e}") from e

    if not r.is_success:
        detail = _error_detail(r.status_code, r.content)
        logger.error("Ollama rejected generate request: %s", detail)
        raise UpstreamFailure(f"Ollama API error: {detail}")

    frame = decode_frame(r.text)
    if isinstance(frame, UnparsedFrame):
        raise UpstreamFailure("Ollama API error: malformed JSON in reply")
    if frame.error:
        raise UpstreamFailure(f"Ollama API error: {frame.error}")
    return frame.response
