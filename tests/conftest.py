from typing import Iterable, List, Optional, Sequence

import httpx
import orjson
import pytest

from config import Settings

MODEL = "deepseek-r1:1.5b"


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered exactly in the given chunks."""

    def __init__(self, chunks: Iterable[bytes], fail_after: Optional[int] = None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise httpx.ReadError("connection reset by peer")
            self.sent += 1
            yield chunk

    async def aclose(self):
        self.closed = True


class FakeOllama:
    """Just enough of Ollama's HTTP API, served through httpx.MockTransport."""

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        reply: str = "",
        reachable: bool = True,
        models: Sequence[str] = (MODEL,),
        tags_body: Optional[bytes] = None,
        generate_status: int = 200,
        generate_body: bytes = b"",
        fail_after: Optional[int] = None,
        reply_body: Optional[bytes] = None,
    ):
        self.chunks = list(chunks)
        self.reply = reply
        self.reachable = reachable
        self.models = list(models)
        self.tags_body = tags_body
        self.generate_status = generate_status
        self.generate_body = generate_body
        self.fail_after = fail_after
        self.reply_body = reply_body
        self.calls: List[str] = []
        self.generate_payload = None
        self.stream: Optional[ChunkStream] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if path == "/api/version":
            if not self.reachable:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"version": "0.6.2"})
        if path == "/api/tags":
            if self.tags_body is not None:
                return httpx.Response(200, content=self.tags_body)
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        if path == "/api/generate":
            self.generate_payload = orjson.loads(request.content)
            if self.generate_status != 200:
                return httpx.Response(self.generate_status, content=self.generate_body)
            if self.generate_payload.get("stream") is False and self.reply_body is not None:
                return httpx.Response(200, content=self.reply_body)
            if self.generate_payload.get("stream") is False:
                return httpx.Response(200, json={"model": MODEL, "response": self.reply, "done": True})
            self.stream = ChunkStream(self.chunks, self.fail_after)
            return httpx.Response(200, headers={"content-type": "application/x-ndjson"}, stream=self.stream)
        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def generate_called(self) -> bool:
        return "/api/generate" in self.calls


def ndjson(*objs) -> bytes:
    return b"".join(orjson.dumps(o) + b"\n" for o in objs)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ollama_host="http://ollama.test/",
        model=MODEL,
        articles_dir=str(tmp_path / "articles"),
    )
