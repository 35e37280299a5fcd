"""Shared fixtures: isolated config directory and a recording mock HTTP transport."""

import json
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

import httpx
import pytest

from qmd_remote.config import ConfigStore, RemoteLLMConfig, reload_settings
from qmd_remote.llm.factory import reset_default_remote_llm
from qmd_remote.llm.remote import RemoteLLM

EMBED_URL = "http://embed.test"
RERANK_URL = "http://rerank.test"
GENERATE_URL = "http://generate.test"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def config_dir(tmp_path, monkeypatch):
    """Point the config store at a temp directory and drop cached settings/default client."""
    directory = tmp_path / "qmd"
    monkeypatch.setenv("QMD_CONFIG_DIR", str(directory))
    for name in ("QMD_EMBED_URL", "QMD_RERANK_URL", "QMD_GENERATE_URL"):
        monkeypatch.delenv(name, raising=False)
    reload_settings()
    reset_default_remote_llm()
    yield directory
    reset_default_remote_llm()


@pytest.fixture
def store(config_dir) -> ConfigStore:
    return ConfigStore(config_dir)


class RecordingTransport:
    """Wraps a request handler, remembering every request it served."""

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client_factory(self):
        @asynccontextmanager
        async def _factory() -> AsyncIterator[httpx.AsyncClient]:
            async with httpx.AsyncClient(transport=httpx.MockTransport(self)) as client:
                yield client

        return _factory

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def make_llm(store):
    """Build a RemoteLLM whose HTTP traffic goes to handler.

    Usage:
        llm, transport = make_llm(handler, embed_url=EMBED_URL)
    """

    def _make(handler: Handler, **urls) -> tuple[RemoteLLM, RecordingTransport]:
        transport = RecordingTransport(handler)
        llm = RemoteLLM(
            RemoteLLMConfig(**urls), store=store, client_factory=transport.client_factory()
        )
        return llm, transport

    return _make


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)
