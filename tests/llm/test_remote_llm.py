"""Tests for RemoteLLM embeddings, generation and endpoint resolution."""

import json

import httpx
import pytest

from conftest import EMBED_URL, GENERATE_URL, RERANK_URL, unreachable
from qmd_remote.config import RemoteLLMConfig
from qmd_remote.llm.remote import RemoteLLM
from qmd_remote.llm.types import EmbedOptions, GenerateOptions


def _vector(text: str) -> list[float]:
    base = float(len(text))
    return [base, base + 1.0]


def embeddings_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    inputs = body["input"]
    if isinstance(inputs, str):
        return httpx.Response(
            200, json={"data": [{"embedding": _vector(inputs), "index": 0}], "model": "gemma"}
        )
    # Answer a batch in reverse order to exercise index-based scatter
    data = [{"embedding": _vector(text), "index": i} for i, text in enumerate(inputs)]
    return httpx.Response(200, json={"data": list(reversed(data)), "model": "gemma"})


class TestEndpointResolution:
    def test_explicit_config_wins_and_saved_fills_gaps(self, store):
        store.save(RemoteLLMConfig(embed_url="http://saved-embed", rerank_url="http://saved-rerank"))

        llm = RemoteLLM(RemoteLLMConfig(embed_url="http://explicit"), store=store)

        assert llm.embed_url == "http://explicit"
        assert llm.rerank_url == "http://saved-rerank"
        assert llm.generate_url is None
        assert llm.get_config() == RemoteLLMConfig(
            embed_url="http://explicit", rerank_url="http://saved-rerank"
        )

    def test_no_config_anywhere_is_not_an_error(self, store):
        llm = RemoteLLM(store=store)
        assert llm.get_config() == RemoteLLMConfig()


class TestEmbed:
    @pytest.mark.asyncio
    async def test_embed_without_url_makes_no_call(self, make_llm):
        llm, transport = make_llm(embeddings_handler)

        assert await llm.embed("hello") is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_embed_success(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)

        result = await llm.embed("hello")

        assert result is not None
        assert result.embedding == [5.0, 6.0]
        assert result.model == "gemma"
        assert transport.bodies("/v1/embeddings") == [{"input": "hello", "model": "embeddinggemma"}]
        assert str(transport.requests[0].url) == f"{EMBED_URL}/v1/embeddings"

    @pytest.mark.asyncio
    async def test_embed_uses_model_option(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)

        await llm.embed("hello", EmbedOptions(model="custom-embed"))

        assert transport.bodies("/v1/embeddings")[0]["model"] == "custom-embed"

    @pytest.mark.asyncio
    async def test_embed_defaults_model_label(self, make_llm):
        def handler(request):
            return httpx.Response(200, json={"data": [{"embedding": [0.1]}]})

        llm, _ = make_llm(handler, embed_url=EMBED_URL)

        result = await llm.embed("hello")
        assert result is not None
        assert result.model == "remote-embed"

    @pytest.mark.asyncio
    async def test_embed_server_error_returns_none(self, make_llm):
        llm, _ = make_llm(lambda request: httpx.Response(503), embed_url=EMBED_URL)
        assert await llm.embed("hello") is None

    @pytest.mark.asyncio
    async def test_embed_transport_error_returns_none(self, make_llm):
        llm, _ = make_llm(unreachable, embed_url=EMBED_URL)
        assert await llm.embed("hello") is None

    @pytest.mark.asyncio
    async def test_embed_empty_data_returns_none(self, make_llm):
        llm, _ = make_llm(
            lambda request: httpx.Response(200, json={"data": [], "model": "gemma"}),
            embed_url=EMBED_URL,
        )
        assert await llm.embed("hello") is None

    @pytest.mark.asyncio
    async def test_embed_malformed_body_returns_none(self, make_llm):
        llm, _ = make_llm(lambda request: httpx.Response(200, text="<html>"), embed_url=EMBED_URL)
        assert await llm.embed("hello") is None

        llm, _ = make_llm(
            lambda request: httpx.Response(200, json={"data": [{"vector": [1]}]}),
            embed_url=EMBED_URL,
        )
        assert await llm.embed("hello") is None


    @pytest.mark.asyncio
    async def test_embed_unencodable_text_returns_none(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)
        assert await llm.embed("bad \udcff byte") is None
        assert transport.requests == []


class TestEmbedBatch:
    @pytest.mark.asyncio
    async def test_empty_input_makes_no_call(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)

        assert await llm.embed_batch([]) == []
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_without_url_returns_all_none(self, make_llm):
        llm, transport = make_llm(embeddings_handler)

        assert await llm.embed_batch(["a", "bb"]) == [None, None]
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_out_of_order_response_is_scattered_by_index(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)
        texts = ["a", "bbb", "cc", "dddd"]

        results = await llm.embed_batch(texts)

        assert len(results) == len(texts)
        assert [r.embedding for r in results] == [_vector(t) for t in texts]
        assert all(r.model == "gemma" for r in results)
        assert len(transport.requests) == 1
        assert transport.bodies("/v1/embeddings") == [{"input": texts, "model": "embeddinggemma"}]

    @pytest.mark.asyncio
    async def test_missing_and_out_of_range_indices_leave_gaps(self, make_llm):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"embedding": [2.0], "index": 2},
                        {"embedding": [9.0], "index": 7},
                        {"embedding": [0.0], "index": 0},
                    ]
                },
            )

        llm, _ = make_llm(handler, embed_url=EMBED_URL)

        results = await llm.embed_batch(["a", "b", "c"])

        assert results[0].embedding == [0.0]
        assert results[1] is None
        assert results[2].embedding == [2.0]

    @pytest.mark.asyncio
    async def test_empty_batch_data_returns_all_none(self, make_llm):
        llm, transport = make_llm(
            lambda request: httpx.Response(200, json={"data": []}), embed_url=EMBED_URL
        )

        assert await llm.embed_batch(["a", "b"]) == [None, None]
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_failed_batch_falls_back_to_sequential_calls(self, make_llm):
        def handler(request):
            body = json.loads(request.content)
            if isinstance(body["input"], list):
                return httpx.Response(500)
            return embeddings_handler(request)

        llm, transport = make_llm(handler, embed_url=EMBED_URL)
        texts = ["a", "bbb", "cc"]

        results = await llm.embed_batch(texts)

        assert [r.embedding for r in results] == [_vector(t) for t in texts]
        singles = [b["input"] for b in transport.bodies("/v1/embeddings")[1:]]
        assert singles == texts

    @pytest.mark.asyncio
    async def test_sequential_fallback_keeps_individual_failures(self, make_llm):
        def handler(request):
            body = json.loads(request.content)
            if isinstance(body["input"], list) or body["input"] == "bad":
                raise httpx.ReadTimeout("timed out", request=request)
            return embeddings_handler(request)

        llm, transport = make_llm(handler, embed_url=EMBED_URL)

        results = await llm.embed_batch(["ok", "bad", "fine"])

        assert results[0].embedding == _vector("ok")
        assert results[1] is None
        assert results[2].embedding == _vector("fine")
        assert len(transport.requests) == 4


    @pytest.mark.asyncio
    async def test_unencodable_text_only_loses_its_own_slot(self, make_llm):
        llm, transport = make_llm(embeddings_handler, embed_url=EMBED_URL)

        results = await llm.embed_batch(["ok", "bad \udcff", "fine"])

        assert results[0].embedding == _vector("ok")
        assert results[1] is None
        assert results[2].embedding == _vector("fine")
        assert [b["input"] for b in transport.bodies("/v1/embeddings")] == ["ok", "fine"]


class TestGenerate:
    @pytest.mark.asyncio
    async def test_generate_without_url_makes_no_call(self, make_llm):
        llm, transport = make_llm(lambda request: httpx.Response(200))

        assert await llm.generate("prompt") is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_generate_default_options(self, make_llm):
        def handler(request):
            return httpx.Response(
                200, json={"choices": [{"text": "first"}, {"text": "second"}], "model": "qwen"}
            )

        llm, transport = make_llm(handler, generate_url=GENERATE_URL)

        result = await llm.generate("Say hi")

        assert result is not None
        assert result.text == "first"
        assert result.model == "qwen"
        assert result.done is True
        assert transport.bodies("/v1/completions") == [
            {"prompt": "Say hi", "max_tokens": 150, "temperature": 0.0}
        ]

    @pytest.mark.asyncio
    async def test_generate_passes_options(self, make_llm):
        llm, transport = make_llm(
            lambda request: httpx.Response(200, json={"choices": [{"text": "x"}]}),
            generate_url=GENERATE_URL,
        )

        result = await llm.generate("p", GenerateOptions(max_tokens=20, temperature=0.7, model="m"))

        assert result.model == "remote-generate"
        assert transport.bodies("/v1/completions") == [
            {"prompt": "p", "max_tokens": 20, "temperature": 0.7, "model": "m"}
        ]

    @pytest.mark.asyncio
    async def test_generate_empty_choices_returns_none(self, make_llm):
        llm, _ = make_llm(
            lambda request: httpx.Response(200, json={"choices": []}), generate_url=GENERATE_URL
        )
        assert await llm.generate("p") is None

    @pytest.mark.asyncio
    async def test_generate_failures_return_none(self, make_llm):
        llm, _ = make_llm(lambda request: httpx.Response(404), generate_url=GENERATE_URL)
        assert await llm.generate("p") is None

        llm, _ = make_llm(unreachable, generate_url=GENERATE_URL)
        assert await llm.generate("p") is None


class TestHealth:
    @pytest.mark.asyncio
    async def test_unconfigured_endpoints_are_not_probed(self, make_llm):
        llm, transport = make_llm(lambda request: httpx.Response(200))

        status = await llm.check_health()

        assert (status.embed, status.rerank, status.generate) == (False, False, False)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_only_configured_endpoints_are_probed(self, make_llm):
        llm, transport = make_llm(lambda request: httpx.Response(200), rerank_url=RERANK_URL)

        status = await llm.check_health()

        assert status.rerank is True
        assert status.embed is False
        assert status.generate is False
        assert [str(r.url) for r in transport.requests] == [f"{RERANK_URL}/health"]
        assert transport.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_endpoint(self, make_llm):
        def handler(request):
            if request.url.host == "embed.test":
                return httpx.Response(200)
            if request.url.host == "rerank.test":
                return httpx.Response(500)
            raise httpx.ConnectError("refused", request=request)

        llm, transport = make_llm(
            handler, embed_url=EMBED_URL, rerank_url=RERANK_URL, generate_url=GENERATE_URL
        )

        status = await llm.check_health()

        assert status.embed is True
        assert status.rerank is False
        assert status.generate is False
        assert not status.all_healthy
        assert len(transport.requests) == 3


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_model_exists_is_static(self, make_llm):
        llm, transport = make_llm(unreachable, generate_url=GENERATE_URL)

        info = await llm.model_exists("anything")

        assert info.name == "anything"
        assert info.exists is True
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_dispose_is_noop(self, make_llm):
        llm, _ = make_llm(embeddings_handler, embed_url=EMBED_URL)

        await llm.dispose()

        assert await llm.embed("still works") is not None
