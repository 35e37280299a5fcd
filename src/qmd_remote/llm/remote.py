"""LLM backend that talks to remote llama.cpp style HTTP servers.

Embeddings, completions and reranking each live behind their own base URL
and can fail independently. Every public operation degrades instead of
raising: a missing URL, a transport error, a non-success status or a
malformed body all turn into None or a fallback value, and get logged.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Sequence, TypeVar

from httpx import Timeout
from loguru import logger
from pydantic import BaseModel, ValidationError

from qmd_remote.config import ConfigStore, RemoteLLMConfig
from qmd_remote.errors import RemoteLLMError, RemoteProtocolError
from qmd_remote.llm import query_expansion
from qmd_remote.llm.backend import LLM
from qmd_remote.llm.http import ClientFactory, create_client_factory, post_json, probe
from qmd_remote.llm.rerank import DEFAULT_RERANK_MODEL_LABEL, fallback_rerank, normalize_rerank_response
from qmd_remote.llm.types import (
    EmbeddingResult,
    EmbedOptions,
    ExpandQueryOptions,
    GenerateOptions,
    GenerateResult,
    HealthStatus,
    ModelInfo,
    Queryable,
    RerankDocument,
    RerankFallback,
    RerankOptions,
    RerankResult,
)

EMBEDDINGS_PATH = "/v1/embeddings"
COMPLETIONS_PATH = "/v1/completions"
RERANK_PATH = "/v1/rerank"
HEALTH_PATH = "/health"

DEFAULT_EMBED_MODEL = "embeddinggemma"
DEFAULT_RERANK_MODEL = "qwen3-reranker"

_ResponseT = TypeVar("_ResponseT", bound=BaseModel)


class _EmbeddingItem(BaseModel):
    embedding: list[float]
    index: Optional[int] = None


class _EmbeddingResponse(BaseModel):
    data: list[_EmbeddingItem] = []
    model: Optional[str] = None


class _Choice(BaseModel):
    text: str


class _CompletionResponse(BaseModel):
    choices: list[_Choice] = []
    model: Optional[str] = None


def _validate(model_cls: type[_ResponseT], payload: dict[str, Any]) -> _ResponseT:
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        raise RemoteProtocolError(f"Malformed response: {exc}") from exc


class RemoteLLM(LLM):
    """LLM implementation backed by remote HTTP inference servers."""

    def __init__(
        self,
        config: Optional[RemoteLLMConfig] = None,
        *,
        store: Optional[ConfigStore] = None,
        client_factory: Optional[ClientFactory] = None,
        timeout: Optional[Timeout] = None,
    ) -> None:
        """Resolve endpoint URLs: explicit config wins, persisted config fills gaps.

        Args:
            config: Explicit endpoint URLs
            store: Where persisted URLs are read from (default ConfigStore())
            client_factory: Factory yielding httpx.AsyncClient, for injection in tests
            timeout: Transport timeout used by the default client factory
        """
        saved = (store or ConfigStore()).load()
        resolved = (config or RemoteLLMConfig()).merged_over(saved)
        self.embed_url = resolved.embed_url
        self.rerank_url = resolved.rerank_url
        self.generate_url = resolved.generate_url
        self._client_factory = client_factory or create_client_factory(timeout)

        logger.debug(
            f"Remote LLM endpoints: embed={self.embed_url} rerank={self.rerank_url} "
            f"generate={self.generate_url}"
        )

    async def _post(self, base_url: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client_factory() as client:
            return await post_json(client, f"{base_url}{path}", payload)

    # --- embeddings ---

    async def embed(
        self, text: str, options: Optional[EmbedOptions] = None
    ) -> Optional[EmbeddingResult]:
        if not self.embed_url:
            logger.debug("No embed URL configured")
            return None

        model = (options.model if options else None) or DEFAULT_EMBED_MODEL
        try:
            payload = await self._post(
                self.embed_url, EMBEDDINGS_PATH, {"input": text, "model": model}
            )
            response = _validate(_EmbeddingResponse, payload)
            if not response.data:
                raise RemoteProtocolError("No embedding data in response")
        except RemoteLLMError as exc:
            logger.error(f"Embedding error: {exc}")
            return None

        return EmbeddingResult(
            embedding=response.data[0].embedding, model=response.model or "remote-embed"
        )

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[EmbeddingResult]]:
        """Embed all texts in one request, keeping result[i] aligned with texts[i].

        The server tags each vector with its input index and may return them in
        any order. If the batch request itself fails, each text is embedded on
        its own, one at a time, so a struggling server is not hit in parallel.
        """
        if not texts:
            return []
        if not self.embed_url:
            return [None] * len(texts)

        try:
            payload = await self._post(
                self.embed_url,
                EMBEDDINGS_PATH,
                {"input": list(texts), "model": DEFAULT_EMBED_MODEL},
            )
            response = _validate(_EmbeddingResponse, payload)
        except RemoteLLMError as exc:
            logger.error(f"Batch embed failed, retrying {len(texts)} texts one by one: {exc}")
            return [await self.embed(text) for text in texts]

        if not response.data:
            logger.error("No embedding data in batch response")
            return [None] * len(texts)

        model = response.model or "remote-embed"
        results: list[Optional[EmbeddingResult]] = [None] * len(texts)
        for item in response.data:
            if item.index is None or not 0 <= item.index < len(texts):
                logger.warning(f"Skipping batch embedding with invalid index {item.index}")
                continue
            results[item.index] = EmbeddingResult(embedding=item.embedding, model=model)
        return results

    # --- generation ---

    async def generate(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> Optional[GenerateResult]:
        if not self.generate_url:
            logger.debug("No generate URL configured")
            return None

        options = options or GenerateOptions()
        body: dict[str, Any] = {
            "prompt": prompt,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.model:
            body["model"] = options.model

        try:
            payload = await self._post(self.generate_url, COMPLETIONS_PATH, body)
            response = _validate(_CompletionResponse, payload)
            if not response.choices:
                raise RemoteProtocolError("No choices in response")
        except RemoteLLMError as exc:
            logger.error(f"Generate error: {exc}")
            return None

        return GenerateResult(
            text=response.choices[0].text, model=response.model or "remote-generate", done=True
        )

    async def model_exists(self, model: str) -> ModelInfo:
        # Model resolution is entirely up to the remote server
        return ModelInfo(name=model, exists=True)

    # --- search helpers ---

    async def expand_query(
        self, query: str, options: Optional[ExpandQueryOptions] = None
    ) -> list[Queryable]:
        generate = self.generate if self.generate_url else None
        return await query_expansion.expand_query(generate, query, options)

    async def rerank(
        self,
        query: str,
        documents: Sequence[RerankDocument],
        options: Optional[RerankOptions] = None,
    ) -> RerankResult:
        """Rerank documents; on any failure keep input order with placeholder scores."""
        if not self.rerank_url:
            return fallback_rerank(documents, RerankFallback.NOT_CONFIGURED)
        if not documents:
            return RerankResult(results=[], model=DEFAULT_RERANK_MODEL_LABEL)

        model = (options.model if options else None) or DEFAULT_RERANK_MODEL
        try:
            payload = await self._post(
                self.rerank_url,
                RERANK_PATH,
                {"query": query, "documents": [doc.text for doc in documents], "model": model},
            )
            return normalize_rerank_response(documents, payload)
        except RemoteLLMError as exc:
            logger.error(f"Rerank error: {exc}")
            return fallback_rerank(documents, RerankFallback.REQUEST_FAILED)

    # --- lifecycle ---

    async def check_health(self) -> HealthStatus:
        """Probe every configured endpoint concurrently; unconfigured ones are unhealthy."""
        urls = (self.embed_url, self.rerank_url, self.generate_url)
        if not any(urls):
            return HealthStatus()

        async with self._client_factory() as client:

            async def _check(url: Optional[str]) -> bool:
                if not url:
                    return False
                return await probe(client, f"{url}{HEALTH_PATH}")

            outcomes = await asyncio.gather(*(_check(url) for url in urls), return_exceptions=True)

        embed, rerank, generate = (outcome is True for outcome in outcomes)
        return HealthStatus(embed=embed, rerank=rerank, generate=generate)

    def get_config(self) -> RemoteLLMConfig:
        return RemoteLLMConfig(
            embed_url=self.embed_url,
            rerank_url=self.rerank_url,
            generate_url=self.generate_url,
        )

    async def dispose(self) -> None:
        # Clients are opened per request, nothing is held between calls
        return None
