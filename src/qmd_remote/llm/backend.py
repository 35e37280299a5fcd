"""Backend protocols so callers can switch between local and remote inference."""

from typing import Optional, Protocol, Sequence

from qmd_remote.llm.types import (
    EmbeddingResult,
    EmbedOptions,
    ExpandQueryOptions,
    GenerateOptions,
    GenerateResult,
    ModelInfo,
    Queryable,
    RerankDocument,
    RerankOptions,
    RerankResult,
)


class LLM(Protocol):
    """Contract every inference backend implements.

    All operations are degrade-safe: on failure they return None or a
    fallback value instead of raising.
    """

    async def embed(
        self, text: str, options: Optional[EmbedOptions] = None
    ) -> Optional[EmbeddingResult]:
        """Embed a single text."""
        ...

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[EmbeddingResult]]:
        """Embed many texts; result[i] always corresponds to texts[i]."""
        ...

    async def generate(
        self, prompt: str, options: Optional[GenerateOptions] = None
    ) -> Optional[GenerateResult]:
        """Complete a prompt."""
        ...

    async def model_exists(self, model: str) -> ModelInfo:
        """Report whether a model is available to this backend."""
        ...

    async def expand_query(
        self, query: str, options: Optional[ExpandQueryOptions] = None
    ) -> list[Queryable]:
        """Turn a user query into lex/vec/hyde search variants."""
        ...

    async def rerank(
        self,
        query: str,
        documents: Sequence[RerankDocument],
        options: Optional[RerankOptions] = None,
    ) -> RerankResult:
        """Order documents by relevance to the query."""
        ...

    async def dispose(self) -> None:
        """Release any resources held by the backend."""
        ...


class LLMSession(Protocol):
    """Scoped, cancellable view of a backend handed to a unit of work."""

    @property
    def is_valid(self) -> bool: ...

    def release(self) -> None: ...

    async def embed(
        self, text: str, options: Optional[EmbedOptions] = None
    ) -> Optional[EmbeddingResult]: ...

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[EmbeddingResult]]: ...

    async def expand_query(
        self, query: str, options: Optional[ExpandQueryOptions] = None
    ) -> list[Queryable]: ...

    async def rerank(
        self,
        query: str,
        documents: Sequence[RerankDocument],
        options: Optional[RerankOptions] = None,
    ) -> RerankResult: ...
