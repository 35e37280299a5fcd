"""Scoped, cancellable sessions over an LLM backend.

A session is handed to one unit of work and released when that work ends.
Once released (or timed out) it stops forwarding calls and answers with the
same fallback values a completely unreachable backend would produce, so code
holding a stale session keeps running instead of crashing.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, TypeVar

from loguru import logger

from qmd_remote.llm.backend import LLM, LLMSession
from qmd_remote.llm.factory import get_default_remote_llm
from qmd_remote.llm.rerank import fallback_rerank
from qmd_remote.llm.types import (
    EmbeddingResult,
    EmbedOptions,
    ExpandQueryOptions,
    Queryable,
    QueryType,
    RerankDocument,
    RerankFallback,
    RerankOptions,
    RerankResult,
    SessionOptions,
)

T = TypeVar("T")


class CancellationSignal:
    """One-way flag that consumers can poll or await."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class RemoteLLMSession(LLMSession):
    """Session wrapper that lets any LLM backend be used through the session contract."""

    def __init__(self, llm: LLM, options: Optional[SessionOptions] = None) -> None:
        self._llm = llm
        self._options = options or SessionOptions()
        self._released = False
        self._signal = CancellationSignal()
        self._timer: Optional[asyncio.TimerHandle] = None

        if self._options.max_duration is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("Session max_duration ignored: no running event loop")
            else:
                self._timer = loop.call_later(self._options.max_duration, self._expire)

    @property
    def name(self) -> str:
        return self._options.name or "remote-session"

    @property
    def is_valid(self) -> bool:
        return not self._released and not self._signal.cancelled

    @property
    def signal(self) -> CancellationSignal:
        return self._signal

    def _expire(self) -> None:
        logger.warning(f"Session {self.name} exceeded {self._options.max_duration}s, releasing")
        self.release()

    def release(self) -> None:
        """Invalidate the session and signal cancellation. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._signal.cancel()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug(f"Session {self.name} released")

    async def embed(
        self, text: str, options: Optional[EmbedOptions] = None
    ) -> Optional[EmbeddingResult]:
        if not self.is_valid:
            return None
        return await self._llm.embed(text, options)

    async def embed_batch(self, texts: Sequence[str]) -> list[Optional[EmbeddingResult]]:
        if not self.is_valid:
            return [None] * len(texts)
        return await self._llm.embed_batch(texts)

    async def expand_query(
        self, query: str, options: Optional[ExpandQueryOptions] = None
    ) -> list[Queryable]:
        if not self.is_valid:
            return [Queryable(type=QueryType.VEC, text=query)]
        return await self._llm.expand_query(query, options)

    async def rerank(
        self,
        query: str,
        documents: Sequence[RerankDocument],
        options: Optional[RerankOptions] = None,
    ) -> RerankResult:
        if not self.is_valid:
            return fallback_rerank(documents, RerankFallback.SESSION_INVALID)
        return await self._llm.rerank(query, documents, options)


@asynccontextmanager
async def remote_llm_session(
    options: Optional[SessionOptions] = None, llm: Optional[LLM] = None
) -> AsyncIterator[RemoteLLMSession]:
    """Open a session over llm (default: the shared RemoteLLM) and always release it.

    Usage:
        async with remote_llm_session() as session:
            vectors = await session.embed_batch(chunks)
    """
    session = RemoteLLMSession(llm or get_default_remote_llm(), options)
    try:
        yield session
    finally:
        session.release()


async def with_remote_llm_session(
    fn: Callable[[RemoteLLMSession], Awaitable[T]],
    options: Optional[SessionOptions] = None,
    llm: Optional[LLM] = None,
) -> T:
    """Run fn with a scoped session; the session is released even if fn raises."""
    async with remote_llm_session(options, llm) as session:
        return await fn(session)
