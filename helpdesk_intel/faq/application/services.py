"""
FAQ Application Services
========================

The FAQ cache with request coalescing, and the assistant that answers
questions through it.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.core import RepositoryException, ServiceUnavailableException
from helpdesk_intel.faq.domain import (
    EvictionPolicy,
    FaqCacheEntry,
    NoEviction,
    normalize_question,
    question_hash,
)
from helpdesk_intel.governance.application import Clock, GovernedInference, utc_now
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IFaqCacheRepository(ABC):
    """Interface for FAQ cache storage."""

    @abstractmethod
    async def get(self, question_hash: str) -> Optional[FaqCacheEntry]:
        """Get entry by hash without touching its hit count."""

    @abstractmethod
    async def increment_hit(self, question_hash: str, at: datetime) -> Optional[FaqCacheEntry]:
        """Atomically increment hit_count and return the updated entry."""

    @abstractmethod
    async def insert(self, entry: FaqCacheEntry) -> bool:
        """Insert a new entry. Returns False if the hash already exists."""

    @abstractmethod
    async def list_all(self) -> List[FaqCacheEntry]:
        """All entries (used by eviction strategies)."""

    @abstractmethod
    async def delete(self, question_hashes: List[str]) -> int:
        """Delete entries by hash."""

    @abstractmethod
    async def popular(self, limit: int) -> List[FaqCacheEntry]:
        """Entries ordered by hit count, highest first."""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every entry."""


# ========== Application Services ==========

@dataclass
class CachedAnswer:
    """Answer returned by FaqCache.get_or_generate."""
    answer: str
    from_cache: bool
    coalesced: bool = False
    question_hash: Optional[str] = None
    hit_count: int = 0


class FaqCache:
    """
    Content-addressed answer cache.

    Concurrent identical questions share one in-flight generation: the
    first caller generates, late arrivals await its result.
    """

    def __init__(
        self,
        repository: IFaqCacheRepository,
        eviction: Optional[EvictionPolicy] = None,
        min_answer_length: int = 50,
        clock: Clock = utc_now
    ):
        self._repo = repository
        self._eviction = eviction or NoEviction()
        self._min_answer_length = min_answer_length
        self._clock = clock
        self._inflight: Dict[str, asyncio.Future] = {}
        self._inflight_lock = asyncio.Lock()

    async def lookup(self, question_hash: str) -> Optional[FaqCacheEntry]:
        """Return the entry and count the hit, or None on a miss."""
        entry = await self._repo.get(question_hash)
        if entry is None:
            return None

        now = self._clock()
        if self._eviction.is_expired(entry, now):
            await self._repo.delete([question_hash])
            return None

        return await self._repo.increment_hit(question_hash, now)

    async def cached_answer(self, question: str) -> Optional[FaqCacheEntry]:
        normalized = normalize_question(question)
        if not normalized:
            return None
        return await self.lookup(question_hash(normalized))

    def is_cacheable(self, answer: str) -> bool:
        return len(answer) > self._min_answer_length

    async def insert(
        self,
        question_hash: str,
        original_question: str,
        normalized_question: str,
        answer: str
    ) -> bool:
        """Store an answer if it is long enough to be useful."""
        if not self.is_cacheable(answer):
            return False

        inserted = await self._repo.insert(FaqCacheEntry(
            question_hash=question_hash,
            normalized_question=normalized_question,
            original_question=original_question,
            answer=answer,
            created_at=self._clock()
        ))
        if inserted and not isinstance(self._eviction, NoEviction):
            victims = self._eviction.select_victims(await self._repo.list_all(), self._clock())
            if victims:
                await self._repo.delete(victims)
                logger.info("FAQ cache entries evicted", extra={"count": len(victims), "policy": self._eviction.name})
        return inserted

    async def get_or_generate(
        self,
        question: str,
        generate: Callable[[], Awaitable[str]],
        context_dependent: bool = False
    ) -> CachedAnswer:
        """
        Serve from cache, join an identical in-flight generation, or generate.

        Answers built from per-session document context bypass the cache.
        """
        normalized = normalize_question(question)
        if context_dependent or not normalized:
            return CachedAnswer(answer=await generate(), from_cache=False)

        key = question_hash(normalized)
        hit = await self.lookup(key)
        if hit is not None:
            logger.info("FAQ cache hit", extra={"question_hash": key, "hit_count": hit.hit_count})
            return CachedAnswer(hit.answer, from_cache=True, question_hash=key, hit_count=hit.hit_count)

        async with self._inflight_lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                # Mark the exception retrieved when nobody joined
                future.add_done_callback(lambda f: f.exception())
                self._inflight[key] = future

        if not owner:
            answer = await asyncio.shield(future)
            return CachedAnswer(answer, from_cache=False, coalesced=True, question_hash=key)

        # An identical generation may have finished while the first read was in flight
        try:
            hit = await self.lookup(key)
            if hit is None:
                answer = await generate()
        except asyncio.CancelledError:
            self._abandon(key, future, ServiceUnavailableException("coalesced generation was cancelled"))
            raise
        except Exception as e:
            self._abandon(key, future, e)
            raise

        if hit is not None:
            future.set_result(hit.answer)
            self._inflight.pop(key, None)
            logger.info("FAQ cache hit", extra={"question_hash": key, "hit_count": hit.hit_count})
            return CachedAnswer(hit.answer, from_cache=True, question_hash=key, hit_count=hit.hit_count)

        try:
            await self.insert(key, question, normalized, answer)
        except RepositoryException as e:
            logger.warning("FAQ cache insert failed", extra={"question_hash": key, "error": e.message})
        finally:
            future.set_result(answer)
            self._inflight.pop(key, None)

        return CachedAnswer(answer, from_cache=False, question_hash=key)

    def _abandon(self, key: str, future: asyncio.Future, error: Exception) -> None:
        future.set_exception(error)
        self._inflight.pop(key, None)

    async def popular(self, limit: int = 10) -> List[FaqCacheEntry]:
        return await self._repo.popular(limit)

    async def clear(self) -> int:
        cleared = await self._repo.clear()
        logger.info("FAQ cache cleared", extra={"entries": cleared})
        return cleared


class FaqAssistant:
    """
    Answers end-user questions through the FAQ cache and governed inference.
    """

    SYSTEM_PROMPT = """You are a helpful FAQ assistant for a helpdesk.

Answer the user's question clearly and concisely in plain text.
If document context is provided, base the answer on it.
Never invent product details you are not sure about."""

    def __init__(
        self,
        cache: FaqCache,
        inference: GovernedInference,
        settings_provider: ISettingsProvider
    ):
        self._cache = cache
        self._inference = inference
        self._settings = settings_provider

    async def ask(
        self,
        question: str,
        document_context: Optional[str] = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> CachedAnswer:
        """
        Raises:
            ServiceUnavailableException, RateLimitExceededException,
            CostLimitExceededException: propagated from the inference gateway
        """
        ai_settings = self._settings.snapshot()

        prompt = question
        if document_context:
            prompt = f"Document context:\n{document_context}\n\nQuestion: {question}"

        async def generate() -> str:
            result = await self._inference.complete(
                prompt,
                system_prompt=self.SYSTEM_PROMPT,
                ai_settings=ai_settings,
                operation="faq",
                max_tokens=min(ai_settings.max_tokens, 1000),
                user_id=user_id,
                session_id=session_id
            )
            return result.text.strip()[:ai_settings.max_response_length]

        return await self._cache.get_or_generate(
            question,
            generate,
            context_dependent=bool(document_context)
        )
