"""Tests for question normalization, the FAQ cache and the FAQ assistant."""

import asyncio
from datetime import timedelta

import pytest

from helpdesk_intel.core import ServiceUnavailableException
from helpdesk_intel.faq.application import FaqAssistant, FaqCache
from helpdesk_intel.faq.domain import LRUEviction, TTLEviction, normalize_question, question_hash
from helpdesk_intel.faq.infrastructure import InMemoryFaqCacheRepository
from helpdesk_intel.governance.application import CostRateGovernor, GovernedInference
from helpdesk_intel.governance.infrastructure import InMemoryUsageLedger

LONG_ANSWER = "Open Settings, choose Security, then Reset password and follow the emailed link."


class TestNormalization:

    @pytest.mark.parametrize("question", [
        "How do I reset my password?",
        "how do i reset my password",
        "  HOW do I   reset my password?!  ",
        "How do I reset, my password?",
    ])
    def test_variants_normalize_equal(self, question):
        assert normalize_question(question) == "how do i reset my password"

    def test_hash_is_sha256_of_normalized_text(self):
        digest = question_hash("how do i reset my password")
        assert len(digest) == 64
        assert digest == question_hash(normalize_question("How do I reset my password?"))

    def test_different_questions_hash_differently(self):
        assert question_hash("reset password") != question_hash("reset username")


@pytest.fixture
def repository():
    return InMemoryFaqCacheRepository()


@pytest.fixture
def cache(repository, clock):
    return FaqCache(repository, min_answer_length=50, clock=clock)


class SlowReadRepository(InMemoryFaqCacheRepository):
    """Yields to the event loop after every read, like a database round trip."""

    async def get(self, question_hash):
        entry = await super().get(question_hash)
        await asyncio.sleep(0.01)
        return entry


class Generator:
    """Counts generations; optionally waits for a release signal."""

    def __init__(self, answer: str = LONG_ANSWER):
        self.answer = answer
        self.calls = 0
        self.release = asyncio.Event()
        self.release.set()

    async def __call__(self) -> str:
        self.calls += 1
        await self.release.wait()
        return self.answer


class TestFaqCache:

    async def test_second_identical_question_is_a_hit(self, cache):
        generate = Generator()

        first = await cache.get_or_generate("How do I reset my password?", generate)
        second = await cache.get_or_generate("how do i reset my password", generate)

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.hit_count == 1
        assert second.answer == LONG_ANSWER
        assert generate.calls == 1

    async def test_hits_keep_counting(self, cache):
        generate = Generator()
        await cache.get_or_generate("Reset password?", generate)
        await cache.get_or_generate("Reset password?", generate)
        third = await cache.get_or_generate("reset PASSWORD", generate)

        assert third.hit_count == 2

    async def test_short_answers_are_not_cached(self, cache):
        generate = Generator(answer="Yes.")
        await cache.get_or_generate("Is support open on Sunday?", generate)
        again = await cache.get_or_generate("Is support open on Sunday?", generate)

        assert again.from_cache is False
        assert generate.calls == 2

    async def test_answer_of_exactly_min_length_is_not_cached(self, cache):
        generate = Generator(answer="x" * 50)
        await cache.get_or_generate("Exact length?", generate)
        await cache.get_or_generate("Exact length?", generate)
        assert generate.calls == 2

    async def test_context_dependent_answers_bypass_cache(self, cache, repository):
        generate = Generator()
        await cache.get_or_generate("Summarize my invoice", generate, context_dependent=True)
        await cache.get_or_generate("Summarize my invoice", generate, context_dependent=True)

        assert generate.calls == 2
        assert await repository.list_all() == []

    async def test_concurrent_identical_questions_share_one_generation(self, cache):
        generate = Generator()
        generate.release.clear()

        first = asyncio.create_task(cache.get_or_generate("How do I reset my password?", generate))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_generate("How do I reset my password", generate))
        await asyncio.sleep(0)
        generate.release.set()

        results = await asyncio.gather(first, second)
        assert generate.calls == 1
        assert [r.answer for r in results] == [LONG_ANSWER, LONG_ANSWER]
        assert sorted(r.coalesced for r in results) == [False, True]

    async def test_question_finished_during_a_slow_read_is_not_generated_twice(self, clock):
        repository = SlowReadRepository()
        cache = FaqCache(repository, min_answer_length=50, clock=clock)
        generate = Generator()
        generate.release.clear()

        first = asyncio.create_task(cache.get_or_generate("How do I reset my password?", generate))
        while generate.calls == 0:
            await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_generate("How do I reset my password?", generate))
        await asyncio.sleep(0)
        generate.release.set()

        results = await asyncio.gather(first, second)
        assert generate.calls == 1
        assert results[1].from_cache is True
        assert results[1].answer == LONG_ANSWER

    async def test_failed_generation_reaches_every_waiter_and_is_not_cached(self, cache):
        release = asyncio.Event()
        calls = 0

        async def failing() -> str:
            nonlocal calls
            calls += 1
            await release.wait()
            raise ServiceUnavailableException("backend down")

        first = asyncio.create_task(cache.get_or_generate("Where is my order?", failing))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_generate("Where is my order?", failing))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, ServiceUnavailableException) for r in results)
        assert calls == 1

        generate = Generator()
        retry = await cache.get_or_generate("Where is my order?", generate)
        assert retry.from_cache is False
        assert generate.calls == 1

    async def test_ttl_eviction_expires_entries(self, repository, clock):
        cache = FaqCache(repository, eviction=TTLEviction(timedelta(hours=1)), clock=clock)
        generate = Generator()
        await cache.get_or_generate("Reset password?", generate)

        clock.advance(minutes=59)
        assert (await cache.get_or_generate("Reset password?", generate)).from_cache is True

        clock.advance(minutes=1)
        assert (await cache.get_or_generate("Reset password?", generate)).from_cache is False
        assert generate.calls == 2

    async def test_lru_eviction_drops_least_recently_used(self, repository, clock):
        cache = FaqCache(repository, eviction=LRUEviction(max_entries=2), clock=clock)
        generate = Generator()

        await cache.get_or_generate("first question", generate)
        clock.advance(seconds=1)
        await cache.get_or_generate("second question", generate)
        clock.advance(seconds=1)
        await cache.get_or_generate("first question", generate)
        clock.advance(seconds=1)
        await cache.get_or_generate("third question", generate)

        remaining = {e.normalized_question for e in await repository.list_all()}
        assert remaining == {"first question", "third question"}

    async def test_popular_orders_by_hits(self, cache):
        generate = Generator()
        await cache.get_or_generate("rare question", generate)
        await cache.get_or_generate("common question", generate)
        await cache.get_or_generate("common question", generate)

        popular = await cache.popular(limit=1)
        assert [e.normalized_question for e in popular] == ["common question"]

    async def test_clear_empties_the_cache(self, cache):
        await cache.get_or_generate("Reset password?", Generator())
        assert await cache.clear() == 1
        assert await cache.cached_answer("Reset password?") is None


class TestFaqAssistant:

    @pytest.fixture
    def assistant(self, cache, settings_provider, inference_client, clock):
        governor = CostRateGovernor(InMemoryUsageLedger(), settings_provider, clock=clock)
        return FaqAssistant(cache, GovernedInference(governor, inference_client), settings_provider)

    async def test_repeated_question_within_a_minute_is_served_from_cache(
        self, assistant, inference_client, clock
    ):
        first = await assistant.ask("How do I reset my password?")
        clock.advance(seconds=30)
        second = await assistant.ask("How do I reset my password?")

        assert first.from_cache is False
        assert second.from_cache is True
        assert second.hit_count == 1
        assert second.answer == first.answer
        assert len(inference_client.calls) == 1

    async def test_document_context_is_never_cached(self, assistant, inference_client):
        await assistant.ask("What does this say?", document_context="Invoice 42 totals $10.")
        await assistant.ask("What does this say?", document_context="Invoice 42 totals $10.")

        assert len(inference_client.calls) == 2
