"""
Batch orchestration for Gemini lookups.

Turns an arbitrary-sized list of unique strings into {item: result}:
cache lookup, chunking by output-token budget, bounded-concurrency fan-out
through the rate limiter and API client, per-chunk cache writes, and an
order-independent merge. A failing chunk contributes nothing; it never
aborts its siblings.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from lead_enricher.config import settings
from lead_enricher.errors import InvalidResponseFormat
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.services.ai.gemini_client import GeminiClient, gemini_client
from lead_enricher.services.ai.models import INTER_BATCH_DELAY_MS, max_concurrent_chunks
from lead_enricher.services.ai.prompts import NamespaceConfig, get_namespace
from lead_enricher.services.ai.rate_limiter import RateLimiter, rate_limiter
from lead_enricher.services.ai.result_cache import ResultCache, result_cache

logger = get_logger(__name__)

PromptBuilder = Callable[[list[str]], str]


def compute_chunk_size(namespace: NamespaceConfig, max_output_tokens: int | None = None) -> int:
    """Items per request: half the output ceiling over the per-item estimate, capped."""
    ceiling = max_output_tokens or settings.GEMINI_MAX_OUTPUT_TOKENS
    budget = ceiling // 2
    return max(1, min(namespace.hard_cap, budget // namespace.tokens_per_item))


def partition(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def validate_chunk_result(chunk: list[str], raw: Any, namespace: NamespaceConfig) -> dict[str, Any]:
    """
    Keep only entries for this chunk's items whose values have the
    namespace's shape. A non-object answer is an InvalidResponseFormat.
    """
    if not isinstance(raw, dict):
        raise InvalidResponseFormat(
            f"Expected a JSON object for {namespace.name}, got {type(raw).__name__}"
        )

    wanted = set(chunk)
    accepted: dict[str, Any] = {}
    dropped = 0
    for item, value in raw.items():
        if item in wanted and namespace.is_valid_value(value):
            accepted[item] = list(value) if isinstance(value, tuple) else value
        else:
            dropped += 1

    if dropped:
        logger.warning(
            "Dropped unexpected entries from Gemini response",
            namespace=namespace.name,
            dropped=dropped,
        )
    return accepted


class BatchOrchestrator:
    """Resolves item lists through cache + chunked, rate-limited Gemini calls."""

    def __init__(
        self,
        cache: ResultCache,
        rate_limiter: RateLimiter,
        client: GeminiClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.client = client
        self.sleep = sleep

    async def resolve_batch(
        self,
        items: list[str],
        api_key: str,
        model: str,
        namespace: str,
        prompt_builder: PromptBuilder | None = None,
    ) -> dict[str, Any]:
        """
        Resolve items for namespace, using cached results where fresh.

        Args:
            items: Unique, non-empty input strings
            api_key: Gemini API key
            model: Model used for every chunk
            namespace: "domains" or "names"
            prompt_builder: Override for the namespace's prompt template

        Returns:
            dict: {item: result} for every item that was cached or resolved
        """
        config = get_namespace(namespace)
        items = list(dict.fromkeys(items))
        if not items:
            return {}

        lookup = await self.cache.get_cached(items, namespace)
        results: dict[str, Any] = dict(lookup.cached)

        if not lookup.missing:
            logger.info("All results found in cache, no API calls needed", namespace=namespace)
            return results

        chunk_size = compute_chunk_size(config)
        chunks = partition(lookup.missing, chunk_size)
        max_concurrent = max_concurrent_chunks(model)
        build_prompt = prompt_builder or config.build_prompt

        logger.info(
            "Processing missing items",
            namespace=namespace,
            missing=len(lookup.missing),
            from_cache=len(lookup.cached),
            chunks=len(chunks),
            chunk_size=chunk_size,
            max_concurrent=max_concurrent,
            model=model,
        )

        for start in range(0, len(chunks), max_concurrent):
            batch = chunks[start : start + max_concurrent]
            batch_results = await asyncio.gather(
                *(
                    self._process_chunk(
                        chunk, start + offset + 1, len(chunks), api_key, model, config, build_prompt
                    )
                    for offset, chunk in enumerate(batch)
                )
            )
            for chunk_result in batch_results:
                results.update(chunk_result)

            if start + max_concurrent < len(chunks):
                await self.sleep(INTER_BATCH_DELAY_MS / 1000)

        logger.info(
            "Batch resolved",
            namespace=namespace,
            requested=len(items),
            resolved=len(results),
        )
        return results

    async def _process_chunk(
        self,
        chunk: list[str],
        index: int,
        total: int,
        api_key: str,
        model: str,
        config: NamespaceConfig,
        build_prompt: PromptBuilder,
    ) -> dict[str, Any]:
        logger.info(
            "Processing chunk", namespace=config.name, chunk=index, total=total, size=len(chunk)
        )
        try:
            await self.rate_limiter.acquire_slot(model)
            raw = await self.client.call(build_prompt(chunk), api_key, model)
            chunk_result = validate_chunk_result(chunk, raw, config)

            # Persist right away so partial progress survives a later failure
            await self.cache.save_results(chunk, chunk_result, config.name)
            return chunk_result

        except Exception as e:
            logger.error(
                "Error processing chunk",
                namespace=config.name,
                chunk=index,
                total=total,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}


# Singleton instance for application use
batch_orchestrator = BatchOrchestrator(result_cache, rate_limiter, gemini_client)
