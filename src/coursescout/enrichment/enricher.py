"""
Enricher Module - Background keyword annotation of catalog courses.
===================================================================

Asks the oracle for search keywords for every course that lacks an
annotation, in batches with a pause between batches. The enricher can be
paused and resumed cooperatively: a paused enricher finishes its current
batch and then waits, so a running search has the backend to itself.
"""

import asyncio
import re
from typing import Awaitable, Callable, Optional, Sequence

from coursescout.enrichment.cache import AnnotationCache
from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import Oracle
from coursescout.search.prompts import build_enrichment_prompt
from coursescout.shared.config import EnrichmentConfig, StageSampling
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseRecord
from coursescout.shared.utils import chunk_list

logger = get_logger(__name__)

OutlineLoader = Callable[[CourseRecord], Awaitable[str]]

_KEYWORD_SEPARATORS = re.compile(r"[,，、;\n]+")


def parse_keywords(text: str, max_keywords: int = 30) -> str:
    """Normalize a keyword response to a deduplicated comma-separated string."""
    keywords = [k.strip(" \t-*•\"'") for k in _KEYWORD_SEPARATORS.split(text)]
    unique = list(dict.fromkeys(k for k in keywords if k))
    return ", ".join(unique[:max_keywords])


class KeywordEnricher:
    """
    Fills the annotation cache through the oracle.

    Example:
        >>> enricher = KeywordEnricher(get_oracle_client(), AnnotationCache.load(path))
        >>> added = await enricher.run(catalog)
    """

    def __init__(
        self,
        oracle: Oracle,
        cache: AnnotationCache,
        config: Optional[EnrichmentConfig] = None,
        sampling: Optional[StageSampling] = None,
        outline_loader: Optional[OutlineLoader] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the enricher.

        Args:
            oracle: Oracle to ask for keywords
            cache: Annotation cache to fill
            config: Batch size, delay and keyword cap
            sampling: Sampling parameters for keyword prompts
            outline_loader: Optional coroutine returning syllabus text for a course
            sleep: Async sleep used between batches
        """
        self.oracle = oracle
        self.cache = cache
        self.config = config or EnrichmentConfig()
        self.sampling = sampling or StageSampling(temperature=0.2, reasoning_budget=0)
        self.outline_loader = outline_loader
        self._sleep = sleep or asyncio.sleep
        self._runner = ShardRunner()
        self._running = asyncio.Event()
        self._running.set()
        self._stopped = False

    # ─────────────────────────────────────────────────────────────────────
    # Cooperative control
    # ─────────────────────────────────────────────────────────────────────

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    def pause(self) -> None:
        if not self.is_paused:
            logger.debug("Enrichment paused")
        self._running.clear()

    def resume(self) -> None:
        if self.is_paused:
            logger.debug("Enrichment resumed")
        self._running.set()

    def stop(self) -> None:
        """Stop after the current batch; also releases a paused run."""
        self._stopped = True
        self._running.set()

    # ─────────────────────────────────────────────────────────────────────
    # Work
    # ─────────────────────────────────────────────────────────────────────

    async def _annotate(self, course: CourseRecord) -> str:
        outline = await self.outline_loader(course) if self.outline_loader else ""
        response = await self.oracle.invoke(
            build_enrichment_prompt(course, outline, self.config.max_keywords),
            self.sampling.temperature,
            self.sampling.reasoning_budget,
        )
        return parse_keywords(response, self.config.max_keywords)

    async def run(self, courses: Sequence[CourseRecord], limit: Optional[int] = None) -> int:
        """
        Annotate every course that lacks keywords.

        Args:
            courses: Catalog courses
            limit: Optional maximum number of courses to process

        Returns:
            Number of annotations added
        """
        self._stopped = False
        pending = self.cache.missing(courses)
        if limit is not None:
            pending = pending[:limit]
        if not pending:
            logger.info("Every course already has keywords")
            return 0

        batches = chunk_list(pending, self.config.batch_size)
        logger.info(f"Enriching {len(pending)} courses in {len(batches)} batches")

        added = 0
        for i, batch in enumerate(batches):
            await self._running.wait()
            if self._stopped:
                logger.info("Enrichment stopped")
                break

            outcomes = await self._runner.run([lambda c=c: self._annotate(c) for c in batch])
            for course, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.warning(f"Keyword extraction failed for {course.id}: {outcome}")
                    continue
                if self.cache.add(course.id, outcome):
                    added += 1

            self.cache.save()
            logger.debug(f"Enrichment batch {i + 1}/{len(batches)} done ({added} added)")

            if i < len(batches) - 1 and self.config.batch_delay_seconds > 0:
                await self._sleep(self.config.batch_delay_seconds)

        logger.info(f"Enrichment added {added} annotations ({len(self.cache)} cached)")
        return added
