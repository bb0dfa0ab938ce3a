"""
Precise Matcher Module - Strict AND-of-OR matching (precise mode only).
======================================================================

Coarse survivors are re-sharded into fixed-size chunks carrying the full
attribute set and detailed course text, including cached annotation
keywords. If the strict pass selects nothing at all, the coarse result is
returned unchanged.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import Oracle
from coursescout.search.parsing import parse_index_response
from coursescout.search.prompts import build_precise_prompt
from coursescout.search.sharding import Shard, make_shards, merge_unique
from coursescout.shared.config import PipelineConfig, StageSampling
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import AttributeSet, CourseRecord

logger = get_logger(__name__)


@dataclass
class PreciseOutcome:
    """Courses kept by the precise stage and whether it fell back."""

    courses: list[CourseRecord] = field(default_factory=list)
    fallback_used: bool = False


class PreciseMatcher:
    """Strict second pass over the coarse survivors."""

    def __init__(
        self,
        oracle: Oracle,
        runner: Optional[ShardRunner] = None,
        sampling: Optional[StageSampling] = None,
        pipeline: Optional[PipelineConfig] = None,
    ):
        self.oracle = oracle
        self.runner = runner or ShardRunner()
        self.sampling = sampling or StageSampling(temperature=0.1, reasoning_budget=-1)
        self.pipeline = pipeline or PipelineConfig()

    async def _match(self, query: str, attributes: AttributeSet, shard: Shard) -> list[CourseRecord]:
        response = await self.oracle.invoke(
            build_precise_prompt(query, attributes, shard.courses),
            self.sampling.temperature,
            self.sampling.reasoning_budget,
        )
        return shard.select(parse_index_response(response, len(shard)))

    async def match(
        self,
        query: str,
        attributes: AttributeSet,
        candidates: Sequence[CourseRecord],
    ) -> PreciseOutcome:
        """
        Match candidates strictly.

        Never raises for shard failures: an empty union falls back to the
        incoming candidates.

        Args:
            query: Preprocessed query text
            attributes: Extracted attribute set
            candidates: Coarse-filter output

        Returns:
            PreciseOutcome
        """
        if not candidates:
            return PreciseOutcome(courses=[], fallback_used=False)

        shards = make_shards(candidates, self.pipeline.precise_chunk_size)
        logger.info(f"Precise match: {len(candidates)} candidates in {len(shards)} chunks")

        outcomes = await self.runner.run(
            [lambda s=s: self._match(query, attributes, s) for s in shards]
        )

        results: list[list[CourseRecord]] = []
        for shard, outcome in zip(shards, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Precise chunk {shard.index + 1}/{len(shards)} failed: {outcome}")
                continue
            results.append(outcome)

        merged = merge_unique(results)
        if not merged:
            logger.warning(
                f"Precise match selected nothing; falling back to {len(candidates)} coarse results"
            )
            return PreciseOutcome(courses=list(candidates), fallback_used=True)

        logger.info(f"Precise match kept {len(merged)}/{len(candidates)} courses")
        return PreciseOutcome(courses=merged, fallback_used=False)
